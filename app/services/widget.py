from __future__ import annotations

import pathlib
from typing import Any, Dict, Optional

from jinja2 import Template

from app.config import Settings, get_settings

WIDGET_URI = "ui://widget/localhub-map.html"
WIDGET_MIME_TYPE = "text/html+skybridge"

DEFAULT_TEMPLATE = pathlib.Path(__file__).resolve().parent.parent / "templates" / "localhub-map.html"

_MAPS_DOMAINS = ["https://maps.googleapis.com", "https://maps.gstatic.com"]
_FONT_DOMAINS = ["https://fonts.googleapis.com", "https://fonts.gstatic.com"]

ASSET_MEDIA_TYPES = {
    ".js": "application/javascript",
    ".css": "text/css",
    ".html": "text/html",
    ".json": "application/json",
    ".svg": "image/svg+xml",
}


class AssetPathError(ValueError):
    """Requested asset resolves outside the assets directory."""


def _template_path(settings: Settings) -> pathlib.Path:
    if settings.widget_template_path:
        return pathlib.Path(settings.widget_template_path)
    return DEFAULT_TEMPLATE


def resolve_asset(settings: Settings, asset_path: str) -> pathlib.Path:
    """
    Map a request path onto a file under ``settings.assets_dir``.
    Raises AssetPathError for paths escaping the directory and
    FileNotFoundError when nothing is there.
    """
    root = pathlib.Path(settings.assets_dir).resolve()
    full_path = (root / asset_path).resolve()
    if full_path != root and root not in full_path.parents:
        raise AssetPathError(asset_path)
    if not full_path.is_file():
        raise FileNotFoundError(asset_path)
    return full_path


def asset_media_type(path: pathlib.Path) -> str:
    return ASSET_MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")


def render_widget(settings: Optional[Settings] = None) -> str:
    """HTML shell for the map widget; the JS bundle is loaded from /api/assets."""
    settings = settings or get_settings()
    base_url = settings.public_base_url.rstrip("/")
    html = _template_path(settings).read_text(encoding="utf-8")
    return Template(html).render(
        base_url=base_url,
        asset_base_url=f"{base_url}/api/assets",
        maps_public_key=settings.google_maps_public_key,
    )


def resource_descriptor() -> Dict[str, Any]:
    return {
        "uri": WIDGET_URI,
        "name": "LocalHub Map Widget",
        "mimeType": WIDGET_MIME_TYPE,
        "description": "Interactive map widget for displaying places and directions",
    }


def resource_contents(settings: Optional[Settings] = None) -> Dict[str, Any]:
    settings = settings or get_settings()
    base_url = settings.public_base_url.rstrip("/")
    return {
        "uri": WIDGET_URI,
        "mimeType": WIDGET_MIME_TYPE,
        "text": render_widget(settings),
        "_meta": {
            "openai/widgetPrefersBorder": True,
            "openai/widgetDomain": "https://chatgpt.com",
            "openai/widgetCSP": {
                "connect_domains": _MAPS_DOMAINS + [base_url],
                "resource_domains": _MAPS_DOMAINS + _FONT_DOMAINS + [base_url],
            },
        },
    }
