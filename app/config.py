from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App configuration (env-friendly).

    Tip: create a .env file and put GOOGLE_PLACES_API_KEY there.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "localhub"
    version: str = "1.0.0"
    log_level: str = "INFO"

    google_places_api_key: str = ""
    # Empty means "use the places key".
    google_directions_api_key: str = ""
    # Browser key handed to the map widget, never the server key.
    google_maps_public_key: str = ""

    geocode_url: AnyHttpUrl = "https://maps.googleapis.com/maps/api/geocode/json"
    place_details_url: AnyHttpUrl = "https://maps.googleapis.com/maps/api/place/details/json"
    directions_url: AnyHttpUrl = "https://maps.googleapis.com/maps/api/directions/json"
    maps_dir_url: str = "https://www.google.com/maps/dir/"

    http_timeout_s: float = 20.0
    lookup_timeout_s: float = 8.0
    max_concurrent_lookups: int = 10

    database_url: str = "sqlite:///./localhub.db"

    public_base_url: str = "http://localhost:8000"
    widget_template_path: Optional[str] = None
    # Built widget bundle (JS/CSS/logo) served under /api/assets.
    assets_dir: str = "web/dist"

    @property
    def directions_key(self) -> str:
        return self.google_directions_api_key or self.google_places_api_key


@lru_cache
def get_settings() -> Settings:
    return Settings()
