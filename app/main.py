from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict

import aiohttp
from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse

from app.config import Settings, get_settings
from app.errors import ToolError
from app.mcp import PROTOCOL_VERSION, RpcDispatcher, ToolContext
from app.models import DirectionsArgs, PlaceDetailsArgs, SearchPlacesArgs, parse_arguments
from app.services.directions import get_directions
from app.services.directory import DirectoryStore, get_directory_store
from app.services.place_details import get_place_details
from app.services.places_client import PlacesClient
from app.services.search import search_places
from app.services.widget import AssetPathError, asset_media_type, render_widget, resolve_asset

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="MCP server exposing curated local business search to chat assistants.",
)


async def get_places_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[PlacesClient]:
    async with aiohttp.ClientSession() as session:
        yield PlacesClient.from_settings(session, settings)


def _http_error(e: ToolError) -> HTTPException:
    return HTTPException(status_code=e.http_status, detail=e.message)


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health():
    return {"ok": True}


@app.get("/mcp", tags=["MCP"])
async def mcp_discovery():
    return {
        "name": settings.app_name,
        "version": settings.version,
        "description": "LocalHub MCP Server - Find local businesses",
        "protocol": "mcp",
        "protocolVersion": PROTOCOL_VERSION,
    }


@app.post("/mcp", tags=["MCP"])
async def mcp_endpoint(
    request: Request,
    provider: PlacesClient = Depends(get_places_client),
    directory: DirectoryStore = Depends(get_directory_store),
    settings: Settings = Depends(get_settings),
):
    dispatcher = RpcDispatcher(ToolContext(provider=provider, directory=directory, settings=settings))
    status_code, envelope = await dispatcher.handle_body(await request.body())
    return JSONResponse(content=envelope, status_code=status_code)


@app.post("/api/localhub/tools/search_places", tags=["Tools"])
async def api_search_places(
    payload: Dict[str, Any] = Body(...),
    provider: PlacesClient = Depends(get_places_client),
    directory: DirectoryStore = Depends(get_directory_store),
    settings: Settings = Depends(get_settings),
):
    try:
        args = parse_arguments(SearchPlacesArgs, payload)
        response = await search_places(args, provider=provider, directory=directory, settings=settings)
    except ToolError as e:
        raise _http_error(e)
    return response.to_wire()


@app.post("/api/localhub/tools/get_place_details", tags=["Tools"])
async def api_get_place_details(
    payload: Dict[str, Any] = Body(...),
    provider: PlacesClient = Depends(get_places_client),
):
    try:
        args = parse_arguments(PlaceDetailsArgs, payload)
        details = await get_place_details(args, provider=provider)
    except ToolError as e:
        raise _http_error(e)
    return details.model_dump()


@app.post("/api/localhub/tools/get_directions", tags=["Tools"])
async def api_get_directions(
    payload: Dict[str, Any] = Body(...),
    provider: PlacesClient = Depends(get_places_client),
    settings: Settings = Depends(get_settings),
):
    try:
        args = parse_arguments(DirectionsArgs, payload)
        directions = await get_directions(args, provider=provider, settings=settings)
    except ToolError as e:
        raise _http_error(e)
    return {"directions": directions.to_wire()}


@app.get("/api/localhub/resources/localhub-map", response_class=HTMLResponse, tags=["Resources"])
async def widget_resource(settings: Settings = Depends(get_settings)):
    try:
        html = render_widget(settings)
    except OSError:
        logger.exception("Widget template could not be read")
        raise HTTPException(status_code=500, detail="Widget template not found")
    return HTMLResponse(content=html, headers={"access-control-allow-origin": "*"})


@app.get("/api/assets/{asset_path:path}", tags=["Resources"])
async def widget_asset(asset_path: str, settings: Settings = Depends(get_settings)):
    """Built widget bundle files (JS/CSS/logo), fetched cross-origin by the widget."""
    try:
        path = resolve_asset(settings, asset_path)
    except AssetPathError:
        raise HTTPException(status_code=403, detail="Invalid path")
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

    return FileResponse(
        path=str(path),
        media_type=asset_media_type(path),
        headers={
            "access-control-allow-origin": "*",
            "cache-control": "public, max-age=31536000, immutable",
        },
    )
