"""
MCP JSON-RPC 2.0 front door.

One request in, one envelope out: every path, including tool failures and
unparseable bodies, produces ``{"jsonrpc", "id", "result" | "error"}``.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from app.config import Settings, get_settings
from app.errors import ToolError
from app.models import DirectionsArgs, PlaceDetailsArgs, SearchPlacesArgs, parse_arguments
from app.services.directions import get_directions
from app.services.directory import DirectoryStore
from app.services.place_details import get_place_details
from app.services.places_client import PlacesClient
from app.services.search import search_places
from app.services.widget import WIDGET_URI, resource_contents, resource_descriptor

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TOOL_ERROR = -32000


@dataclass
class ToolContext:
    provider: PlacesClient
    directory: DirectoryStore
    settings: Settings = field(default_factory=get_settings)


@dataclass
class ToolOutput:
    text: str
    structured: Dict[str, Any]


ToolHandler = Callable[[Any, ToolContext], Awaitable[ToolOutput]]


@dataclass(frozen=True)
class Tool:
    name: str
    title: str
    description: str
    input_schema: Dict[str, Any]
    handler: ToolHandler
    invoking: str
    invoked: str

    def descriptor(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "annotations": {"readOnlyHint": True},
            "_meta": {
                "openai/outputTemplate": WIDGET_URI,
                "openai/resultCanProduceWidget": True,
                "openai/widgetAccessible": True,
                "openai/toolInvocation/invoking": self.invoking,
                "openai/toolInvocation/invoked": self.invoked,
            },
            "securitySchemes": [{"type": "noauth"}],
            "inputSchema": self.input_schema,
        }


_LATLNG_SCHEMA = {
    "type": "object",
    "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}},
    "required": ["lat", "lng"],
}


async def _call_search_places(arguments: Any, ctx: ToolContext) -> ToolOutput:
    args = parse_arguments(SearchPlacesArgs, arguments)
    response = await search_places(args, provider=ctx.provider, directory=ctx.directory, settings=ctx.settings)
    return ToolOutput(
        text=f'Found {len(response.places)} places for "{args.query}"',
        structured=response.to_wire(),
    )


async def _call_get_place_details(arguments: Any, ctx: ToolContext) -> ToolOutput:
    args = parse_arguments(PlaceDetailsArgs, arguments)
    details = await get_place_details(args, provider=ctx.provider)
    if details.phone:
        text = f"Phone: {details.phone}"
        if details.website:
            text += f", Website: {details.website}"
    else:
        text = "Details loaded"
    return ToolOutput(text=text, structured={"placeDetails": details.model_dump()})


async def _call_get_directions(arguments: Any, ctx: ToolContext) -> ToolOutput:
    args = parse_arguments(DirectionsArgs, arguments)
    directions = await get_directions(args, provider=ctx.provider, settings=ctx.settings)
    return ToolOutput(
        text=f"{directions.distance_text}, about {directions.duration_text} ({directions.mode})",
        structured={"directions": directions.to_wire()},
    )


TOOLS: Dict[str, Tool] = {
    tool.name: tool
    for tool in (
        Tool(
            name="search_places",
            title="Search Places",
            description=(
                "Search the curated local business directory near a location. Accepts a query "
                "and either a free-text area ('where') or center coordinates."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": 'Search query for places (e.g., "coffee shops", "restaurants")',
                    },
                    "where": {
                        "type": "string",
                        "description": 'Optional location string to resolve (e.g., "Dublin", "San Francisco")',
                    },
                    "center": dict(_LATLNG_SCHEMA, description="Optional center coordinates for search"),
                    "radius_m": {
                        "type": "number",
                        "description": "Search radius in meters (default 40000, min 100, max 50000)",
                        "default": 40000,
                    },
                    "open_now": {
                        "type": "boolean",
                        "description": "Only show places open now",
                        "default": False,
                    },
                    "language": {
                        "type": "string",
                        "description": 'Language code for results (e.g., "en", "es")',
                    },
                },
                "required": ["query"],
            },
            handler=_call_search_places,
            invoking="Searching places...",
            invoked="Places loaded",
        ),
        Tool(
            name="get_place_details",
            title="Get Place Details",
            description=(
                "Get phone number, website and opening hours for a specific place. Use this when "
                "the user wants more details about a selected place."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "place_id": {
                        "type": "string",
                        "description": "Google Place ID of the place to get details for",
                    },
                },
                "required": ["place_id"],
            },
            handler=_call_get_place_details,
            invoking="Fetching place details...",
            invoked="Details loaded",
        ),
        Tool(
            name="get_directions",
            title="Get Directions",
            description="Get a route between two coordinates, with distance, duration and a Google Maps link.",
            input_schema={
                "type": "object",
                "properties": {
                    "from_coords": dict(_LATLNG_SCHEMA, description="Start of the route"),
                    "to_coords": dict(_LATLNG_SCHEMA, description="End of the route"),
                    "mode": {
                        "type": "string",
                        "enum": ["driving", "walking", "bicycling", "transit"],
                        "default": "driving",
                    },
                    "language": {"type": "string"},
                },
                "required": ["from_coords", "to_coords"],
            },
            handler=_call_get_directions,
            invoking="Finding a route...",
            invoked="Route ready",
        ),
    )
}


def _ok(id_: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": id_, "result": result}


def _err(id_: Any, code: int, message: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": id_, "error": error}


def _valid_id(id_: Any) -> bool:
    return id_ is None or (isinstance(id_, (str, int, float)) and not isinstance(id_, bool))


class RpcDispatcher:
    def __init__(self, context: ToolContext, tools: Optional[Dict[str, Tool]] = None):
        self.context = context
        self.tools = TOOLS if tools is None else tools
        self._methods: Dict[str, Callable[[Any, Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "initialize": self._initialize,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
            "resources/read": self._resources_read,
        }

    async def handle_body(self, body: bytes) -> Tuple[int, Dict[str, Any]]:
        """Decode a raw HTTP body and dispatch it. Returns (http_status, envelope)."""
        try:
            request = json.loads(body)
        except ValueError:
            logger.warning("Rejected unparseable JSON-RPC body (%d bytes)", len(body))
            return 500, _err(None, PARSE_ERROR, "Parse error")
        return 200, await self.handle(request)

    async def handle(self, request: Any) -> Dict[str, Any]:
        if not isinstance(request, dict):
            return _err(None, INVALID_REQUEST, "Invalid Request - expected a JSON object")

        id_ = request.get("id")
        if not _valid_id(id_):
            return _err(None, INVALID_REQUEST, "Invalid Request - id must be a string, number or null")
        if request.get("jsonrpc") != "2.0":
            return _err(id_, INVALID_REQUEST, "Invalid Request - must be JSON-RPC 2.0")

        method = request.get("method")
        handler = self._methods.get(method) if isinstance(method, str) else None
        if handler is None:
            return _err(id_, METHOD_NOT_FOUND, f"Method not found: {method}")

        params = request.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return _err(id_, INVALID_PARAMS, "Invalid params - must be an object")

        return await handler(id_, params)

    async def _initialize(self, id_: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        settings = self.context.settings
        return _ok(
            id_,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "serverInfo": {"name": settings.app_name, "version": settings.version},
                "capabilities": {"tools": {}, "resources": {}},
            },
        )

    async def _tools_list(self, id_: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        return _ok(id_, {"tools": [tool.descriptor() for tool in self.tools.values()]})

    async def _tools_call(self, id_: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        name = params.get("name")
        arguments = params.get("arguments")
        tool = self.tools.get(name) if isinstance(name, str) else None
        if tool is None:
            return _err(
                id_,
                TOOL_ERROR,
                f"Tool execution failed: Unknown tool: {name}",
                {"category": "invalid_arguments"},
            )

        keys = sorted(arguments) if isinstance(arguments, dict) else []
        logger.info("Tool call %s args=%s", tool.name, keys)
        try:
            output = await tool.handler(arguments, self.context)
        except ToolError as e:
            logger.info("Tool %s failed (%s): %s", tool.name, e.category, e.message)
            return _err(id_, TOOL_ERROR, f"Tool execution failed: {e.message}", {"category": e.category})
        except Exception:
            logger.exception("Tool %s raised an unexpected error", tool.name)
            return _err(id_, TOOL_ERROR, "Tool execution failed: internal error", {"category": "internal"})

        return _ok(
            id_,
            {
                "content": [{"type": "text", "text": output.text}],
                "structuredContent": output.structured,
                "_meta": {"openai/outputTemplate": WIDGET_URI},
            },
        )

    async def _resources_list(self, id_: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        return _ok(id_, {"resources": [resource_descriptor()]})

    async def _resources_read(self, id_: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        uri = params.get("uri")
        if uri != WIDGET_URI:
            return _err(id_, INVALID_PARAMS, f"Resource not found: {uri}")
        try:
            contents = resource_contents(self.context.settings)
        except OSError:
            logger.exception("Widget template could not be read")
            return _err(id_, INTERNAL_ERROR, "Widget template unavailable")
        return _ok(id_, {"contents": [contents]})
