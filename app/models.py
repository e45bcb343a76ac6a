from __future__ import annotations

from typing import Any, List, Literal, Optional, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.errors import ValidationError

DEFAULT_RADIUS_M = 40_000.0
MIN_RADIUS_M = 100.0
MAX_RADIUS_M = 50_000.0

TravelMode = Literal["driving", "walking", "bicycling", "transit"]

ArgsT = TypeVar("ArgsT", bound=BaseModel)


class WireModel(BaseModel):
    """Base for tool outputs: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Coordinate(WireModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0, strict=True)
    lng: float = Field(..., ge=-180.0, le=180.0, strict=True)


class BoundingBox(WireModel):
    north: float
    south: float
    east: float
    west: float


class ProviderRef(WireModel):
    source: str
    place_id: Optional[str] = None


class Place(WireModel):
    id: str
    name: str
    address: str = ""
    phone: Optional[str] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    location: Coordinate
    provider: ProviderRef


class SearchSummary(WireModel):
    query: str
    resolved_area: str = ""
    center: Coordinate
    viewport: BoundingBox


class SearchResponse(WireModel):
    search: SearchSummary
    places: List[Place] = Field(default_factory=list)


class OpeningHours(BaseModel):
    open_now: Optional[bool] = None
    weekday_text: List[str] = Field(default_factory=list)


class PlaceDetails(BaseModel):
    place_id: str
    phone: Optional[str] = None
    international_phone: Optional[str] = None
    website: Optional[str] = None
    google_maps_url: Optional[str] = None
    # 0 (free) .. 4 (very expensive)
    price_level: Optional[int] = None
    opening_hours: Optional[OpeningHours] = None
    photos_available: bool = False


class Directions(WireModel):
    origin: Coordinate = Field(..., alias="from")
    destination: Coordinate = Field(..., alias="to")
    mode: str
    polyline: str
    distance_text: str
    duration_text: str
    google_maps_url: str


class DirectionsResponse(WireModel):
    directions: Directions


# --- tool arguments ---------------------------------------------------------


class ToolArgs(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")


class SearchPlacesArgs(ToolArgs):
    query: str = Field(..., min_length=1, description="What to look for, e.g. 'coffee shops'")
    where: Optional[str] = Field(None, description="Free-text area to geocode, e.g. 'Dublin'")
    center: Optional[Coordinate] = None
    # null means the default radius.
    radius_m: Optional[float] = DEFAULT_RADIUS_M
    open_now: bool = False
    language: Optional[str] = None

    @field_validator("where", "language")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None

    @property
    def clamped_radius_m(self) -> float:
        radius = DEFAULT_RADIUS_M if self.radius_m is None else self.radius_m
        return max(MIN_RADIUS_M, min(MAX_RADIUS_M, radius))


class PlaceDetailsArgs(ToolArgs):
    place_id: str = Field(..., min_length=1)
    language: Optional[str] = None


class DirectionsArgs(ToolArgs):
    from_coords: Coordinate
    to_coords: Coordinate
    mode: TravelMode = "driving"
    language: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if value is None:
            return "driving"
        if isinstance(value, str):
            return value.strip().lower()
        return value


def _describe_errors(exc: pydantic.ValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "arguments"
        if err.get("type") == "missing":
            parts.append(f"Missing required parameter: {field}")
        else:
            parts.append(f"Invalid parameter {field}: {err.get('msg')}")
    return "; ".join(parts)


def parse_arguments(model: Type[ArgsT], arguments: Any) -> ArgsT:
    """Validate raw tool arguments, raising ``ValidationError`` with a readable message."""
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationError("Tool arguments must be a JSON object")
    try:
        return model.model_validate(arguments)
    except pydantic.ValidationError as e:
        raise ValidationError(_describe_errors(e)) from e
