"""
Google Places/Geocoding/Directions client.

Each call returns ``ApiOk(value)`` or ``ApiError(status, message)`` so the
tool handlers decide, per call site, whether a provider failure is fatal.
Only a missing API key raises (``ProviderError``).
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar, Union

import aiohttp
import pydantic
from pydantic import BaseModel, ConfigDict, Field

from app.config import Settings, get_settings
from app.errors import ProviderError
from app.models import Coordinate

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

SEARCH_FIELDS = ("place_id", "name", "formatted_address", "geometry", "rating", "user_ratings_total")
DETAIL_FIELDS = (
    "formatted_phone_number",
    "international_phone_number",
    "website",
    "opening_hours",
    "url",
    "price_level",
    "photos",
)


@dataclass(frozen=True)
class ApiOk(Generic[T]):
    value: T


@dataclass(frozen=True)
class ApiError:
    status: str
    message: str = ""

    def describe(self) -> str:
        return f"{self.status} - {self.message}" if self.message else self.status


ApiResult = Union[ApiOk[T], ApiError]


# --- provider payloads ------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ProviderLatLng(_Payload):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class ProviderGeometry(_Payload):
    location: Optional[ProviderLatLng] = None


class ProviderOpeningHours(_Payload):
    open_now: Optional[bool] = None
    weekday_text: List[str] = Field(default_factory=list)


class ProviderPlace(_Payload):
    place_id: Optional[str] = None
    name: Optional[str] = None
    formatted_address: Optional[str] = None
    geometry: Optional[ProviderGeometry] = None
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    formatted_phone_number: Optional[str] = None
    international_phone_number: Optional[str] = None
    website: Optional[str] = None
    opening_hours: Optional[ProviderOpeningHours] = None
    url: Optional[str] = None
    price_level: Optional[int] = None
    photos: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def location(self) -> Optional[Coordinate]:
        if self.geometry is None or self.geometry.location is None:
            return None
        loc = self.geometry.location
        return Coordinate(lat=loc.lat, lng=loc.lng)


class GeocodeResult(_Payload):
    geometry: Optional[ProviderGeometry] = None


class GeocodePayload(_Payload):
    results: List[GeocodeResult] = Field(default_factory=list)


class PlaceDetailsPayload(_Payload):
    result: Optional[ProviderPlace] = None


class TextValue(_Payload):
    text: Optional[str] = None


class DirectionsLeg(_Payload):
    distance: Optional[TextValue] = None
    duration: Optional[TextValue] = None


class OverviewPolyline(_Payload):
    points: Optional[str] = None


class DirectionsRoute(_Payload):
    legs: List[DirectionsLeg] = Field(default_factory=list)
    overview_polyline: Optional[OverviewPolyline] = None


class DirectionsPayload(_Payload):
    routes: List[DirectionsRoute] = Field(default_factory=list)


# --- client -----------------------------------------------------------------


class PlacesClient:
    provider = "google_places"

    def __init__(
        self,
        session: aiohttp.ClientSession,
        api_key: str,
        directions_api_key: Optional[str] = None,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.api_key = api_key
        self.directions_api_key = directions_api_key or api_key
        self.settings = settings or get_settings()

    @classmethod
    def from_settings(cls, session: aiohttp.ClientSession, settings: Optional[Settings] = None) -> "PlacesClient":
        settings = settings or get_settings()
        return cls(
            session,
            api_key=settings.google_places_api_key,
            directions_api_key=settings.directions_key,
            settings=settings,
        )

    def ensure_configured(self) -> None:
        if not self.api_key:
            raise ProviderError("GOOGLE_PLACES_API_KEY not configured")

    async def _get(
        self,
        url: str,
        params: Dict[str, str],
        payload_model: Type[M],
        accept_statuses: Iterable[str] = (),
    ) -> ApiResult[M]:
        timeout = aiohttp.ClientTimeout(total=self.settings.http_timeout_s)
        try:
            async with self.session.get(url, params=params, timeout=timeout) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            # str(e) would include the request URL, key included.
            logger.warning("Request to %s failed with HTTP %s", url, e.status)
            return ApiError("REQUEST_FAILED", f"HTTP {e.status}")
        except asyncio.TimeoutError:
            logger.warning("Request to %s timed out", url)
            return ApiError("REQUEST_FAILED", "timed out")
        except (aiohttp.ClientError, ValueError) as e:
            logger.warning("Request to %s failed: %s", url, e.__class__.__name__)
            return ApiError("REQUEST_FAILED", e.__class__.__name__)

        if not isinstance(data, dict):
            return ApiError("INVALID_RESPONSE", "expected a JSON object")

        status = str(data.get("status") or "UNKNOWN")
        if status != "OK" and status not in accept_statuses:
            logger.debug("%s returned status %s", url, status)
            return ApiError(status, str(data.get("error_message") or ""))

        try:
            return ApiOk(payload_model.model_validate(data))
        except pydantic.ValidationError:
            return ApiError("INVALID_RESPONSE", f"unexpected {payload_model.__name__} shape")

    async def geocode(self, address: str, language: Optional[str] = None) -> ApiResult[List[Coordinate]]:
        """Geocode a free-text address. ZERO_RESULTS is an empty, successful result."""
        self.ensure_configured()
        params = {"address": address, "key": self.api_key}
        if language:
            params["language"] = language

        result = await self._get(str(self.settings.geocode_url), params, GeocodePayload, accept_statuses=("ZERO_RESULTS",))
        if isinstance(result, ApiError):
            return result

        coords = [
            Coordinate(lat=item.geometry.location.lat, lng=item.geometry.location.lng)
            for item in result.value.results
            if item.geometry is not None and item.geometry.location is not None
        ]
        return ApiOk(coords)

    async def place_details(
        self,
        place_id: str,
        fields: Iterable[str],
        language: Optional[str] = None,
    ) -> ApiResult[ProviderPlace]:
        self.ensure_configured()
        params = {
            "place_id": place_id,
            "fields": ",".join(fields),
            "key": self.api_key,
        }
        if language:
            params["language"] = language

        result = await self._get(str(self.settings.place_details_url), params, PlaceDetailsPayload)
        if isinstance(result, ApiError):
            return result
        return ApiOk(result.value.result or ProviderPlace())

    async def directions(
        self,
        origin: Coordinate,
        destination: Coordinate,
        mode: str = "driving",
        language: Optional[str] = None,
    ) -> ApiResult[DirectionsPayload]:
        if not self.directions_api_key:
            raise ProviderError("GOOGLE_DIRECTIONS_API_KEY not configured")
        params = {
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "mode": mode,
            "key": self.directions_api_key,
        }
        if language:
            params["language"] = language

        return await self._get(str(self.settings.directions_url), params, DirectionsPayload)
