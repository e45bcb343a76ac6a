from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from app.config import Settings
from app.db import create_db_engine, init_db, make_session_factory
from app.errors import ProviderError
from app.models import Coordinate
from app.services.directory import DirectoryStore
from app.services.places_client import ApiError, ApiOk, DirectionsPayload, ProviderPlace

DUBLIN = Coordinate(lat=53.3498, lng=-6.2603)


def make_place(place_id: str, lat: Optional[float], lng: Optional[float], **extra: Any) -> ProviderPlace:
    data: Dict[str, Any] = {
        "place_id": place_id,
        "name": extra.pop("name", f"Place {place_id}"),
        "formatted_address": extra.pop("formatted_address", f"{place_id} Main Street"),
    }
    if lat is not None and lng is not None:
        data["geometry"] = {"location": {"lat": lat, "lng": lng}}
    data.update(extra)
    return ProviderPlace.model_validate(data)


class FakeProvider:
    """Stands in for PlacesClient; records every call."""

    provider = "google_places"

    def __init__(
        self,
        places: Optional[Dict[str, Union[ProviderPlace, ApiError, Exception]]] = None,
        geocode: Union[List[Coordinate], ApiError, None] = None,
        directions: Union[DirectionsPayload, ApiError, None] = None,
        configured: bool = True,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.places = places or {}
        self.geocode_result = geocode if geocode is not None else []
        self.directions_result = directions
        self.configured = configured
        self.delays = delays or {}
        self.detail_calls: List[Tuple[str, Tuple[str, ...], Optional[str]]] = []
        self.geocode_calls: List[str] = []
        self.directions_calls: List[Tuple[Coordinate, Coordinate, str]] = []

    def ensure_configured(self) -> None:
        if not self.configured:
            raise ProviderError("GOOGLE_PLACES_API_KEY not configured")

    async def geocode(self, address: str, language: Optional[str] = None):
        self.ensure_configured()
        self.geocode_calls.append(address)
        if isinstance(self.geocode_result, ApiError):
            return self.geocode_result
        return ApiOk(list(self.geocode_result))

    async def place_details(self, place_id: str, fields, language: Optional[str] = None):
        self.ensure_configured()
        self.detail_calls.append((place_id, tuple(fields), language))
        delay = self.delays.get(place_id)
        if delay:
            await asyncio.sleep(delay)
        outcome = self.places.get(place_id, ApiError("NOT_FOUND"))
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ApiError):
            return outcome
        return ApiOk(outcome)

    async def directions(self, origin: Coordinate, destination: Coordinate, mode: str = "driving", language=None):
        self.directions_calls.append((origin, destination, mode))
        if isinstance(self.directions_result, ApiError):
            return self.directions_result
        return ApiOk(self.directions_result or DirectionsPayload())


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        google_places_api_key="test-key",
        database_url=f"sqlite:///{tmp_path / 'localhub.db'}",
        assets_dir=str(tmp_path / "dist"),
        lookup_timeout_s=0.2,
        max_concurrent_lookups=4,
        public_base_url="https://localhub.example.com",
        google_maps_public_key="public-key",
    )


@pytest.fixture
def engine(settings):
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def directory(engine) -> DirectoryStore:
    session = make_session_factory(engine)()
    yield DirectoryStore(session)
    session.close()


@pytest.fixture
def project_id(directory) -> int:
    return directory.create_project("Dublin Businesses", "Cafes and shops in Dublin")
