from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import pydantic

from app.config import Settings, get_settings
from app.errors import ProviderError, ResolutionError, ValidationError
from app.models import Coordinate, Place, ProviderRef, SearchPlacesArgs, SearchResponse, SearchSummary
from app.services.directory import DirectoryStore
from app.services.geo import bounding_box, box_around, distance_m
from app.services.places_client import SEARCH_FIELDS, ApiError, PlacesClient, ProviderPlace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LookupSkipped:
    """A curated place whose details could not be fetched for this request."""

    place_id: str
    reason: str


LookupOutcome = Union[ProviderPlace, LookupSkipped]


async def resolve_origin(args: SearchPlacesArgs, provider: PlacesClient) -> Coordinate:
    """Explicit center wins; otherwise geocode ``where``."""
    if args.center is not None:
        return args.center

    if args.where:
        result = await provider.geocode(args.where, language=args.language)
        if isinstance(result, ApiError):
            logger.info("Geocoding %r failed: %s", args.where, result.describe())
            raise ResolutionError("Could not resolve a search area from the provided location")
        if not result.value:
            raise ResolutionError("Could not resolve a search area from the provided location")
        return result.value[0]

    raise ValidationError("Either center coordinates or where location string must be provided")


async def _lookup(
    provider: PlacesClient,
    place_id: str,
    fields: Tuple[str, ...],
    language: Optional[str],
    timeout_s: float,
    semaphore: asyncio.Semaphore,
) -> LookupOutcome:
    async with semaphore:
        try:
            result = await asyncio.wait_for(
                provider.place_details(place_id, fields, language=language),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            return LookupSkipped(place_id, f"timed out after {timeout_s:.1f}s")
        except ProviderError:
            raise
        except Exception as e:
            logger.warning("Lookup for %s raised %s", place_id, e.__class__.__name__, exc_info=True)
            return LookupSkipped(place_id, e.__class__.__name__)

    if isinstance(result, ApiError):
        return LookupSkipped(place_id, result.describe())
    return result.value


async def fetch_curated_places(
    provider: PlacesClient,
    place_ids: List[str],
    *,
    fields: Tuple[str, ...] = SEARCH_FIELDS,
    language: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> List[Tuple[str, ProviderPlace]]:
    """Fetch details for every id concurrently; failed lookups are dropped, never raised."""
    settings = settings or get_settings()
    semaphore = asyncio.Semaphore(max(1, settings.max_concurrent_lookups))

    outcomes = await asyncio.gather(
        *(
            _lookup(provider, place_id, fields, language, settings.lookup_timeout_s, semaphore)
            for place_id in place_ids
        )
    )

    fetched: List[Tuple[str, ProviderPlace]] = []
    for place_id, outcome in zip(place_ids, outcomes):
        if isinstance(outcome, LookupSkipped):
            logger.info("Curated place %s unavailable: %s", outcome.place_id, outcome.reason)
            continue
        fetched.append((place_id, outcome))
    return fetched


def _to_place(curated_id: str, details: ProviderPlace, location: Coordinate) -> Place:
    place_id = details.place_id or curated_id
    return Place(
        id=place_id,
        name=details.name or "",
        address=details.formatted_address or "",
        phone=None,
        rating=details.rating,
        user_ratings_total=details.user_ratings_total,
        location=location,
        provider=ProviderRef(source=PlacesClient.provider, place_id=place_id),
    )


def _is_open(details: ProviderPlace) -> bool:
    return details.opening_hours is not None and details.opening_hours.open_now is True


async def search_places(
    args: SearchPlacesArgs,
    *,
    provider: PlacesClient,
    directory: DirectoryStore,
    settings: Optional[Settings] = None,
) -> SearchResponse:
    """Curated places within ``radius_m`` of the resolved origin, closest first."""
    settings = settings or get_settings()
    origin = await resolve_origin(args, provider)
    radius = args.clamped_radius_m
    resolved_area = args.where or ""

    # Blocking database read; keep it off the event loop.
    curated_ids = list(dict.fromkeys(await asyncio.to_thread(directory.list_all_place_ids)))
    logger.info("Radius filter: %d curated places in directory", len(curated_ids))

    if not curated_ids:
        return SearchResponse(
            search=SearchSummary(
                query=args.query,
                resolved_area=resolved_area,
                center=origin,
                viewport=box_around(origin),
            ),
            places=[],
        )

    provider.ensure_configured()

    fields = SEARCH_FIELDS + ("opening_hours",) if args.open_now else SEARCH_FIELDS
    fetched = await fetch_curated_places(
        provider, curated_ids, fields=fields, language=args.language, settings=settings
    )

    ranked: List[Tuple[float, Place]] = []
    for curated_id, details in fetched:
        try:
            location = details.location
        except pydantic.ValidationError:
            logger.info("Curated place %s has out-of-range coordinates, skipping", curated_id)
            continue
        if location is None:
            logger.info("Curated place %s has no geometry, skipping", curated_id)
            continue
        if args.open_now and not _is_open(details):
            continue
        dist = distance_m(origin, location)
        if dist <= radius:
            ranked.append((dist, _to_place(curated_id, details, location)))

    ranked.sort(key=lambda item: item[0])
    places = [place for _, place in ranked]

    logger.info(
        "Radius filter: %d of %d curated places within %.0fm of %s",
        len(places),
        len(curated_ids),
        radius,
        resolved_area or "coordinates",
    )

    viewport = bounding_box(p.location for p in places) or box_around(origin)
    return SearchResponse(
        search=SearchSummary(
            query=args.query,
            resolved_area=resolved_area,
            center=origin,
            viewport=viewport,
        ),
        places=places,
    )
