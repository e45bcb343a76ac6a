from __future__ import annotations

from typing import Optional
from urllib.parse import urlencode

from app.config import Settings, get_settings
from app.errors import ProviderError
from app.models import Coordinate, Directions, DirectionsArgs
from app.services.places_client import ApiError, PlacesClient


def maps_directions_url(
    origin: Coordinate,
    destination: Coordinate,
    mode: str,
    settings: Optional[Settings] = None,
) -> str:
    """Turn-by-turn link that opens in Google Maps (no key needed)."""
    settings = settings or get_settings()
    query = urlencode(
        {
            "api": "1",
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "travelmode": mode,
        }
    )
    return f"{settings.maps_dir_url}?{query}"


async def get_directions(
    args: DirectionsArgs,
    *,
    provider: PlacesClient,
    settings: Optional[Settings] = None,
) -> Directions:
    result = await provider.directions(
        args.from_coords, args.to_coords, mode=args.mode, language=args.language
    )
    if isinstance(result, ApiError):
        raise ProviderError(f"Directions API error: {result.describe()}")

    routes = result.value.routes
    if not routes:
        raise ProviderError("No routes found in Directions API response")
    route = routes[0]

    if not route.legs:
        raise ProviderError("No legs found in route")
    leg = route.legs[0]

    polyline = route.overview_polyline.points if route.overview_polyline else None
    if not polyline:
        raise ProviderError("No polyline found in route")

    distance_text = leg.distance.text if leg.distance and leg.distance.text else "Unknown distance"
    duration_text = leg.duration.text if leg.duration and leg.duration.text else "Unknown duration"

    return Directions(
        origin=args.from_coords,
        destination=args.to_coords,
        mode=args.mode,
        polyline=polyline,
        distance_text=distance_text,
        duration_text=duration_text,
        google_maps_url=maps_directions_url(args.from_coords, args.to_coords, args.mode, settings),
    )
