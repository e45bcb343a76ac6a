from __future__ import annotations

from app.errors import ProviderError
from app.models import OpeningHours, PlaceDetails, PlaceDetailsArgs
from app.services.places_client import DETAIL_FIELDS, ApiError, PlacesClient


async def get_place_details(args: PlaceDetailsArgs, *, provider: PlacesClient) -> PlaceDetails:
    """Phone, website, hours and price level for a single place."""
    result = await provider.place_details(args.place_id, DETAIL_FIELDS, language=args.language)
    if isinstance(result, ApiError):
        raise ProviderError(f"Place Details API error: {result.describe()}")

    place = result.value
    hours = None
    if place.opening_hours is not None:
        hours = OpeningHours(
            open_now=place.opening_hours.open_now,
            weekday_text=place.opening_hours.weekday_text,
        )

    return PlaceDetails(
        place_id=args.place_id,
        phone=place.formatted_phone_number or None,
        international_phone=place.international_phone_number or None,
        website=place.website or None,
        google_maps_url=place.url or None,
        price_level=place.price_level,
        opening_hours=hours,
        photos_available=bool(place.photos),
    )
