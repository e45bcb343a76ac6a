from __future__ import annotations

import asyncio

import pytest

from app.errors import ProviderError, ValidationError
from app.models import PlaceDetailsArgs, parse_arguments
from app.services.place_details import get_place_details
from app.services.places_client import DETAIL_FIELDS, ApiError
from conftest import FakeProvider, make_place


def _details(provider, arguments):
    args = parse_arguments(PlaceDetailsArgs, arguments)
    return asyncio.run(get_place_details(args, provider=provider))


def test_maps_provider_fields():
    place = make_place(
        "P1",
        53.0,
        -6.0,
        formatted_phone_number="01 234 5678",
        international_phone_number="+353 1 234 5678",
        website="https://example.ie",
        url="https://maps.google.com/?cid=1",
        price_level=2,
        opening_hours={"open_now": False, "weekday_text": ["Monday: 9AM-5PM"]},
        photos=[{"photo_reference": "abc"}],
    )
    provider = FakeProvider(places={"P1": place})

    details = _details(provider, {"place_id": "P1"})

    assert provider.detail_calls[0][1] == DETAIL_FIELDS
    assert details.place_id == "P1"
    assert details.phone == "01 234 5678"
    assert details.international_phone == "+353 1 234 5678"
    assert details.website == "https://example.ie"
    assert details.google_maps_url == "https://maps.google.com/?cid=1"
    assert details.price_level == 2
    assert details.opening_hours.open_now is False
    assert details.opening_hours.weekday_text == ["Monday: 9AM-5PM"]
    assert details.photos_available is True


def test_missing_fields_are_null():
    provider = FakeProvider(places={"P1": make_place("P1", None, None)})

    details = _details(provider, {"place_id": "P1"})

    assert details.phone is None
    assert details.website is None
    assert details.opening_hours is None
    assert details.price_level is None
    assert details.photos_available is False


def test_unknown_open_now_stays_null():
    provider = FakeProvider(places={"P1": make_place("P1", None, None, opening_hours={"weekday_text": []})})
    assert _details(provider, {"place_id": "P1"}).opening_hours.open_now is None


def test_missing_place_id_is_validation_error():
    with pytest.raises(ValidationError, match="place_id"):
        _details(FakeProvider(), {})


def test_non_ok_status_is_provider_error():
    provider = FakeProvider(places={"P1": ApiError("INVALID_REQUEST", "bad id")})
    with pytest.raises(ProviderError, match="INVALID_REQUEST - bad id"):
        _details(provider, {"place_id": "P1"})
