from __future__ import annotations

import asyncio
import threading

import pytest

from app.errors import ProviderError, ResolutionError, ValidationError
from app.models import Coordinate, SearchPlacesArgs, parse_arguments
from app.services.geo import box_around, distance_m
from app.services.places_client import SEARCH_FIELDS, ApiError, ProviderGeometry, ProviderLatLng, ProviderPlace
from app.services.search import search_places
from conftest import DUBLIN, FakeProvider, make_place

# 1 degree of latitude is ~111.2 km
KM_PER_DEG = 111.195


def _north_of(origin: Coordinate, km: float) -> Coordinate:
    return Coordinate(lat=origin.lat + km / KM_PER_DEG, lng=origin.lng)


def _run(args, provider, directory, settings):
    if isinstance(args, dict):
        args = parse_arguments(SearchPlacesArgs, args)
    return asyncio.run(search_places(args, provider=provider, directory=directory, settings=settings))


def _center(origin: Coordinate = DUBLIN) -> dict:
    return {"lat": origin.lat, "lng": origin.lng}


def test_empty_directory_returns_no_places_without_provider_calls(directory, settings):
    provider = FakeProvider(configured=False)

    response = _run({"query": "coffee", "center": _center()}, provider, directory, settings)

    assert response.places == []
    assert response.search.viewport == box_around(DUBLIN)
    assert response.search.center == DUBLIN
    assert provider.detail_calls == []


def test_default_radius_keeps_near_and_drops_far_and_failed(directory, project_id, settings):
    a = _north_of(DUBLIN, 2)
    b = _north_of(DUBLIN, 45)
    for pid in ("A", "B", "C"):
        directory.add_business(project_id, pid, f"Business {pid}")
    provider = FakeProvider(
        places={
            "A": make_place("A", a.lat, a.lng),
            "B": make_place("B", b.lat, b.lng),
            "C": ApiError("UNKNOWN_ERROR", "backend hiccup"),
        }
    )

    response = _run({"query": "coffee", "center": _center()}, provider, directory, settings)

    assert [p.id for p in response.places] == ["A"]
    assert sorted(call[0] for call in provider.detail_calls) == ["A", "B", "C"]
    assert all(call[1] == SEARCH_FIELDS for call in provider.detail_calls)


def test_results_sorted_by_distance_and_within_radius(directory, project_id, settings):
    distances = {"far": 9.0, "near": 0.5, "mid": 4.0, "out": 12.0}
    places = {}
    for pid, km in distances.items():
        directory.add_business(project_id, pid, pid)
        loc = _north_of(DUBLIN, km)
        places[pid] = make_place(pid, loc.lat, loc.lng)
    provider = FakeProvider(places=places)

    response = _run({"query": "shops", "center": _center(), "radius_m": 10_000}, provider, directory, settings)

    assert [p.id for p in response.places] == ["near", "mid", "far"]
    dists = [distance_m(DUBLIN, p.location) for p in response.places]
    assert dists == sorted(dists)
    assert all(d <= 10_000 for d in dists)


def test_wire_output_has_no_distance_field(directory, project_id, settings):
    directory.add_business(project_id, "A", "A")
    loc = _north_of(DUBLIN, 1)
    provider = FakeProvider(places={"A": make_place("A", loc.lat, loc.lng, rating=4.5, user_ratings_total=12)})

    wire = _run({"query": "x", "center": _center()}, provider, directory, settings).to_wire()

    place = wire["places"][0]
    assert "distance" not in place
    assert place["rating"] == 4.5
    assert place["userRatingsTotal"] == 12
    assert place["phone"] is None
    assert place["provider"] == {"source": "google_places", "placeId": "A"}
    assert set(wire["search"]) == {"query", "resolvedArea", "center", "viewport"}


@pytest.mark.parametrize(
    "radius,expected",
    [(10, 100.0), (999_999, 50_000.0), (-5, 100.0), (2_500, 2_500.0)],
)
def test_radius_is_clamped(radius, expected):
    args = parse_arguments(SearchPlacesArgs, {"query": "x", "center": _center(), "radius_m": radius})
    assert args.clamped_radius_m == expected


def test_small_radius_clamped_to_100m(directory, project_id, settings):
    near = _north_of(DUBLIN, 0.05)
    beyond = _north_of(DUBLIN, 0.15)
    directory.add_business(project_id, "near", "near")
    directory.add_business(project_id, "beyond", "beyond")
    provider = FakeProvider(
        places={
            "near": make_place("near", near.lat, near.lng),
            "beyond": make_place("beyond", beyond.lat, beyond.lng),
        }
    )

    response = _run({"query": "x", "center": _center(), "radius_m": 10}, provider, directory, settings)

    assert [p.id for p in response.places] == ["near"]


def test_huge_radius_clamped_to_50km(directory, project_id, settings):
    inside = _north_of(DUBLIN, 49)
    outside = _north_of(DUBLIN, 55)
    directory.add_business(project_id, "inside", "inside")
    directory.add_business(project_id, "outside", "outside")
    provider = FakeProvider(
        places={
            "inside": make_place("inside", inside.lat, inside.lng),
            "outside": make_place("outside", outside.lat, outside.lng),
        }
    )

    response = _run({"query": "x", "center": _center(), "radius_m": 999_999}, provider, directory, settings)

    assert [p.id for p in response.places] == ["inside"]


def test_missing_center_and_where_is_validation_error(directory, settings):
    with pytest.raises(ValidationError):
        _run({"query": "coffee"}, FakeProvider(), directory, settings)


def test_missing_query_is_validation_error():
    with pytest.raises(ValidationError, match="query"):
        parse_arguments(SearchPlacesArgs, {"where": "Dublin"})


def test_malformed_center_is_validation_error():
    with pytest.raises(ValidationError, match="center"):
        parse_arguments(SearchPlacesArgs, {"query": "x", "center": {"lat": "north", "lng": 1}})


def test_where_is_geocoded(directory, project_id, settings):
    directory.add_business(project_id, "A", "A")
    loc = _north_of(DUBLIN, 3)
    provider = FakeProvider(geocode=[DUBLIN], places={"A": make_place("A", loc.lat, loc.lng)})

    response = _run({"query": "coffee", "where": "Dublin"}, provider, directory, settings)

    assert provider.geocode_calls == ["Dublin"]
    assert response.search.center == DUBLIN
    assert response.search.resolved_area == "Dublin"
    assert [p.id for p in response.places] == ["A"]


def test_center_takes_precedence_over_where(directory, settings):
    provider = FakeProvider(geocode=[Coordinate(lat=0.0, lng=0.0)])

    response = _run({"query": "x", "where": "Dublin", "center": _center()}, provider, directory, settings)

    assert provider.geocode_calls == []
    assert response.search.center == DUBLIN


@pytest.mark.parametrize("geocode", [[], ApiError("REQUEST_DENIED", "bad key")])
def test_unresolvable_where_is_resolution_error(directory, settings, geocode):
    provider = FakeProvider(geocode=geocode)
    with pytest.raises(ResolutionError):
        _run({"query": "x", "where": "Atlantis"}, provider, directory, settings)


def test_missing_api_key_is_provider_error(directory, project_id, settings):
    directory.add_business(project_id, "A", "A")
    provider = FakeProvider(configured=False)

    with pytest.raises(ProviderError):
        _run({"query": "x", "center": _center()}, provider, directory, settings)


def test_slow_lookup_is_skipped(directory, project_id, settings):
    fast = _north_of(DUBLIN, 1)
    slow = _north_of(DUBLIN, 2)
    directory.add_business(project_id, "fast", "fast")
    directory.add_business(project_id, "slow", "slow")
    provider = FakeProvider(
        places={
            "fast": make_place("fast", fast.lat, fast.lng),
            "slow": make_place("slow", slow.lat, slow.lng),
        },
        delays={"slow": 5.0},
    )

    response = _run({"query": "x", "center": _center()}, provider, directory, settings)

    assert [p.id for p in response.places] == ["fast"]


def test_place_without_geometry_is_skipped(directory, project_id, settings):
    directory.add_business(project_id, "nogeo", "nogeo")
    provider = FakeProvider(places={"nogeo": make_place("nogeo", None, None)})

    response = _run({"query": "x", "center": _center()}, provider, directory, settings)

    assert response.places == []
    assert response.search.viewport == box_around(DUBLIN)


def test_viewport_covers_results(directory, project_id, settings):
    a = _north_of(DUBLIN, 1)
    b = Coordinate(lat=DUBLIN.lat - 0.02, lng=DUBLIN.lng + 0.05)
    directory.add_business(project_id, "a", "a")
    directory.add_business(project_id, "b", "b")
    provider = FakeProvider(places={"a": make_place("a", a.lat, a.lng), "b": make_place("b", b.lat, b.lng)})

    viewport = _run({"query": "x", "center": _center()}, provider, directory, settings).search.viewport

    assert viewport.north >= a.lat and viewport.south <= b.lat
    assert viewport.east >= b.lng and viewport.west <= a.lng


def test_open_now_filters_and_requests_hours(directory, project_id, settings):
    loc = _north_of(DUBLIN, 1)
    for pid in ("open", "closed", "unknown"):
        directory.add_business(project_id, pid, pid)
    provider = FakeProvider(
        places={
            "open": make_place("open", loc.lat, loc.lng, opening_hours={"open_now": True}),
            "closed": make_place("closed", loc.lat, loc.lng, opening_hours={"open_now": False}),
            "unknown": make_place("unknown", loc.lat, loc.lng),
        }
    )

    response = _run({"query": "x", "center": _center(), "open_now": True}, provider, directory, settings)

    assert [p.id for p in response.places] == ["open"]
    assert all("opening_hours" in call[1] for call in provider.detail_calls)


def test_language_is_forwarded(directory, project_id, settings):
    loc = _north_of(DUBLIN, 1)
    directory.add_business(project_id, "A", "A")
    provider = FakeProvider(places={"A": make_place("A", loc.lat, loc.lng)})

    _run({"query": "x", "center": _center(), "language": "ga"}, provider, directory, settings)

    assert provider.detail_calls[0][2] == "ga"


def test_null_radius_uses_default():
    args = parse_arguments(SearchPlacesArgs, {"query": "x", "center": _center(), "radius_m": None})
    assert args.clamped_radius_m == 40_000.0


def test_place_with_out_of_range_coordinates_is_skipped(directory, project_id, settings):
    directory.add_business(project_id, "A", "A")
    directory.add_business(project_id, "B", "B")
    # Built without validation, as a provider bug would hand it over.
    broken = ProviderPlace.model_construct(
        place_id="B",
        name="Broken",
        geometry=ProviderGeometry.model_construct(location=ProviderLatLng.model_construct(lat=123.0, lng=0.0)),
    )
    provider = FakeProvider(places={"A": make_place("A", DUBLIN.lat, DUBLIN.lng), "B": broken})

    response = _run({"query": "x", "center": _center()}, provider, directory, settings)

    assert [p.id for p in response.places] == ["A"]


def test_unexpected_lookup_error_is_skipped(directory, project_id, settings):
    loc = _north_of(DUBLIN, 1)
    directory.add_business(project_id, "A", "A")
    directory.add_business(project_id, "B", "B")
    provider = FakeProvider(places={"A": make_place("A", loc.lat, loc.lng), "B": RuntimeError("boom")})

    response = _run({"query": "x", "center": _center()}, provider, directory, settings)

    assert [p.id for p in response.places] == ["A"]


def test_directory_is_read_off_the_event_loop_thread(directory, project_id, settings):
    directory.add_business(project_id, "A", "A")
    loop_thread = threading.get_ident()
    seen = []
    list_all = directory.list_all_place_ids

    def recording_list_all():
        seen.append(threading.get_ident())
        return list_all()

    directory.list_all_place_ids = recording_list_all
    provider = FakeProvider(places={"A": make_place("A", DUBLIN.lat, DUBLIN.lng)})

    response = _run({"query": "x", "center": _center()}, provider, directory, settings)

    assert [p.id for p in response.places] == ["A"]
    assert seen and seen[0] != loop_thread
