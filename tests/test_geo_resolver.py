"""Tests for address/coordinate resolution and state/city matching."""

import asyncio

import pytest

from onboarding.services.geo_resolver import GeoResolver
from onboarding.services.maps import extract_state_city, format_address

from conftest import FakeReference

CP_DETAILS = {
    "display_name": "Connaught Place, New Delhi, Delhi, 110001, India",
    "formatted": "Janpath, Connaught Place, New Delhi, Delhi, 110001, India",
    "address": {"road": "Janpath", "suburb": "Connaught Place", "city": "New Delhi", "state": "Delhi"},
}


def _resolver(reference=None, search_hit=None, details=CP_DETAILS, debounce=0.0, city_timeout=1.0):
    calls = {"search": [], "reverse": []}

    async def search(text):
        calls["search"].append(text)
        return search_hit

    async def reverse(lat, lng):
        calls["reverse"].append((lat, lng))
        return details

    resolver = GeoResolver(
        reference or FakeReference(),
        search=search,
        reverse=reverse,
        debounce=debounce,
        city_timeout=city_timeout,
    )
    return resolver, calls


def test_extract_state_city_prefers_city_then_town_then_village():
    assert extract_state_city({"state": "Gujarat", "town": "Anand"}) == ("Gujarat", "Anand")
    assert extract_state_city({"state": "Goa", "village": "Assagao"}) == ("Goa", "Assagao")
    assert extract_state_city(None) == (None, None)


def test_format_address_skips_missing_parts():
    assert format_address({"road": "MG Road", "city": "Pune", "state": "Maharashtra"}) == "MG Road, Pune, Maharashtra"
    assert format_address({}, fallback="typed") == "typed"


@pytest.mark.asyncio
async def test_coordinates_fill_address_state_and_city():
    resolver, calls = _resolver()

    resolution = await resolver.resolve_from_coordinates(28.6315, 77.2167)

    assert calls["reverse"] == [(28.6315, 77.2167)]
    assert resolution.state_matched and resolution.city_matched
    assert resolution.patch == {
        "location": {"lat": 28.6315, "lng": 77.2167},
        "address": CP_DETAILS["formatted"],
        "state": "DL",
        "state_name": "Delhi",
        "city": "101",
        "city_name": "New Delhi",
    }


@pytest.mark.asyncio
async def test_state_match_is_case_insensitive():
    details = {**CP_DETAILS, "address": {"state": "  DELHI ", "city": "dwarka"}}
    resolver, _ = _resolver(details=details)

    resolution = await resolver.resolve_from_coordinates(28.59, 77.04)

    assert resolution.patch["state"] == "DL"
    assert resolution.patch["city"] == "102"


@pytest.mark.asyncio
async def test_unmatched_state_leaves_selection_unset():
    details = {**CP_DETAILS, "address": {"state": "Atlantis", "city": "Poseidonia"}}
    resolver, _ = _resolver(details=details)

    resolution = await resolver.resolve_from_coordinates(0.0, 0.0)

    assert not resolution.state_matched
    assert "state" not in resolution.patch
    assert "city" not in resolution.patch


@pytest.mark.asyncio
async def test_reverse_failure_keeps_location_only():
    resolver, _ = _resolver(details=None)

    resolution = await resolver.resolve_from_coordinates(19.07, 72.87)

    assert resolution.patch == {"location": {"lat": 19.07, "lng": 72.87}}


@pytest.mark.asyncio
async def test_city_match_waits_for_slow_city_list():
    resolver, _ = _resolver(reference=FakeReference(city_delay=0.05))

    resolution = await resolver.resolve_from_coordinates(28.63, 77.21)

    assert resolution.city_matched
    assert resolution.patch["city"] == "101"


@pytest.mark.asyncio
async def test_city_list_timeout_skips_city():
    resolver, _ = _resolver(reference=FakeReference(city_delay=1.0), city_timeout=0.02)

    resolution = await resolver.resolve_from_coordinates(28.63, 77.21)

    assert resolution.state_matched
    assert not resolution.city_matched
    assert resolution.patch["city"] == ""
    resolver.close()


@pytest.mark.asyncio
async def test_address_resolution_is_debounced():
    hit = {"lat": 28.63, "lng": 77.21, "formatted": "Connaught Place, New Delhi"}
    resolver, calls = _resolver(search_hit=hit, debounce=0.05)

    first = asyncio.create_task(resolver.resolve_from_address("Connaught"))
    await asyncio.sleep(0.01)
    second = asyncio.create_task(resolver.resolve_from_address("Connaught Place, New Delhi"))

    assert await first is None
    resolution = await second
    assert calls["search"] == ["Connaught Place, New Delhi"]
    assert resolution.patch["state"] == "DL"


@pytest.mark.asyncio
async def test_short_address_is_not_geocoded():
    resolver, calls = _resolver(search_hit={"lat": 1, "lng": 1})

    assert await resolver.resolve_from_address("Delhi") is None
    assert calls["search"] == []


@pytest.mark.asyncio
async def test_no_search_hit_returns_none():
    resolver, calls = _resolver(search_hit=None)

    assert await resolver.resolve_from_address("Nowhere Lane 42") is None
    assert calls["reverse"] == []


@pytest.mark.asyncio
async def test_state_change_drops_cities_and_clears_city():
    reference = FakeReference()
    resolver, _ = _resolver(reference=reference)

    await resolver.select_state("DL", "Delhi")
    await resolver.cities_ready()
    assert [c["name"] for c in resolver.cities] == ["New Delhi", "Dwarka"]
    assert resolver.select_city("102") == {"city": "102", "city_name": "Dwarka"}

    patch = await resolver.select_state("MH")

    assert patch == {"state": "MH", "state_name": "", "city": "", "city_name": ""}
    assert resolver.cities == []
    await resolver.cities_ready()
    assert [c["id"] for c in resolver.cities] == ["201", "202"]
    assert reference.city_requests == ["DL", "MH"]


@pytest.mark.asyncio
async def test_reselecting_same_state_keeps_city():
    resolver, _ = _resolver()
    await resolver.select_state("DL", "Delhi")

    patch = await resolver.select_state("DL", "Delhi")

    assert patch == {"state": "DL", "state_name": "Delhi"}
    resolver.close()


@pytest.mark.asyncio
async def test_manual_state_pick_during_city_wait_wins():
    resolver, _ = _resolver(reference=FakeReference(city_delay=0.2))

    pending = asyncio.create_task(resolver.resolve_from_coordinates(28.63, 77.21))
    await asyncio.sleep(0.05)
    picked = await resolver.select_state("MH")

    resolution = await pending

    assert picked["state_name"] == "Maharashtra"
    assert not resolution.state_matched
    assert not resolution.city_matched
    assert resolution.patch == {
        "location": {"lat": 28.63, "lng": 77.21},
        "address": CP_DETAILS["formatted"],
    }
    assert resolver.selected_state == "MH"
    resolver.close()


@pytest.mark.asyncio
async def test_cities_ready_after_superseded_list_is_empty():
    resolver, _ = _resolver(reference=FakeReference(city_delay=0.2))
    await resolver.select_state("DL", "Delhi")
    stale = resolver._cities_task

    waiting = asyncio.create_task(resolver.cities_ready())
    await asyncio.sleep(0.01)
    stale.cancel()

    assert await waiting == []
    resolver.close()
