"""
Geo Resolver — keeps address text, map coordinates and the state/city
selection consistent with each other.

  address typed   → (debounce 1s) → forward geocode → reverse enrich → state/city
  map clicked     → reverse geocode → address + state/city

State and city are matched by case-insensitive exact name against the
reference lists. Cities are fetched only for the selected state and are
dropped whenever the state changes; a city match waits for the city list
of the matched state to be ready (bounded by a timeout).

Geocoding and reference-data failures are logged and leave fields unset.
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from onboarding.config import settings
from onboarding.services import maps
from onboarding.services.reference_data import ReferenceDataClient

logger = logging.getLogger(__name__)

MIN_ADDRESS_LENGTH = 6

SearchFn = Callable[[str], Awaitable[dict | None]]
ReverseFn = Callable[[float, float], Awaitable[dict | None]]


@dataclass
class GeoResolution:
    """Aggregate patch produced by a resolution, plus what was matched."""
    patch: dict[str, Any] = field(default_factory=dict)
    state_matched: bool = False
    city_matched: bool = False


def _match_by_name(items: list[dict], name: str | None) -> dict | None:
    if not name:
        return None
    wanted = name.strip().lower()
    for item in items:
        if item["name"].strip().lower() == wanted:
            return item
    return None


class GeoResolver:
    def __init__(
        self,
        reference: ReferenceDataClient,
        search: SearchFn | None = None,
        reverse: ReverseFn | None = None,
        debounce: float | None = None,
        city_timeout: float | None = None,
    ):
        self.reference = reference
        self.search = search or maps.geocode_search
        self.reverse = reverse or maps.reverse_geocode
        self.debounce = settings.GEOCODE_DEBOUNCE_SEC if debounce is None else debounce
        self.city_timeout = settings.CITY_LIST_TIMEOUT_SEC if city_timeout is None else city_timeout

        self.states: list[dict] = []
        self.selected_state: str | None = None
        self._cities_task: asyncio.Task | None = None
        self._pending: asyncio.Task | None = None

    # ── Reference data ─────────────────────────────────────

    async def load_states(self) -> list[dict]:
        if not self.states:
            try:
                self.states = await self.reference.list_states()
            except Exception as e:
                logger.warning("Failed to fetch states: %s", e)
                self.states = []
        return self.states

    async def _fetch_cities(self, state_code: str) -> list[dict]:
        try:
            return await self.reference.list_cities(state_code)
        except Exception as e:
            logger.warning("Failed to fetch cities for %s: %s", state_code, e)
            return []

    @property
    def cities(self) -> list[dict]:
        """Cities of the selected state, or [] while they are still loading."""
        task = self._cities_task
        if task is None or not task.done() or task.cancelled():
            return []
        return task.result()

    async def cities_ready(self) -> list[dict]:
        """Wait for the selected state's city list, up to the city timeout."""
        task = self._cities_task
        if task is None:
            return []
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.city_timeout)
        except asyncio.TimeoutError:
            logger.warning("City list for %s not ready after %.1fs", self.selected_state, self.city_timeout)
            return []
        except asyncio.CancelledError:
            # Superseded by another state selection
            if not task.cancelled():
                raise
            logger.info("City list for %s dropped after a state change", self.selected_state)
            return []

    async def select_state(self, code: str, name: str | None = None) -> dict[str, Any]:
        """
        Select a state. A change of state drops the city list, starts
        fetching the new one and clears the city selection.
        """
        if name is None:
            match = next((s for s in self.states if s["code"] == code), None)
            name = match["name"] if match else ""

        patch: dict[str, Any] = {"state": code, "state_name": name}
        if code != self.selected_state:
            if self._cities_task is not None and not self._cities_task.done():
                self._cities_task.cancel()
            self._cities_task = None
            self.selected_state = code or None
            if code:
                self._cities_task = asyncio.create_task(self._fetch_cities(code))
            patch.update(city="", city_name="")
        return patch

    def select_city(self, city_id: str, name: str | None = None) -> dict[str, Any]:
        if name is None:
            match = next((c for c in self.cities if c["id"] == city_id), None)
            name = match["name"] if match else ""
        return {"city": city_id, "city_name": name}

    # ── Resolution ─────────────────────────────────────────

    async def resolve_from_address(self, text: str) -> GeoResolution | None:
        """
        Debounced address resolution.

        Every call supersedes the previous pending one; only the latest call
        runs, after ``debounce`` seconds of quiet. Superseded calls and
        addresses too short to geocode return None.
        """
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()

        task = asyncio.create_task(self._debounced(text))
        self._pending = task
        await asyncio.wait({task})
        if task.cancelled():
            return None
        return task.result()

    async def _debounced(self, text: str) -> GeoResolution | None:
        await asyncio.sleep(self.debounce)
        if not text or len(text.strip()) < MIN_ADDRESS_LENGTH:
            return None

        try:
            hit = await self.search(text)
        except Exception as e:
            logger.warning("Error geocoding address: %s", e)
            return None
        if not hit:
            return None

        return await self._enrich(hit["lat"], hit["lng"], fallback_address=hit.get("formatted", ""))

    async def resolve_from_coordinates(self, lat: float, lng: float) -> GeoResolution:
        """Immediate reverse resolution for a discrete map click."""
        return await self._enrich(lat, lng)

    async def _enrich(self, lat: float, lng: float, fallback_address: str = "") -> GeoResolution:
        resolution = GeoResolution(patch={"location": {"lat": float(lat), "lng": float(lng)}})

        try:
            details = await self.reverse(lat, lng)
        except Exception as e:
            logger.warning("Error getting location details: %s", e)
            details = None

        if not details:
            if fallback_address:
                resolution.patch["address"] = fallback_address
            return resolution

        state_name, city_name = maps.extract_state_city(details.get("address"))
        address = details.get("formatted") or details.get("display_name") or fallback_address
        if address:
            resolution.patch["address"] = address

        states = await self.load_states()
        matched_state = _match_by_name(states, state_name)
        if matched_state is None:
            return resolution

        resolution.patch.update(await self.select_state(matched_state["code"], matched_state["name"]))
        resolution.state_matched = True

        cities = await self.cities_ready()
        if self.selected_state != matched_state["code"]:
            # A newer selection won while the cities loaded
            for key in ("state", "state_name", "city", "city_name"):
                resolution.patch.pop(key, None)
            resolution.state_matched = False
            return resolution

        matched_city = _match_by_name(cities, city_name)
        if matched_city is not None:
            resolution.patch.update(self.select_city(matched_city["id"], matched_city["name"]))
            resolution.city_matched = True

        return resolution

    def close(self) -> None:
        for task in (self._pending, self._cities_task):
            if task is not None and not task.done():
                task.cancel()
