"""State/city reference data from the countrystatecity.in API."""

import logging

import httpx

from onboarding.config import settings

logger = logging.getLogger(__name__)

CSC_BASE_URL = "https://api.countrystatecity.in/v1"


class ReferenceDataClient:
    """Lists states of a country and cities of a state as {code|id, name} dicts."""

    def __init__(self, api_key: str | None = None, http: httpx.AsyncClient | None = None):
        self.api_key = api_key or settings.CSC_API_KEY
        self._http = http

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SEC)
        return self._http

    async def _get(self, path: str) -> list[dict]:
        http = await self._client()
        resp = await http.get(f"{CSC_BASE_URL}{path}", headers={"X-CSCAPI-KEY": self.api_key})
        resp.raise_for_status()
        return resp.json()

    async def list_states(self, country: str | None = None) -> list[dict]:
        """Returns [{"code": "GJ", "name": "Gujarat"}, ...]."""
        country = country or settings.COUNTRY_CODE
        rows = await self._get(f"/countries/{country}/states")
        return [{"code": row["iso2"], "name": row["name"]} for row in rows]

    async def list_cities(self, state_code: str, country: str | None = None) -> list[dict]:
        """Returns [{"id": "133024", "name": "Ahmedabad"}, ...]."""
        country = country or settings.COUNTRY_CODE
        rows = await self._get(f"/countries/{country}/states/{state_code}/cities")
        return [{"id": str(row["id"]), "name": row["name"]} for row in rows]

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
