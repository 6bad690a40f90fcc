"""
Nominatim Maps Service — forward and reverse geocoding with Redis caching.

Optimization strategy:
  1. Geocode cache in Redis (30-day TTL), keyed by normalized address
  2. Reverse cache keyed by lat/lng rounded to 4 decimals
  3. "No match" is an empty result, never an exception
"""

import hashlib
import json
import logging

import httpx
import redis.asyncio as aioredis

from onboarding.config import settings

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None
_http: httpx.AsyncClient | None = None

NOMINATIM_SEARCH_URL = "https://nominatim.openstreetmap.org/search"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"

REVERSE_CACHE_TTL = 7 * 24 * 3600  # 7 days


async def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


async def _get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=10.0)
    return _http


def _headers() -> dict:
    # Nominatim usage policy requires an identifying User-Agent
    return {"Accept-Language": "en", "User-Agent": settings.NOMINATIM_USER_AGENT}


def _address_hash(address: str) -> str:
    """Normalize and hash an address for cache key."""
    normalized = " ".join(address.strip().lower().split())
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


def _latlng_hash(lat: float, lng: float) -> str:
    """Hash lat/lng to 4 decimal places for reverse cache."""
    key = f"{float(lat):.4f},{float(lng):.4f}"
    return hashlib.sha256(key.encode()).hexdigest()[:16]


# ── Address helpers ────────────────────────────────────────

def extract_state_city(address: dict | None) -> tuple[str | None, str | None]:
    """Pick the state and the most specific settlement name from address details."""
    if not address:
        return None, None
    state = address.get("state")
    city = address.get("city") or address.get("town") or address.get("village")
    return state, city


def format_address(address: dict | None, fallback: str = "") -> str:
    """
    Build "house, road, suburb, city, state, postcode, country" from
    address details, skipping missing parts.
    """
    if not address:
        return fallback
    state, city = extract_state_city(address)
    parts = [
        address.get("house_number"),
        address.get("road"),
        address.get("suburb"),
        city,
        state,
        address.get("postcode"),
        address.get("country"),
    ]
    formatted = ", ".join(p for p in parts if p)
    return formatted or fallback


# ── Forward geocoding ──────────────────────────────────────

async def geocode_search(address: str) -> dict | None:
    """
    Geocode free text to coordinates. Uses Redis cache first.

    Returns:
        {"lat": float, "lng": float, "formatted": str, "address": dict} or None
    """
    if not address or not address.strip():
        return None

    r = await _get_redis()
    cache_key = f"geo:{_address_hash(address)}"

    cached = await r.get(cache_key)
    if cached:
        return json.loads(cached)

    # Country suffix improves accuracy; results are restricted to the country anyway
    query = f"{address}, India" if settings.COUNTRY_CODE.upper() == "IN" else address

    http = await _get_http()
    resp = await http.get(
        NOMINATIM_SEARCH_URL,
        params={
            "q": query,
            "format": "json",
            "limit": 1,
            "addressdetails": 1,
            "countrycodes": settings.COUNTRY_CODE.lower(),
        },
        headers=_headers(),
    )
    resp.raise_for_status()
    hits = resp.json()
    if not hits:
        logger.info("No locations found for address: %s", address)
        return None

    hit = hits[0]
    result = {
        "lat": float(hit["lat"]),
        "lng": float(hit["lon"]),
        "formatted": hit.get("display_name", address),
        "address": hit.get("address") or {},
    }

    await r.set(cache_key, json.dumps(result), ex=settings.GEOCODE_CACHE_TTL)
    return result


# ── Reverse geocoding ──────────────────────────────────────

async def reverse_geocode(lat: float, lng: float) -> dict | None:
    """
    Reverse geocode coordinates to address details.

    Returns:
        {"lat", "lng", "display_name", "address": dict, "formatted": str} or None
    """
    r = await _get_redis()
    cache_key = f"rev:{_latlng_hash(lat, lng)}"

    cached = await r.get(cache_key)
    if cached:
        return json.loads(cached)

    http = await _get_http()
    resp = await http.get(
        NOMINATIM_REVERSE_URL,
        params={
            "lat": lat,
            "lon": lng,
            "format": "json",
            "zoom": 18,
            "addressdetails": 1,
        },
        headers=_headers(),
    )
    resp.raise_for_status()
    data = resp.json()
    if not data or "error" in data:
        return None

    details = data.get("address") or {}
    result = {
        "lat": float(lat),
        "lng": float(lng),
        "display_name": data.get("display_name", ""),
        "address": details,
        "formatted": format_address(details, data.get("display_name", "")),
    }

    await r.set(cache_key, json.dumps(result), ex=REVERSE_CACHE_TTL)
    return result
