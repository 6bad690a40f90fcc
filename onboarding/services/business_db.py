"""
Business records — the "Businesses" collection (full registration, source
of truth) and the "BusinessUsers" collection (authentication-facing subset).
Both are keyed by the business email.
"""

from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any

from onboarding.services.document_store import BUSINESS_USERS, BUSINESSES, DocumentStore
from onboarding.services.phone import format_phone

logger = logging.getLogger(__name__)


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def sanitize_data(obj: Any) -> Any:
    """Recursively drop None values (and None list items) from a record."""
    if obj is None:
        return None
    if isinstance(obj, list):
        return [v for v in (sanitize_data(item) for item in obj) if v is not None]
    if isinstance(obj, dict):
        cleaned = {}
        for key, value in obj.items():
            value = sanitize_data(value)
            if value is not None:
                cleaned[key] = value
        return cleaned
    return obj


# ── Businesses ─────────────────────────────────────────────

async def add_business(store: DocumentStore, record: dict, business_id: str) -> str:
    """
    Persist the consolidated business record under its email.

    Adds businessId, active/verified flags and ISO timestamps, and
    normalizes the phone number to its +91 form.

    Returns:
        The business id
    """
    now = utcnow_iso()
    data = sanitize_data({
        **record,
        "phoneNumber": format_phone(record.get("phoneNumber")) or None,
        "businessId": business_id,
        "status": "active",
        "isVerified": True,
        "isBusinessRegistered": True,
        "createdAt": now,
        "verifiedAt": now,
    })
    await store.set(BUSINESSES, record["email"], data)
    logger.info("Business saved: business_id=%s email=%s", business_id, record["email"])
    return business_id


async def get_business(store: DocumentStore, email: str) -> dict | None:
    if not email:
        return None
    return await store.get(BUSINESSES, email)


# ── BusinessUsers ──────────────────────────────────────────

async def add_business_user(store: DocumentStore, email: str, data: dict) -> dict:
    """Create or merge the authentication record for a business account."""
    user = {
        "email": email,
        "businessName": data.get("businessName", ""),
        "contactPerson": data.get("contactPerson", ""),
        "phone": format_phone(data.get("phone", "")),
        "businessType": data.get("businessType", ""),
        "accountType": "business",
        "isVerified": bool(data.get("isVerified", False)),
        "createdAt": data.get("createdAt") or utcnow_iso(),
        "lastLogin": utcnow_iso(),
        "status": "active",
    }
    if "isBusinessRegistered" in data:
        user["isBusinessRegistered"] = bool(data["isBusinessRegistered"])

    await store.set(BUSINESS_USERS, email, user, merge=True)
    logger.info("Business user written: email=%s", email)
    return user


async def get_business_user(
    store: DocumentStore,
    email: str | None = None,
    phone: str | None = None,
) -> dict | None:
    """Look up by email (document key), falling back to a phone field query."""
    if not email and not phone:
        return None
    if email:
        found = await store.get(BUSINESS_USERS, email)
        if found:
            return found
    if phone:
        matches = await store.query(BUSINESS_USERS, "phone", phone)
        if matches:
            return matches[0]
    logger.info("No business user found for email=%s phone=%s", email, phone)
    return None


async def link_business_registration(store: DocumentStore, email: str, business_id: str) -> None:
    """Mark the business user as registered and point it at its business record."""
    now = utcnow_iso()
    await store.update(BUSINESS_USERS, email, {
        "linkedBusinessId": business_id,
        "isBusinessRegistered": True,
        "businessRegistrationDate": now,
        "updatedAt": now,
    })
