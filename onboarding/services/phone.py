"""Phone number helpers. Numbers are entered as 10 digits with an implicit +91."""

import re

from onboarding.config import settings

PHONE_RE = re.compile(r"^\d{10}$")


def clean_phone_input(value: str) -> str:
    """Reduce free-form input to the trailing 10 national digits."""
    digits = re.sub(r"\D", "", value or "")
    if digits.startswith("91") and len(digits) > 10:
        digits = digits[2:]
    return digits[-10:]


def is_valid_phone(phone: str | None) -> bool:
    return bool(phone) and PHONE_RE.match(phone) is not None


def format_phone(phone: str | None, prefix: str | None = None) -> str:
    """
    Ensure the country prefix: "9876543210" → "+919876543210".
    Already-prefixed numbers are returned unchanged.
    """
    prefix = prefix or settings.PHONE_COUNTRY_PREFIX
    if not phone:
        return ""
    if phone.startswith(prefix):
        return phone
    country_digits = prefix.lstrip("+")
    stripped = re.sub(rf"^\+?(?:{country_digits})?", "", phone) if len(phone) > 10 else phone
    return f"{prefix}{stripped}"


def normalize_phone(phone: str) -> str:
    """Comparison form: no spaces, only digits and '+'."""
    return re.sub(r"[^\d+]", "", phone or "")
