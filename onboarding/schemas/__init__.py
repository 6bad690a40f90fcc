"""Pydantic schemas for the onboarding form aggregate and uploaded assets."""

from __future__ import annotations
import uuid
from enum import Enum
from typing import Any, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Enums ──────────────────────────────────────────────────

class BusinessType(str, Enum):
    SERVICE = "Service"
    PRODUCT = "Product"


class PaymentMethod(str, Enum):
    UPI = "upi"
    CARD = "card"
    CASH = "cash"
    BANK = "bank"


CATEGORY_OPTIONS = [
    "Electronics", "Fashion", "Home Decor", "Food & Beverages",
    "Beauty & Personal Care", "Health & Wellness", "Education & Training",
    "Professional Services", "Arts & Crafts", "Sports & Fitness",
    "Travel & Tourism", "Entertainment", "Automotive", "Real Estate",
]

DOCUMENT_TYPES = [
    "Aadhar Card", "Passport", "Business License",
    "Electricity Bill", "GST Certificate", "Business Registration Certificate",
]


# ── Assets ─────────────────────────────────────────────────

class AssetReference(BaseModel):
    """A durable pointer to an uploaded binary. Immutable once it has a url."""
    model_config = ConfigDict(frozen=True)

    url: str
    public_id: str
    original_name: str | None = None
    folder: str = ""
    full_path: str | None = None


class FileBlob(BaseModel):
    """Raw file content held in memory (upload form field, webcam capture)."""
    name: str | None = None
    content_type: str | None = None
    data: bytes


class PreviewAsset(BaseModel):
    """A local file known only through its data-URI preview."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    name: str | None = None
    type: str | None = None
    size: int | None = None
    preview: str


# A media field holds nothing, a local representation, or a durable reference.
# Plain strings are either data URIs or already-remote storage URLs.
MediaSource = Union[AssetReference, FileBlob, PreviewAsset, str]


class Coordinates(BaseModel):
    lat: float
    lng: float


DEFAULT_LOCATION = Coordinates(lat=28.6139, lng=77.2090)


# ── Form Aggregate ─────────────────────────────────────────

class FormAggregate(BaseModel):
    """Everything collected across the five registration steps."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )

    # Business details
    business_name: str = ""
    business_type: BusinessType | None = None
    description: str = ""
    categories: list[str] = Field(default_factory=list)
    operating_since: int | None = None
    logo: MediaSource | None = None
    cover_image: MediaSource | None = None

    # Contact & location
    owner_name: str = ""
    phone_number: str = ""
    email: str = ""
    address: str = ""
    service_area: str = ""
    state: str = ""
    state_name: str = ""
    city: str = ""
    city_name: str = ""
    location: Coordinates = Field(default_factory=lambda: DEFAULT_LOCATION.model_copy())

    # Verification
    government_id: MediaSource | None = None
    verification_document: MediaSource | None = None
    business_photos: list[MediaSource] = Field(default_factory=list)
    intro_video: MediaSource | None = None

    # Payment setup
    payment_methods: list[PaymentMethod] = Field(default_factory=list)
    upi_id: str = ""
    bank_details: str = ""
    use_managed_payment: bool = False

    # Terms
    terms_agreed: bool = False
    details_confirmed: bool = False

    @classmethod
    def field_name(cls, key: str) -> str | None:
        """Resolve a snake_case name or camelCase alias to the field name."""
        if key in cls.model_fields:
            return key
        return _ALIASES.get(key)

    def merge(self, patch: Mapping[str, Any]) -> FormAggregate:
        """
        Return a new aggregate with the keys in ``patch`` replaced.

        Keys may use field names or camelCase aliases. Keys not named in the
        patch keep their current value.

        Raises:
            ValueError: if the patch names an unknown field.
        """
        normalized: dict[str, Any] = {}
        unknown = []
        for key, value in patch.items():
            name = self.field_name(key)
            if name is None:
                unknown.append(key)
            else:
                normalized[name] = value
        if unknown:
            raise ValueError(f"Unknown form fields: {', '.join(sorted(unknown))}")

        return type(self).model_validate({**dict(self), **normalized})


_ALIASES = {
    (field.alias or name): name
    for name, field in FormAggregate.model_fields.items()
}


__all__ = [
    "AssetReference",
    "BusinessType",
    "CATEGORY_OPTIONS",
    "Coordinates",
    "DEFAULT_LOCATION",
    "DOCUMENT_TYPES",
    "FileBlob",
    "FormAggregate",
    "MediaSource",
    "PaymentMethod",
    "PreviewAsset",
]
