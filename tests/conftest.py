"""Shared fakes for the onboarding tests (no network, no Redis, no Postgres)."""

import asyncio
from typing import Any

import pytest

from onboarding.errors import DocumentStoreError, NotFoundError, UploadFailedError
from onboarding.schemas import BusinessType, FormAggregate, PaymentMethod, PreviewAsset
from onboarding.services.geo_resolver import GeoResolver
from onboarding.services.identity import IdentityToken
from onboarding.services.submission import SubmissionCoordinator
from onboarding.services.upload_pipeline import UploadPipeline
from onboarding.services.uploader import AssetUploader
from onboarding.services.verification import VerificationStateMachine
from onboarding.services.wizard import WizardController

PNG_URI = "data:image/png;base64,iVBORw0KGgo="
PDF_URI = "data:application/pdf;base64,JVBERi0xLjQ="
VALID_CODE = "123456"


class InMemoryDocumentStore:
    def __init__(self, fail_collections: set[str] | None = None):
        self.collections: dict[str, dict[str, dict]] = {}
        self.fail_collections = fail_collections or set()

    def _check(self, collection: str) -> None:
        if collection in self.fail_collections:
            raise DocumentStoreError(f"{collection} unavailable")

    async def get(self, collection: str, key: str) -> dict | None:
        self._check(collection)
        doc = self.collections.get(collection, {}).get(key)
        return dict(doc) if doc is not None else None

    async def set(self, collection: str, key: str, data: dict, merge: bool = False) -> None:
        self._check(collection)
        docs = self.collections.setdefault(collection, {})
        docs[key] = {**docs.get(key, {}), **data} if merge else dict(data)

    async def update(self, collection: str, key: str, data: dict) -> None:
        self._check(collection)
        docs = self.collections.setdefault(collection, {})
        if key not in docs:
            raise NotFoundError(collection, key)
        docs[key] = {**docs[key], **data}

    async def query(self, collection: str, field: str, value: Any) -> list[dict]:
        self._check(collection)
        return [dict(d) for d in self.collections.get(collection, {}).values() if d.get(field) == value]

    def count(self) -> int:
        return sum(len(docs) for docs in self.collections.values())


class FakeStorage:
    """Records uploads; raises for any public id containing a name in ``fail_on``."""

    def __init__(self, fail_on: set[str] | None = None, delay: float = 0.0):
        self.fail_on = fail_on or set()
        self.delay = delay
        self.uploads: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, payload, public_id, folder="", filename=None, content_type=None) -> dict:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if any(name in public_id for name in self.fail_on):
                raise UploadFailedError(public_id, "rejected")
            self.uploads.append(public_id)
            folder_part, _, file_name = public_id.rpartition("/")
            return {
                "url": f"https://res.cloudinary.com/demo/image/upload/{public_id}",
                "public_id": public_id,
                "original_name": filename,
                "folder": folder_part,
                "full_path": public_id,
                "file_name": file_name,
            }
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        pass


class FakeOTPProvider:
    def __init__(self, code: str = VALID_CODE):
        self.code = code
        self.sent: list[tuple[str, str | None]] = []

    async def send_code(self, phone_e164: str, challenge_token: str | None) -> str:
        self.sent.append((phone_e164, challenge_token))
        return f"handle-{len(self.sent)}"

    async def confirm_code(self, handle: str, code: str) -> bool:
        return handle == f"handle-{len(self.sent)}" and code == self.code


class FakeIdentity:
    def __init__(self):
        self.accounts: dict[str, str] = {}

    async def sign_up(self, email: str, password: str) -> IdentityToken:
        from onboarding.errors import EmailInUseError
        if email in self.accounts:
            raise EmailInUseError(email)
        self.accounts[email] = password
        return IdentityToken(uid=f"uid-{email}", id_token="token", email=email)

    async def sign_in(self, email: str, password: str) -> IdentityToken:
        from onboarding.errors import InvalidCredentialsError
        if self.accounts.get(email) != password:
            raise InvalidCredentialsError()
        return IdentityToken(uid=f"uid-{email}", id_token="token", email=email)

    async def close(self) -> None:
        pass


class FakeReference:
    STATES = [{"code": "DL", "name": "Delhi"}, {"code": "MH", "name": "Maharashtra"}]
    CITIES = {
        "DL": [{"id": "101", "name": "New Delhi"}, {"id": "102", "name": "Dwarka"}],
        "MH": [{"id": "201", "name": "Mumbai"}, {"id": "202", "name": "Pune"}],
    }

    def __init__(self, city_delay: float = 0.0):
        self.city_delay = city_delay
        self.city_requests: list[str] = []

    async def list_states(self, country=None) -> list[dict]:
        return list(self.STATES)

    async def list_cities(self, state_code: str, country=None) -> list[dict]:
        self.city_requests.append(state_code)
        if self.city_delay:
            await asyncio.sleep(self.city_delay)
        return list(self.CITIES.get(state_code, []))

    async def close(self) -> None:
        pass


# ── Fixtures ───────────────────────────────────────────────

@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def otp_provider():
    return FakeOTPProvider()


@pytest.fixture
def reference():
    return FakeReference()


@pytest.fixture
def complete_form():
    """An aggregate that passes every step validator (phone still unverified)."""
    return FormAggregate(
        business_name="Joe's Café!",
        business_type=BusinessType.SERVICE,
        description="Fresh coffee and snacks near the metro station.",
        categories=["Food & Beverages"],
        logo=PNG_URI,
        cover_image=PreviewAsset(name="cover.jpg", type="image/jpeg", preview="data:image/jpeg;base64,/9j/4AA="),
        owner_name="Joe Kumar",
        phone_number="9876543210",
        email="joe@example.com",
        address="12 Janpath, Connaught Place",
        state="DL",
        state_name="Delhi",
        city="101",
        city_name="New Delhi",
        government_id=PDF_URI,
        verification_document=PDF_URI,
        business_photos=[PNG_URI, PNG_URI, PNG_URI],
        payment_methods=[PaymentMethod.UPI],
        upi_id="joe@upi",
        terms_agreed=True,
        details_confirmed=True,
    )


@pytest.fixture
def make_controller(store, storage, otp_provider, reference):
    """Build a WizardController over the fakes; keyword overrides for timers."""

    def factory(cooldown: int = 60, tick: float = 0.01, **geo_options) -> WizardController:
        geo_options.setdefault("debounce", 0.0)
        return WizardController(
            verification=VerificationStateMachine(otp_provider, cooldown=cooldown, tick=tick),
            geo=GeoResolver(reference, **geo_options),
            coordinator=SubmissionCoordinator(UploadPipeline(AssetUploader(storage)), store),
        )

    return factory
