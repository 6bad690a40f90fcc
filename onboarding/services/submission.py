"""
Submission Coordinator — final step of the registration.

  idle → uploading → persisting → done
                 ↘            ↘
                  failed       failed

Failure policy:
  - any upload failure: failed, nothing persisted
  - business record write failure: failed (primary failure)
  - BusinessUsers write/link failure: logged, submission still done
    (secondary failure, reported as a warning)
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from onboarding.errors import WizardError
from onboarding.schemas import AssetReference, FormAggregate
from onboarding.services import business_db
from onboarding.services.document_store import DocumentStore
from onboarding.services.upload_pipeline import (
    MEDIA_ASSETS,
    PHOTOS_ASSET,
    UploadOutcome,
    UploadPipeline,
    named_assets_from,
)
from onboarding.services.uploader import derive_business_id

logger = logging.getLogger(__name__)

UPLOAD_FAILED_MESSAGE = "Failed to upload files. Please try again."
SAVE_FAILED_MESSAGE = "Failed to save business data. Please try again."
ACCOUNT_LINK_WARNING = "Business saved, but the login account could not be updated."

MEDIA_FIELDS = set(MEDIA_ASSETS.values()) | {"business_photos"}
MEDIA_KEYS = {FormAggregate.model_fields[name].alias or name for name in MEDIA_FIELDS}
LOCAL_ONLY_KEYS = {"preview", "data"}


class SubmissionStatus(str, Enum):
    IDLE = "idle"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SubmissionResult:
    status: SubmissionStatus
    business_id: str | None = None
    record: dict | None = None
    upload_failures: list[str] = field(default_factory=list)
    primary_failure: str | None = None
    secondary_failure: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == SubmissionStatus.DONE


# ── Record shaping ─────────────────────────────────────────

def _is_local(value: Any) -> bool:
    if isinstance(value, str):
        return value.startswith("data:")
    if isinstance(value, dict):
        return not value.get("url") and bool(LOCAL_ONLY_KEYS & value.keys())
    return isinstance(value, (bytes, bytearray))


def strip_local_media(obj: Any) -> Any:
    """Remove in-memory-only media (data URIs, previews, raw bytes) from a record."""
    if isinstance(obj, list):
        return [strip_local_media(item) for item in obj if not _is_local(item)]
    if isinstance(obj, dict):
        return {
            key: strip_local_media(value)
            for key, value in obj.items()
            if key not in LOCAL_ONLY_KEYS and not _is_local(value)
        }
    return obj


def _reference_data(ref: AssetReference | None) -> dict | None:
    if ref is None or not ref.url:
        return None
    return ref.model_dump(exclude_none=True)


def sanitize_record(record: dict) -> dict:
    """Drop local-only media from the media fields and empty values everywhere."""
    cleaned = {
        key: strip_local_media(value) if key in MEDIA_KEYS else value
        for key, value in record.items()
        if key not in MEDIA_KEYS or not _is_local(value)
    }
    return business_db.sanitize_data(cleaned)


def build_record(aggregate: FormAggregate, uploads: UploadOutcome) -> dict:
    """Merge the form data with the uploaded references into a persistable record."""
    record = aggregate.model_dump(mode="json", by_alias=True, exclude=MEDIA_FIELDS)
    for asset, attr in MEDIA_ASSETS.items():
        alias = FormAggregate.model_fields[attr].alias or attr
        record[alias] = _reference_data(uploads.results.get(asset))
    photos = uploads.results.get(PHOTOS_ASSET) or []
    record["businessPhotos"] = [data for data in map(_reference_data, photos) if data]
    return sanitize_record(record)


# ── Coordinator ────────────────────────────────────────────

class SubmissionCoordinator:
    def __init__(self, pipeline: UploadPipeline, store: DocumentStore):
        self.pipeline = pipeline
        self.store = store
        self.status = SubmissionStatus.IDLE

    async def submit(self, aggregate: FormAggregate) -> SubmissionResult:
        """
        Upload every asset, then persist the business and its login record.

        Raises:
            WizardError: if a submission is already running
        """
        if self.status in (SubmissionStatus.UPLOADING, SubmissionStatus.PERSISTING):
            raise WizardError("Submission already in progress")

        self.status = SubmissionStatus.UPLOADING
        business_id = derive_business_id(aggregate.business_name)
        logger.info("Submitting registration: business_id=%s", business_id)

        uploads = await self.pipeline.upload_all(business_id, named_assets_from(aggregate))
        if not uploads.ok:
            self.status = SubmissionStatus.FAILED
            return SubmissionResult(
                status=self.status,
                business_id=business_id,
                upload_failures=list(uploads.failures),
                primary_failure=UPLOAD_FAILED_MESSAGE,
            )

        self.status = SubmissionStatus.PERSISTING
        record = build_record(aggregate, uploads)

        try:
            await business_db.add_business(self.store, record, business_id)
        except Exception as e:
            logger.exception("Failed to save business %s: %s", business_id, e)
            self.status = SubmissionStatus.FAILED
            return SubmissionResult(
                status=self.status,
                business_id=business_id,
                record=record,
                primary_failure=SAVE_FAILED_MESSAGE,
            )

        secondary = await self._write_business_user(aggregate, business_id)

        self.status = SubmissionStatus.DONE
        return SubmissionResult(
            status=self.status,
            business_id=business_id,
            record=record,
            secondary_failure=secondary,
        )

    async def _write_business_user(self, aggregate: FormAggregate, business_id: str) -> str | None:
        try:
            await business_db.add_business_user(self.store, aggregate.email, {
                "businessName": aggregate.business_name,
                "contactPerson": aggregate.owner_name,
                "phone": aggregate.phone_number,
                "businessType": aggregate.business_type.value if aggregate.business_type else "",
                "isVerified": True,
                "isBusinessRegistered": True,
            })
            await business_db.link_business_registration(self.store, aggregate.email, business_id)
        except Exception as e:
            logger.warning("Error creating business user account for %s: %s", aggregate.email, e)
            return ACCOUNT_LINK_WARNING
        return None
