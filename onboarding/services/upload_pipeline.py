"""
Upload Pipeline — concurrent fan-out of every registration asset.

All named assets are uploaded at once on the event loop and the pipeline
waits until each one has settled. A failing asset never cancels its
siblings; it is recorded by name and makes the whole outcome unusable for
persistence (all-or-nothing).
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from onboarding.schemas import AssetReference, FormAggregate
from onboarding.services.uploader import AssetUploader

logger = logging.getLogger(__name__)

PHOTO_ASSET_PREFIX = "businessPhoto_"

# Asset name → aggregate field, in upload order.
MEDIA_ASSETS = {
    "logo": "logo",
    "cover": "cover_image",
    "governmentId": "government_id",
    "verificationDocument": "verification_document",
    "introVideo": "intro_video",
}
PHOTOS_ASSET = "businessPhotos"


@dataclass
class UploadOutcome:
    results: dict[str, AssetReference | list[AssetReference] | None] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def named_assets_from(aggregate: FormAggregate) -> dict[str, Any]:
    """Collect the uploadable assets of an aggregate under their asset names."""
    named: dict[str, Any] = {
        asset: getattr(aggregate, attr) for asset, attr in MEDIA_ASSETS.items()
    }
    named[PHOTOS_ASSET] = list(aggregate.business_photos)
    return named


class UploadPipeline:
    """Uploads a fixed set of named assets for one business concurrently."""

    def __init__(self, uploader: AssetUploader):
        self.uploader = uploader

    async def _upload_one(self, business_id: str, name: str, source: Any) -> AssetReference | None:
        return await self.uploader.upload(source, business_id, name)

    async def _upload_photos(self, business_id: str, photos: list[Any]) -> list[AssetReference | BaseException | None]:
        # Each photo settles independently so a single failure can be named.
        return await asyncio.gather(
            *(
                self._upload_one(business_id, f"{PHOTO_ASSET_PREFIX}{idx}", photo)
                for idx, photo in enumerate(photos, start=1)
            ),
            return_exceptions=True,
        )

    async def upload_all(
        self,
        business_id: str,
        named_assets: Mapping[str, Any],
    ) -> UploadOutcome:
        """
        Upload every named asset concurrently.

        Args:
            business_id: Folder id for this business (see derive_business_id)
            named_assets: {asset_name: source}; list values are treated as
                photo lists and uploaded as businessPhoto_{n}

        Returns:
            UploadOutcome with results keyed by asset name (lists keep input
            order) and the names of every failed upload
        """
        outcome = UploadOutcome()
        names = list(named_assets.keys())

        coros = []
        for name in names:
            source = named_assets[name]
            if isinstance(source, list):
                coros.append(self._upload_photos(business_id, source))
            else:
                coros.append(self._upload_one(business_id, name, source))

        logger.info("Starting %d asset uploads for business %s", len(coros), business_id)
        settled = await asyncio.gather(*coros, return_exceptions=True)

        for name, result in zip(names, settled):
            if isinstance(result, BaseException):
                self._record_failure(outcome, name, result)
                continue

            if isinstance(named_assets[name], list):
                refs: list[AssetReference] = []
                for idx, item in enumerate(result, start=1):
                    if isinstance(item, BaseException):
                        self._record_failure(outcome, f"{PHOTO_ASSET_PREFIX}{idx}", item)
                    elif item is not None:
                        refs.append(item)
                outcome.results[name] = refs
            else:
                outcome.results[name] = result

        if outcome.ok:
            logger.info("All uploads completed for business %s", business_id)
        else:
            logger.error(
                "Uploads failed for business %s: %s",
                business_id, ", ".join(outcome.failures),
            )
        return outcome

    @staticmethod
    def _record_failure(outcome: UploadOutcome, name: str, error: BaseException) -> None:
        if isinstance(error, asyncio.CancelledError):
            raise error
        logger.warning("Upload of %s failed: %s", name, error)
        outcome.failures.append(name)
        outcome.errors[name] = str(error)
