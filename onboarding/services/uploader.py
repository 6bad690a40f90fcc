"""
Asset Uploader — turns one in-memory media representation into a durable
storage object under a deterministic path.

Path scheme:
  {base_folder}/{business_id}/{category}/{asset_name}{extension}

  - business_id: business name with every char outside [A-Za-z0-9_-] → "_"
  - category: "Profile" for logo/cover, "Verification" for everything else

Accepted sources:
  - AssetReference or remote storage URL → returned as-is, never re-uploaded
  - data URI string → decoded payload
  - FileBlob → raw bytes
  - PreviewAsset → read through its preview data URI
"""

from __future__ import annotations
import base64
import logging
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping
from urllib.parse import unquote_to_bytes

from onboarding.config import settings
from onboarding.errors import UnsupportedAssetError, UploadFailedError
from onboarding.schemas import AssetReference, FileBlob, PreviewAsset
from onboarding.services.storage import CloudinaryStorage, format_folder

logger = logging.getLogger(__name__)

BUSINESS_ID_RE = re.compile(r"[^A-Za-z0-9_-]")
DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?P<params>(?:;[^,;]*)*),(?P<data>.*)$", re.S)
DATA_URI_EXT_RE = re.compile(r"^data:(image|video|application)/(\w+);")


class AssetCategory(str, Enum):
    PROFILE = "Profile"
    VERIFICATION = "Verification"


PROFILE_ASSETS = {"logo", "cover"}


@dataclass
class UploadPayload:
    data: bytes
    extension: str = ""
    content_type: str | None = None
    original_name: str | None = None


# ── Naming ─────────────────────────────────────────────────

def derive_business_id(business_name: str | None, now: float | None = None) -> str:
    """
    Derive the storage/document id for a business.

    Each disallowed character is replaced 1:1, so "Joe's Café!" becomes
    "Joe_s_Caf__". An empty name falls back to a millisecond timestamp id.
    """
    if business_name:
        return BUSINESS_ID_RE.sub("_", business_name)
    ts = int((now if now is not None else time.time()) * 1000)
    return f"business_{ts}"


def category_for(asset_name: str) -> AssetCategory:
    if asset_name in PROFILE_ASSETS:
        return AssetCategory.PROFILE
    return AssetCategory.VERIFICATION


def asset_folder(base_folder: str, business_id: str, category: AssetCategory | str) -> str:
    category = category.value if isinstance(category, AssetCategory) else category
    return format_folder(f"{base_folder}/{business_id}/{category}")


def asset_path(
    base_folder: str,
    business_id: str,
    category: AssetCategory | str,
    asset_name: str,
    extension: str = "",
) -> str:
    """Full public id: folder plus asset name with extension."""
    return f"{asset_folder(base_folder, business_id, category)}/{asset_name}{extension}"


def file_extension(name: str | None = None, data_uri: str | None = None, fallback: str = "") -> str:
    """Extension from a file name ("a.png" → ".png"), else from a data URI subtype."""
    if name and "." in name:
        ext = name.rsplit(".", 1)[-1]
        if ext:
            return f".{ext}"
    if data_uri:
        match = DATA_URI_EXT_RE.match(data_uri)
        if match:
            return f".{match.group(2)}"
    return fallback


def decode_data_uri(uri: str) -> tuple[bytes, str | None]:
    """Decode a data URI into (bytes, mime type)."""
    match = DATA_URI_RE.match(uri)
    if not match:
        raise ValueError("not a data URI")
    mime = match.group("mime")
    params = match.group("params") or ""
    raw = match.group("data")
    if ";base64" in params:
        return base64.b64decode(raw), mime
    return unquote_to_bytes(raw), mime


# ── Uploader ───────────────────────────────────────────────

class AssetUploader:
    """Uploads a single asset to object storage under the business folder."""

    def __init__(
        self,
        storage: CloudinaryStorage,
        base_folder: str | None = None,
        storage_host_prefix: str | None = None,
    ):
        self.storage = storage
        self.base_folder = base_folder or settings.CLOUDINARY_BASE_FOLDER
        self.storage_host_prefix = storage_host_prefix or settings.STORAGE_HOST_PREFIX

    def is_remote(self, value: Any) -> bool:
        return isinstance(value, str) and value.startswith(self.storage_host_prefix)

    def normalize(self, source: Any, asset_name: str) -> AssetReference | UploadPayload | None:
        """
        Reduce a media source to either a durable reference (no upload needed)
        or a binary payload ready for upload.

        Raises:
            UnsupportedAssetError: for representations that hold no readable content
        """
        if source is None:
            return None

        if isinstance(source, Mapping):
            source = _coerce_mapping(source, asset_name)

        if isinstance(source, AssetReference):
            return source

        if isinstance(source, str):
            if self.is_remote(source):
                return AssetReference(url=source, public_id=asset_name, original_name=asset_name)
            if source.startswith("data:"):
                data, mime = decode_data_uri(source)
                return UploadPayload(data, file_extension(data_uri=source), mime)
            raise UnsupportedAssetError(asset_name)

        if isinstance(source, FileBlob):
            return UploadPayload(
                source.data,
                file_extension(name=source.name),
                source.content_type,
                source.name,
            )

        if isinstance(source, PreviewAsset):
            if self.is_remote(source.preview):
                return AssetReference(url=source.preview, public_id=asset_name, original_name=source.name)
            if not source.preview.startswith("data:"):
                raise UnsupportedAssetError(asset_name)
            data, mime = decode_data_uri(source.preview)
            return UploadPayload(
                data,
                file_extension(name=source.name, data_uri=source.preview),
                source.type or mime,
                source.name,
            )

        if isinstance(source, (bytes, bytearray)):
            return UploadPayload(bytes(source))

        raise UnsupportedAssetError(asset_name)

    async def upload(
        self,
        source: Any,
        business_id: str,
        asset_name: str,
        category: AssetCategory | str | None = None,
    ) -> AssetReference | None:
        """
        Upload one asset and return its durable reference.

        Already-remote sources come back unchanged without a storage call.
        Returns None when there is nothing to upload.

        Raises:
            UploadFailedError: if the payload cannot be read or storage rejects it
        """
        try:
            normalized = self.normalize(source, asset_name)
        except ValueError as e:
            raise UploadFailedError(asset_name, str(e)) from e

        if normalized is None:
            return None
        if isinstance(normalized, AssetReference):
            logger.info("Asset already uploaded, skipping: %s → %s", asset_name, normalized.url)
            return normalized

        category = category or category_for(asset_name)
        public_id = asset_path(
            self.base_folder, business_id, category, asset_name, normalized.extension,
        )
        logger.info("Uploading %s using full path: %s", asset_name, public_id)

        result = await self.storage.upload(
            normalized.data,
            public_id,
            filename=normalized.original_name or f"{asset_name}{normalized.extension}",
            content_type=normalized.content_type,
        )
        return AssetReference(
            url=result["url"],
            public_id=result["public_id"],
            original_name=result.get("original_name") or normalized.original_name,
            folder=result.get("folder") or asset_folder(self.base_folder, business_id, category),
            full_path=result.get("full_path"),
        )


def _coerce_mapping(source: Mapping, asset_name: str) -> AssetReference | PreviewAsset:
    if source.get("url") and source.get("public_id"):
        return AssetReference.model_validate(source)
    if source.get("preview"):
        return PreviewAsset.model_validate(source)
    raise UnsupportedAssetError(asset_name)
