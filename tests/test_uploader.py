"""Tests for asset naming, normalization and single-asset upload."""

import pytest

from onboarding.errors import UnsupportedAssetError, UploadFailedError
from onboarding.schemas import AssetReference, FileBlob, PreviewAsset
from onboarding.services.uploader import (
    AssetCategory,
    AssetUploader,
    UploadPayload,
    asset_path,
    category_for,
    decode_data_uri,
    derive_business_id,
    file_extension,
)

from conftest import PNG_URI, FakeStorage


def test_business_id_replaces_each_disallowed_char():
    assert derive_business_id("Joe's Café!") == "Joe_s_Caf__"


def test_business_id_is_deterministic():
    assert derive_business_id("Sharma Sweets") == derive_business_id("Sharma Sweets")
    assert derive_business_id("Sharma-Sweets_2") == "Sharma-Sweets_2"


def test_business_id_fallback_uses_timestamp():
    assert derive_business_id("", now=1700000000.5) == "business_1700000000500"
    assert derive_business_id(None, now=1.0) == "business_1000"


def test_category_for_profile_and_verification_assets():
    assert category_for("logo") == AssetCategory.PROFILE
    assert category_for("cover") == AssetCategory.PROFILE
    assert category_for("governmentId") == AssetCategory.VERIFICATION
    assert category_for("businessPhoto_1") == AssetCategory.VERIFICATION


def test_asset_path_layout():
    path = asset_path("UdhyogUnity", "Joe_s_Caf__", AssetCategory.PROFILE, "logo", ".png")
    assert path == "UdhyogUnity/Joe_s_Caf__/Profile/logo.png"
    assert asset_path("Base", "b1", "Verification", "introVideo") == "Base/b1/Verification/introVideo"


def test_file_extension_sources():
    assert file_extension(name="photo.final.jpeg") == ".jpeg"
    assert file_extension(data_uri=PNG_URI) == ".png"
    assert file_extension(name="noext", data_uri="data:video/mp4;base64,AAAA") == ".mp4"
    assert file_extension(name="noext", fallback=".bin") == ".bin"


def test_decode_data_uri_base64_and_plain():
    data, mime = decode_data_uri("data:text/plain;base64,aGVsbG8=")
    assert data == b"hello"
    assert mime == "text/plain"

    data, mime = decode_data_uri("data:,hi%20there")
    assert data == b"hi there"
    assert mime is None


def test_decode_data_uri_rejects_non_data_uri():
    with pytest.raises(ValueError):
        decode_data_uri("https://example.com/a.png")


def test_normalize_remote_url_is_reference():
    uploader = AssetUploader(FakeStorage())
    url = "https://res.cloudinary.com/demo/image/upload/UdhyogUnity/b/Profile/logo.png"
    result = uploader.normalize(url, "logo")
    assert isinstance(result, AssetReference)
    assert result.url == url


def test_normalize_local_representations():
    uploader = AssetUploader(FakeStorage())

    blob = uploader.normalize(FileBlob(name="id.pdf", content_type="application/pdf", data=b"%PDF"), "governmentId")
    assert isinstance(blob, UploadPayload)
    assert blob.extension == ".pdf"
    assert blob.data == b"%PDF"

    preview = uploader.normalize(PreviewAsset(name="shop.png", preview=PNG_URI), "businessPhoto_1")
    assert isinstance(preview, UploadPayload)
    assert preview.extension == ".png"
    assert preview.original_name == "shop.png"

    mapping = uploader.normalize({"name": "a.png", "preview": PNG_URI}, "logo")
    assert isinstance(mapping, UploadPayload)

    assert uploader.normalize(None, "logo") is None


def test_normalize_unsupported_representation_raises():
    uploader = AssetUploader(FakeStorage())
    with pytest.raises(UnsupportedAssetError):
        uploader.normalize("C:/Users/joe/logo.png", "logo")
    with pytest.raises(UnsupportedAssetError):
        uploader.normalize({"name": "logo.png"}, "logo")
    with pytest.raises(UnsupportedAssetError):
        uploader.normalize(42, "logo")


@pytest.mark.asyncio
async def test_upload_local_asset_under_business_folder():
    storage = FakeStorage()
    uploader = AssetUploader(storage, base_folder="UdhyogUnity")

    ref = await uploader.upload(PNG_URI, "Joe_s_Caf__", "logo")

    assert storage.uploads == ["UdhyogUnity/Joe_s_Caf__/Profile/logo.png"]
    assert ref.public_id == "UdhyogUnity/Joe_s_Caf__/Profile/logo.png"
    assert ref.folder == "UdhyogUnity/Joe_s_Caf__/Profile"
    assert ref.url.startswith("https://res.cloudinary.com/")


@pytest.mark.asyncio
async def test_upload_is_idempotent_for_remote_assets():
    storage = FakeStorage()
    uploader = AssetUploader(storage)

    first = await uploader.upload(PNG_URI, "biz", "logo")
    second = await uploader.upload(first, "biz", "logo")
    third = await uploader.upload(first.url, "biz", "logo")

    assert second == first
    assert third.url == first.url
    assert len(storage.uploads) == 1


@pytest.mark.asyncio
async def test_upload_wraps_unreadable_payload():
    uploader = AssetUploader(FakeStorage())
    with pytest.raises(UploadFailedError):
        await uploader.upload("data:image/png;base64,abc", "biz", "logo")
