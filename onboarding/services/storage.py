"""
Cloudinary Object Storage — unsigned uploads over the REST API.

Upload strategy:
  - public_id carries the full folder path (Base/businessId/Category/name.ext)
  - no leading/trailing slashes in folders or public ids
  - the response public_id is split back into folder + file name
"""

import logging

import httpx

from onboarding.config import settings
from onboarding.errors import UploadFailedError

logger = logging.getLogger(__name__)

CLOUDINARY_API_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/upload"


def format_folder(folder: str | None) -> str:
    """Strip leading/trailing slashes; Cloudinary rejects them in folder names."""
    if not folder:
        return ""
    return folder.strip("/")


class CloudinaryStorage:
    """Object storage backed by a Cloudinary unsigned upload preset."""

    def __init__(
        self,
        cloud_name: str | None = None,
        upload_preset: str | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.upload_preset = upload_preset or settings.CLOUDINARY_UPLOAD_PRESET
        self._http = http

    @property
    def upload_url(self) -> str:
        return CLOUDINARY_API_URL.format(cloud_name=self.cloud_name)

    async def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SEC * 4)
        return self._http

    async def upload(
        self,
        payload: bytes,
        public_id: str,
        folder: str = "",
        filename: str | None = None,
        content_type: str | None = None,
    ) -> dict:
        """
        Upload a binary payload.

        Args:
            payload: File bytes
            public_id: Target name; may embed the folder path ("a/b/logo.png")
            folder: Separate folder, used only when public_id has no path
            filename: Original file name sent with the multipart part
            content_type: MIME type of the payload

        Returns:
            {"url", "public_id", "original_name", "folder", "full_path", "file_name"}

        Raises:
            UploadFailedError: on a non-2xx response or a response without a URL
        """
        data = {"upload_preset": self.upload_preset}
        public_id = public_id.rstrip("/")
        formatted_folder = format_folder(folder)

        if "/" in public_id:
            data["public_id"] = public_id
        elif formatted_folder:
            data["folder"] = formatted_folder
            if public_id:
                data["public_id"] = public_id
        elif public_id:
            data["public_id"] = public_id

        files = {
            "file": (
                filename or public_id.rsplit("/", 1)[-1] or "upload",
                payload,
                content_type or "application/octet-stream",
            ),
        }

        logger.info(
            "Starting Cloudinary upload: public_id=%s size=%d type=%s",
            public_id, len(payload), content_type,
        )

        http = await self._client()
        try:
            resp = await http.post(self.upload_url, data=data, files=files)
        except httpx.HTTPError as e:
            raise UploadFailedError(public_id, str(e)) from e

        if resp.status_code >= 400:
            logger.error(
                "Cloudinary API error: status=%s body=%s",
                resp.status_code, resp.text[:200],
            )
            raise UploadFailedError(public_id, f"{resp.status_code} {resp.text[:200]}")

        body = resp.json()
        url = body.get("secure_url")
        if not url:
            raise UploadFailedError(public_id, "no secure URL in response")

        returned_id = body.get("public_id", public_id)
        parts = returned_id.split("/")
        file_name = parts.pop()
        extracted_folder = "/".join(parts)

        return {
            "url": url,
            "public_id": returned_id,
            "original_name": body.get("original_filename"),
            "folder": extracted_folder or formatted_folder,
            "full_path": returned_id,
            "file_name": file_name,
        }

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None
