"""Wire client for the Gemini Files API resumable upload protocol."""

import logging
from typing import Any

import httpx

from pitchscan.config import settings
from pitchscan.errors import UploadError
from pitchscan.types import MediaAsset, RemoteAsset

logger = logging.getLogger(__name__)

UPLOAD_URL_HEADER = "X-Goog-Upload-URL"
COMMAND_UPLOAD = "upload"
COMMAND_UPLOAD_FINALIZE = "upload, finalize"


class FilesApiClient:
    """Thin async client over the Files API endpoints.

    Owns no connection pool of its own; the ``httpx.AsyncClient`` is created
    by the composition root and shared with the inference client.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._http = http
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")

        if not self._api_key:
            logger.warning("GEMINI_API_KEY not set. Files API calls will be rejected.")

    @property
    def _params(self) -> dict[str, str]:
        return {"key": self._api_key}

    def file_url(self, name: str) -> str:
        """URL of the per-asset resource, e.g. ``files/abc123``."""
        return f"{self._base_url}/v1beta/{name}"

    async def start_upload(self, media: MediaAsset) -> str:
        """Open a resumable session and return its upload URL.

        Raises:
            UploadError: If the request fails or no session URL is returned.
        """
        try:
            response = await self._http.post(
                f"{self._base_url}/upload/v1beta/files",
                params=self._params,
                headers={
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "start",
                    "X-Goog-Upload-Header-Content-Length": str(media.size_bytes),
                    "X-Goog-Upload-Header-Content-Type": media.mime_type,
                },
                json={"file": {"display_name": media.display_name, "mime_type": media.mime_type}},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Upload initiation failed: {e}", retryable=True) from e

        if response.is_error:
            logger.error(f"Upload initiation rejected: {response.status_code} {response.text[:500]}")
            raise UploadError(
                f"Upload initiation failed with status {response.status_code}",
                retryable=response.status_code >= 500,
                status_code=response.status_code,
            )

        upload_url = response.headers.get(UPLOAD_URL_HEADER)
        if not upload_url:
            raise UploadError("Upload initiation response did not include a session upload URL")
        return upload_url

    async def put_chunk(
        self, upload_url: str, chunk: bytes, offset: int, finalize: bool
    ) -> dict[str, Any] | None:
        """Send one chunk at ``offset``.

        Returns:
            The finalize response body for the last chunk, otherwise None.

        Raises:
            UploadError: If the chunk is not acknowledged.
        """
        command = COMMAND_UPLOAD_FINALIZE if finalize else COMMAND_UPLOAD
        try:
            response = await self._http.put(
                upload_url,
                headers={
                    "X-Goog-Upload-Offset": str(offset),
                    "X-Goog-Upload-Command": command,
                },
                content=chunk,
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Chunk at offset {offset} failed: {e}", retryable=True) from e

        if response.is_error:
            logger.error(f"Chunk at offset {offset} rejected: {response.status_code} {response.text[:500]}")
            raise UploadError(
                f"Chunk at offset {offset} failed with status {response.status_code}",
                retryable=response.status_code >= 500,
                status_code=response.status_code,
            )

        if not finalize:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise UploadError("Finalize response was not valid JSON") from e

    async def get_file(self, name: str) -> RemoteAsset:
        """Fetch the current state of an uploaded file.

        Raises:
            httpx.HTTPError: On transport failure or non-2xx status.
            KeyError: If the body carries no file name.
            ValueError: If the body is not a JSON object.
        """
        response = await self._http.get(self.file_url(name), params=self._params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected status body for {name}: {type(data).__name__}")
        return RemoteAsset.from_dict(data)

    async def delete_file(self, name: str) -> bool:
        """Delete an uploaded file. Never raises; returns True on success."""
        try:
            response = await self._http.delete(self.file_url(name), params=self._params)
        except httpx.HTTPError as e:
            logger.warning(f"Failed to delete remote file {name}: {e}")
            return False

        if response.is_error:
            logger.warning(f"Failed to delete remote file {name}: {response.status_code}")
            return False
        logger.info(f"Deleted remote file {name}")
        return True
