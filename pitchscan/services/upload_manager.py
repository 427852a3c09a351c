"""Chunked resumable upload of large video payloads."""

import asyncio
import logging
import math

from pitchscan.config import settings
from pitchscan.errors import UploadError
from pitchscan.services.files_api import FilesApiClient
from pitchscan.types import MediaAsset, RemoteAsset, UploadSession

logger = logging.getLogger(__name__)


def format_file_size(size_bytes: int) -> str:
    """Human readable size, e.g. ``'1.5 GB'``."""
    if size_bytes == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    exponent = min(int(math.log(size_bytes, 1024)), len(units) - 1)
    return f"{round(size_bytes / 1024**exponent, 2):g} {units[exponent]}"


def plan_chunks(size_bytes: int, chunk_bytes: int) -> list[tuple[int, int]]:
    """Split a payload into ``(offset, length)`` pairs.

    Offsets are contiguous and strictly increasing; the last chunk may be
    shorter than ``chunk_bytes``.
    """
    if chunk_bytes <= 0:
        raise ValueError(f"chunk_bytes must be positive, got {chunk_bytes}")
    return [
        (offset, min(chunk_bytes, size_bytes - offset))
        for offset in range(0, size_bytes, chunk_bytes)
    ]


class ChunkedUploadManager:
    """Uploads a MediaAsset through a resumable session.

    Chunks are sent strictly in order; a failed chunk ends the attempt and the
    caller decides whether to restart the whole upload.
    """

    def __init__(
        self,
        files: FilesApiClient,
        chunk_bytes: int | None = None,
        max_upload_bytes: int | None = None,
    ) -> None:
        """Initialize the upload manager.

        Args:
            files: Files API wire client.
            chunk_bytes: Chunk threshold and chunk size. Defaults to settings.
            max_upload_bytes: Hard payload limit. Defaults to settings.
        """
        self._files = files
        self._chunk_bytes = chunk_bytes or settings.upload_chunk_bytes
        self._max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    def validate(self, media: MediaAsset) -> None:
        """Reject payloads that must never reach the network.

        Raises:
            UploadError: If the payload is empty, too large or not a video.
        """
        if media.size_bytes <= 0:
            raise UploadError("Video file is empty, please select a valid video file")
        if media.size_bytes > self._max_upload_bytes:
            raise UploadError(
                f"Video file too large ({format_file_size(media.size_bytes)}), "
                f"maximum supported is {format_file_size(self._max_upload_bytes)}"
            )
        if not media.mime_type.startswith("video/"):
            raise UploadError(
                f"Unsupported file format {media.mime_type!r}, please upload a valid video file"
            )

    async def upload(self, media: MediaAsset) -> RemoteAsset:
        """Upload ``media`` and return the server-side handle.

        Raises:
            UploadError: On validation, initiation or chunk failure.
        """
        self.validate(media)

        logger.info(
            f"Uploading {media.display_name} ({format_file_size(media.size_bytes)}, {media.mime_type})"
        )
        session = UploadSession(
            upload_url=await self._files.start_upload(media),
            size_bytes=media.size_bytes,
        )

        chunks = plan_chunks(media.size_bytes, self._chunk_bytes)
        result = None
        for index, (offset, length) in enumerate(chunks):
            is_last = index == len(chunks) - 1
            if offset != session.bytes_sent:
                raise UploadError(f"Chunk offset {offset} does not match {session.bytes_sent} bytes sent")

            chunk = await asyncio.to_thread(media.source.read, offset, length)
            if len(chunk) != length:
                raise UploadError(f"Short read at offset {offset}: expected {length} bytes, got {len(chunk)}")

            logger.info(f"Uploading chunk {index + 1}/{len(chunks)} ({offset}-{offset + length})")
            result = await self._files.put_chunk(session.upload_url, chunk, offset, finalize=is_last)
            session.acknowledge(length, finalize=is_last)

        file_data = (result or {}).get("file")
        if not isinstance(file_data, dict) or not file_data.get("name"):
            raise UploadError("Finalize response did not include a file handle")

        remote = RemoteAsset.from_dict(file_data)
        logger.info(f"Upload complete: {remote.name} ({remote.uri})")
        return remote
