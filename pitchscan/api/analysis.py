"""Video analysis API endpoints."""

import json
import logging
import mimetypes
import tempfile
from enum import Enum
from pathlib import Path
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status

from pitchscan.config import settings
from pitchscan.errors import DecodeError, PipelineError, UploadError, describe_failure
from pitchscan.schemas.analysis import DetectionResponse, PerformanceResponse
from pitchscan.services.analysis_pipeline import AnalysisPipeline
from pitchscan.services.upload_manager import format_file_size
from pitchscan.types import MediaAsset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])

SPOOL_CHUNK_BYTES = 8 * 1024 * 1024
VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv", ".webm", ".mpeg", ".3gp"}


class DetectionMode(str, Enum):
    VIDEO = "video"
    FRAME = "frame"


def get_pipeline(request: Request) -> AnalysisPipeline:
    """Pipeline built by the application lifespan."""
    return request.app.state.pipeline


def _video_mime_type(file: UploadFile) -> str:
    """Resolve the upload's MIME type, checking both content type and extension."""
    if file.content_type and file.content_type.startswith("video/"):
        return file.content_type

    extension = Path(file.filename or "").suffix.lower()
    if extension in VIDEO_EXTENSIONS:
        return mimetypes.guess_type(f"video{extension}")[0] or "video/mp4"

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"Invalid file type. Expected video file but got {file.content_type} with extension {extension}",
    )


async def _spool_upload(file: UploadFile) -> Path:
    """Copy the request body to a temp file without holding it in memory.

    Raises:
        HTTPException: 413 once the body exceeds the upload limit.
    """
    suffix = Path(file.filename or "").suffix or ".mp4"
    written = 0
    with tempfile.NamedTemporaryFile(suffix=suffix, dir=settings.upload_tmp_dir, delete=False) as buffer:
        path = Path(buffer.name)
        try:
            while chunk := await file.read(SPOOL_CHUNK_BYTES):
                written += len(chunk)
                if written > settings.max_upload_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=(
                            f"Video file too large, maximum supported is "
                            f"{format_file_size(settings.max_upload_bytes)}"
                        ),
                    )
                buffer.write(chunk)
        except BaseException:
            buffer.close()
            path.unlink(missing_ok=True)
            raise
    return path


def _pipeline_http_error(error: PipelineError) -> HTTPException:
    message = describe_failure(error)
    rejected_upload = isinstance(error, UploadError) and error.status_code is None and not error.retryable
    if isinstance(error, DecodeError) or rejected_upload:
        logger.warning(f"Rejected video: {error}")
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
    logger.error(f"Analysis failed: {error}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


@router.post("/detections", response_model=DetectionResponse)
async def detect_players(
    video: Annotated[UploadFile, File(description="Football match video")],
    pipeline: Annotated[AnalysisPipeline, Depends(get_pipeline)],
    mode: Annotated[DetectionMode, Form(description="'video' for whole-video, 'frame' for best-frame detection")] = DetectionMode.VIDEO,
) -> DetectionResponse:
    """Detect players and team colors in an uploaded video.

    In video mode the whole video is uploaded to the AI service. In frame mode
    candidate frames are ranked locally by player count and only the best one
    is analyzed.

    The result is marked ``degraded`` when every AI attempt failed and
    fallback players were returned instead.
    """
    mime_type = _video_mime_type(video)
    path = await _spool_upload(video)
    try:
        if mode == DetectionMode.FRAME:
            result = await pipeline.detect_players_in_best_frame(path)
        else:
            media = MediaAsset.from_path(path, mime_type, display_name=video.filename or path.name)
            result = await pipeline.detect_players_in_video(media)
    except PipelineError as e:
        raise _pipeline_http_error(e) from e
    finally:
        path.unlink(missing_ok=True)

    return DetectionResponse.from_result(result)


@router.post("/performance", response_model=PerformanceResponse)
async def analyze_performance(
    video: Annotated[UploadFile, File(description="Football match video")],
    player_id: Annotated[str, Form(description="ID of the player being analyzed")],
    player_name: Annotated[str, Form(description="Name of the player being analyzed")],
    pipeline: Annotated[AnalysisPipeline, Depends(get_pipeline)],
    existing_player_data: Annotated[str | None, Form(description="Previous player data as JSON")] = None,
) -> PerformanceResponse:
    """Score one player's performance across the uploaded video."""
    if not player_name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Player name cannot be empty")

    # Accepted for client compatibility; the analysis itself does not use it.
    if existing_player_data:
        try:
            json.loads(existing_player_data)
        except ValueError as e:
            logger.warning(f"Ignoring unparseable existing player data: {e}")

    mime_type = _video_mime_type(video)
    path = await _spool_upload(video)
    try:
        media = MediaAsset.from_path(path, mime_type, display_name=video.filename or path.name)
        result = await pipeline.analyze_player_performance(media, player_name)
    except PipelineError as e:
        raise _pipeline_http_error(e) from e
    finally:
        path.unlink(missing_ok=True)

    return PerformanceResponse.from_result(result, player_id, player_name.strip())
