"""Video frame sampling service using OpenCV."""

import logging
import math
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from pitchscan.errors import DecodeError
from pitchscan.types import Detection, FrameSample

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90
AVATAR_SIZE = 150
AVATAR_JPEG_QUALITY = 80


@dataclass
class VideoMetadata:
    """Metadata about a video file."""

    total_frames: int
    fps: float
    width: int
    height: int
    duration_seconds: float


def sample_timestamps(duration_seconds: float, count: int) -> list[float]:
    """Evenly spaced interior timestamps.

    Returns ``count`` points ``duration * i / (count + 1)`` so neither the
    first nor the last frame (often black or a transition) is chosen.
    """
    if count <= 0 or duration_seconds <= 0:
        return []
    step = duration_seconds / (count + 1)
    return [step * i for i in range(1, count + 1)]


def best_frame_sample_count(duration_seconds: float, max_samples: int = 15) -> int:
    """Roughly one candidate every two seconds, at most ``max_samples``."""
    return max(0, min(max_samples, math.floor(duration_seconds / 2)))


def _crop_span(start_pct: float, size_pct: float, extent: int) -> tuple[int, int]:
    """Pixel span of a percentage box edge, kept inside ``[0, extent)``."""
    size = size_pct / 100 * extent
    start = max(0.0, min(extent - size, start_pct / 100 * extent))
    size = min(size, extent - start)
    lower = min(int(round(start)), extent - 1)
    upper = max(lower + 1, min(extent, int(round(start + size))))
    return lower, upper


class FrameSampler:
    """Rasterizes frames at chosen timestamps of one video.

    One sampler owns one decoder, and every seek is followed by its read
    before the next seek starts. Use separate instances to sample in parallel.
    """

    def __init__(self, video_path: str | Path) -> None:
        """Initialize the frame sampler.

        Args:
            video_path: Path to the video file.

        Raises:
            DecodeError: If the video file doesn't exist.
        """
        self._video_path = Path(video_path)
        if not self._video_path.exists():
            raise DecodeError(f"Video file not found: {video_path}")

        self._cap: cv2.VideoCapture | None = None
        self._metadata: VideoMetadata | None = None

    def _open_video(self) -> cv2.VideoCapture:
        if self._cap is not None and self._cap.isOpened():
            return self._cap

        self._cap = cv2.VideoCapture(str(self._video_path))
        if not self._cap.isOpened():
            raise DecodeError(f"Failed to open video: {self._video_path}")
        return self._cap

    def close(self) -> None:
        """Release video capture resources."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def __enter__(self) -> "FrameSampler":
        self._open_video()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def get_metadata(self) -> VideoMetadata:
        """Get video metadata.

        Raises:
            DecodeError: If the video has no readable frames.
        """
        if self._metadata is not None:
            return self._metadata

        cap = self._open_video()

        total_frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        fps = cap.get(cv2.CAP_PROP_FPS)
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))

        if fps <= 0:
            fps = 30.0  # Default fallback

        if total_frames <= 0:
            raise DecodeError(f"Could not read frame count from {self._video_path}")

        self._metadata = VideoMetadata(
            total_frames=total_frames,
            fps=fps,
            width=width,
            height=height,
            duration_seconds=total_frames / fps,
        )
        return self._metadata

    def frame_at(self, timestamp_seconds: float) -> FrameSample:
        """Seek to ``timestamp_seconds`` and encode that frame as JPEG.

        Raises:
            ValueError: If the timestamp is outside the video.
            DecodeError: If the frame cannot be read or encoded.
        """
        metadata = self.get_metadata()
        if timestamp_seconds < 0 or timestamp_seconds > metadata.duration_seconds:
            raise ValueError(
                f"Timestamp {timestamp_seconds}s out of range [0, {metadata.duration_seconds}s]"
            )

        frame_number = min(int(timestamp_seconds * metadata.fps), metadata.total_frames - 1)
        cap = self._open_video()
        cap.set(cv2.CAP_PROP_POS_FRAMES, frame_number)
        ret, frame = cap.read()
        if not ret:
            raise DecodeError(f"Failed to read frame {frame_number} at {timestamp_seconds:.2f}s")

        return FrameSample(
            timestamp_seconds=timestamp_seconds,
            image_bytes=self._encode_jpeg(frame),
        )

    def sample_frames(self, count: int) -> list[FrameSample]:
        """Rasterize ``count`` evenly spaced interior frames.

        Frames that fail to decode are skipped, so the result may be shorter.
        """
        metadata = self.get_metadata()
        samples = []
        for timestamp in sample_timestamps(metadata.duration_seconds, count):
            try:
                samples.append(self.frame_at(timestamp))
            except DecodeError as e:
                logger.warning(f"Skipping frame at {timestamp:.1f}s: {e}")
        return samples

    def representative_frame(self, ratio: float = 0.5) -> FrameSample:
        """Single frame at ``ratio`` of the duration (midpoint by default)."""
        if not 0.0 <= ratio <= 1.0:
            raise ValueError(f"ratio must be within [0, 1], got {ratio}")
        metadata = self.get_metadata()
        return self.frame_at(metadata.duration_seconds * ratio)

    @staticmethod
    def crop_detection(frame: FrameSample, detection: Detection, size: int = AVATAR_SIZE) -> bytes:
        """Cut a square player avatar out of ``frame`` at the detection box.

        The box is clamped to the frame, scaled to ``size`` x ``size`` pixels
        and encoded as JPEG.

        Raises:
            DecodeError: If the frame image cannot be decoded or re-encoded.
        """
        if not frame.image_bytes:
            raise DecodeError(f"Empty frame image at {frame.timestamp_seconds:.2f}s")
        try:
            image = cv2.imdecode(np.frombuffer(frame.image_bytes, dtype=np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise DecodeError(f"Failed to decode frame at {frame.timestamp_seconds:.2f}s: {e}") from e
        if image is None:
            raise DecodeError(f"Failed to decode frame at {frame.timestamp_seconds:.2f}s")

        height, width = image.shape[:2]
        x0, x1 = _crop_span(detection.x, detection.width, width)
        y0, y1 = _crop_span(detection.y, detection.height, height)
        avatar = cv2.resize(image[y0:y1, x0:x1], (size, size), interpolation=cv2.INTER_AREA)
        return FrameSampler._encode_jpeg(avatar, AVATAR_JPEG_QUALITY)

    @staticmethod
    def _encode_jpeg(frame: np.ndarray, quality: int = JPEG_QUALITY) -> bytes:
        ok, buffer = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            raise DecodeError("Failed to encode frame as JPEG")
        return buffer.tobytes()


def crop_avatars(frame: FrameSample, detections: list[Detection]) -> dict[int, bytes]:
    """Avatar crop for every detection; undecodable crops are skipped."""
    avatars = {}
    for detection in detections:
        try:
            avatars[detection.id] = FrameSampler.crop_detection(frame, detection)
        except DecodeError as e:
            logger.warning(f"No avatar for player {detection.id}: {e}")
    return avatars
