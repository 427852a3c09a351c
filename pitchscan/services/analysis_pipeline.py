"""Upload, readiness, inference and validation composed into one pipeline.

Detection and performance analysis share the same control flow; what differs
(prompt, generation settings, validator, fallback, retry policy) is carried
by an :class:`AnalysisTask`.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

import httpx

from pitchscan import prompts
from pitchscan.config import settings
from pitchscan.errors import SchemaError
from pitchscan.services.detection_normalizer import DetectionNormalizer, NormalizerConfig
from pitchscan.services.fallback import fallback_detection_payload, fallback_performance_payload
from pitchscan.services.files_api import FilesApiClient
from pitchscan.services.frame_sampler import FrameSampler, best_frame_sample_count, crop_avatars
from pitchscan.services.inference_client import (
    FilePart,
    GeminiClient,
    GenerationConfig,
    InlineImagePart,
    Part,
    TextPart,
)
from pitchscan.services.json_extractor import extract_json
from pitchscan.services.performance_normalizer import normalize_performance
from pitchscan.services.readiness_poller import ReadinessPoller
from pitchscan.services.retry import RetryOrchestrator, RetryPolicy
from pitchscan.services.upload_manager import ChunkedUploadManager
from pitchscan.types import (
    AnalysisResult,
    DetectionResultSet,
    FrameSample,
    MediaAsset,
    PerformanceReport,
    RemoteAsset,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AnalysisTask(Generic[T]):
    """What to ask the model and how to turn the reply into a result.

    ``fallback`` builds the degraded result used after retries run out;
    ``empty`` replaces it when fallback generation is disabled. With neither,
    the last error is raised.
    """

    name: str
    prompt: str
    validate: Callable[[dict[str, Any]], T]
    retry_policy: RetryPolicy
    generation_config: GenerationConfig | None = None
    fallback: Callable[[], T] | None = None
    empty: Callable[[], T] | None = None


def _detection_validator(normalizer: DetectionNormalizer) -> Callable[[dict[str, Any]], DetectionResultSet]:
    def validate(payload: dict[str, Any]) -> DetectionResultSet:
        result = normalizer.normalize(payload)
        if not result.detections:
            raise SchemaError("AI detected no valid players (all referees, invalid or low confidence)")
        return result

    return validate


def video_detection_task(min_confidence: float | None = None) -> AnalysisTask[DetectionResultSet]:
    """Whole-video player detection on a file uploaded to the Files API."""
    normalizer = DetectionNormalizer(
        NormalizerConfig(
            min_confidence=settings.video_min_confidence if min_confidence is None else min_confidence,
            min_width=1.0,
            max_width=50.0,
            min_height=1.0,
            max_height=60.0,
        )
    )
    return AnalysisTask(
        name="video player detection",
        prompt=prompts.VIDEO_DETECTION_PROMPT,
        validate=_detection_validator(normalizer),
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=2.0),
        fallback=lambda: normalizer.normalize(fallback_detection_payload()),
        empty=DetectionResultSet,
    )


def frame_detection_task(
    timestamp_seconds: float, min_confidence: float | None = None
) -> AnalysisTask[DetectionResultSet]:
    """High-precision detection on one still frame."""
    normalizer = DetectionNormalizer(
        NormalizerConfig(
            min_confidence=settings.frame_min_confidence if min_confidence is None else min_confidence,
            frame_timestamp=timestamp_seconds,
        )
    )
    return AnalysisTask(
        name="frame player detection",
        prompt=prompts.frame_detection_prompt(timestamp_seconds),
        validate=_detection_validator(normalizer),
        retry_policy=RetryPolicy(max_attempts=4, base_delay_seconds=1.5),
        fallback=lambda: normalizer.normalize(fallback_detection_payload(timestamp_seconds)),
        empty=DetectionResultSet,
    )


def performance_task(player_name: str, now: datetime | None = None) -> AnalysisTask[PerformanceReport]:
    """Per-player performance scoring over the whole video."""
    player_name = player_name.strip()
    if not player_name:
        raise ValueError("Player name cannot be empty")
    return AnalysisTask(
        name=f"performance analysis for {player_name}",
        prompt=prompts.performance_prompt(player_name, now),
        validate=lambda payload: normalize_performance(payload, now),
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=2.0),
        generation_config=GenerationConfig(temperature=0.1, max_output_tokens=2000, top_p=0.8, top_k=10),
        fallback=lambda: normalize_performance(fallback_performance_payload(player_name, now), now),
    )


def create_http_client() -> httpx.AsyncClient:
    """Shared HTTP client for the Files API and model calls."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(
            settings.http_read_timeout_seconds,
            connect=settings.http_connect_timeout_seconds,
            write=settings.http_write_timeout_seconds,
        )
    )


class AnalysisPipeline:
    """Composition of upload, readiness polling, inference and validation."""

    def __init__(
        self,
        files: FilesApiClient,
        gemini: GeminiClient,
        upload_manager: ChunkedUploadManager | None = None,
        poller: ReadinessPoller | None = None,
        acquire_policy: RetryPolicy | None = None,
        fallback_enabled: bool | None = None,
        readiness_deadline_seconds: float | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ) -> None:
        """Initialize the pipeline.

        Args:
            files: Files API wire client.
            gemini: Model client.
            upload_manager: Defaults to a ChunkedUploadManager over ``files``.
            poller: Defaults to a ReadinessPoller over ``files``.
            acquire_policy: Retry policy for upload plus readiness. Defaults to settings.
            fallback_enabled: Use synthetic results after inference retries run out.
            readiness_deadline_seconds: Per-attempt readiness deadline.
            sleep: Awaitable sleep used between retries.
        """
        self._files = files
        self._gemini = gemini
        self._upload_manager = upload_manager or ChunkedUploadManager(files)
        self._poller = poller or ReadinessPoller(files)
        self._acquire_policy = acquire_policy or RetryPolicy(
            max_attempts=settings.acquire_max_attempts,
            base_delay_seconds=settings.acquire_base_delay_seconds,
        )
        self._fallback_enabled = settings.fallback_enabled if fallback_enabled is None else fallback_enabled
        self._readiness_deadline = readiness_deadline_seconds or settings.readiness_deadline_seconds
        self._sleep = sleep

    @classmethod
    def from_http(cls, http: httpx.AsyncClient, **kwargs: Any) -> "AnalysisPipeline":
        """Build the pipeline and its wire clients over one shared HTTP client."""
        return cls(FilesApiClient(http), GeminiClient(http), **kwargs)

    async def delete_asset(self, name: str) -> None:
        """Best-effort remote cleanup; failures are logged, never raised."""
        try:
            await self._files.delete_file(name)
        except Exception as e:
            logger.warning(f"Failed to clean up remote file {name}: {e}")

    async def acquire_asset(self, media: MediaAsset) -> RemoteAsset:
        """Upload ``media`` and wait for it to become ACTIVE, with retries.

        Raises:
            PipelineError: The last upload/readiness failure once retries run out.
        """
        self._upload_manager.validate(media)

        async def attempt(_: int) -> RemoteAsset:
            remote = await self._upload_manager.upload(media)
            try:
                return await self._poller.wait_until_active(remote.name, self._readiness_deadline)
            except BaseException:
                await self.delete_asset(remote.name)
                raise

        orchestrator = RetryOrchestrator(self._acquire_policy, sleep=self._sleep)
        return await orchestrator.run_or_raise(attempt, label=f"upload of {media.display_name}")

    async def infer(self, parts: list[Part], task: AnalysisTask[T]) -> AnalysisResult[T]:
        """Call the model and validate its reply, retrying per ``task``."""

        async def attempt(_: int) -> T:
            text = await self._gemini.generate(parts, task.generation_config)
            return task.validate(extract_json(text))

        fallback = task.fallback if self._fallback_enabled else task.empty
        orchestrator = RetryOrchestrator(task.retry_policy, sleep=self._sleep)
        return await orchestrator.run_with_fallback(attempt, fallback, label=task.name)

    async def analyze_video(self, media: MediaAsset, task: AnalysisTask[T]) -> AnalysisResult[T]:
        """Upload a whole video and run ``task`` against it.

        The remote file is deleted afterwards whatever the outcome.
        """
        remote = await self.acquire_asset(media)
        try:
            parts = [
                FilePart(uri=remote.uri, mime_type=remote.mime_type or media.mime_type),
                TextPart(task.prompt),
            ]
            return await self.infer(parts, task)
        finally:
            await self.delete_asset(remote.name)

    async def analyze_frame(self, frame: FrameSample, task: AnalysisTask[T]) -> AnalysisResult[T]:
        """Run ``task`` against one still frame sent inline."""
        parts = [TextPart(task.prompt), InlineImagePart(frame.image_bytes, frame.mime_type)]
        result = await self.infer(parts, task)
        result.best_frame = frame
        return result

    async def select_best_frame(self, video_path: str | Path, max_samples: int | None = None) -> FrameSample:
        """Pick the sampled frame where the model counts the most players.

        Falls back to the midpoint frame when no candidate shows any player.

        Raises:
            DecodeError: If the video cannot be read.
        """
        max_samples = settings.best_frame_max_samples if max_samples is None else max_samples
        sampler = FrameSampler(video_path)
        try:
            metadata = await asyncio.to_thread(sampler.get_metadata)
            count = best_frame_sample_count(metadata.duration_seconds, max_samples)
            candidates = await asyncio.to_thread(sampler.sample_frames, count)
            logger.info(
                f"Ranking {len(candidates)} candidate frames of {metadata.duration_seconds:.1f}s video"
            )

            best: FrameSample | None = None
            best_count = 0
            for candidate in candidates:
                players = await self._gemini.count_players(
                    InlineImagePart(candidate.image_bytes, candidate.mime_type),
                    prompts.PLAYER_COUNT_PROMPT,
                )
                logger.info(f"{candidate.timestamp_seconds:.1f}s: {players} players")
                if players > best_count:
                    best, best_count = candidate, players

            if best is None:
                logger.info("No candidate frame showed players, using the midpoint frame")
                best = await asyncio.to_thread(sampler.representative_frame, 0.5)
            return best
        finally:
            sampler.close()

    async def detect_players_in_best_frame(self, video_path: str | Path) -> AnalysisResult[DetectionResultSet]:
        """Frame mode: choose the best frame, then detect players in it.

        Each detected player also gets an avatar cropped from that frame.
        """
        frame = await self.select_best_frame(video_path)
        logger.info(f"Detecting players in frame at {frame.timestamp_seconds:.1f}s")
        result = await self.analyze_frame(frame, frame_detection_task(frame.timestamp_seconds))
        result.avatars = await asyncio.to_thread(crop_avatars, frame, result.value.detections)
        return result

    async def detect_players_in_video(self, media: MediaAsset) -> AnalysisResult[DetectionResultSet]:
        """Video mode: upload the whole video and detect players across it."""
        return await self.analyze_video(media, video_detection_task())

    async def analyze_player_performance(
        self, media: MediaAsset, player_name: str
    ) -> AnalysisResult[PerformanceReport]:
        return await self.analyze_video(media, performance_task(player_name))
