"""Tests for the composed upload, readiness and inference pipeline."""

import json
from unittest.mock import MagicMock, patch

import cv2
import httpx
import numpy as np
import pytest

from conftest import API_KEY, BASE_URL, gemini_error_response
from pitchscan.config import GIB, MIB
from pitchscan.errors import InferenceError, InferenceErrorCategory, ProcessingError, SchemaError, UploadError
from pitchscan.services.analysis_pipeline import (
    AnalysisPipeline,
    frame_detection_task,
    performance_task,
    video_detection_task,
)
from pitchscan.services.files_api import FilesApiClient
from pitchscan.services.frame_sampler import VideoMetadata
from pitchscan.services.inference_client import GeminiClient
from pitchscan.services.readiness_poller import ReadinessPoller
from pitchscan.services.retry import RetryPolicy
from pitchscan.services.upload_manager import ChunkedUploadManager
from pitchscan.types import FrameSample, MediaAsset

FENCED_DETECTION_REPLY = """Here is the analysis you asked for:
```json
{
  "teamColors": {"home": "Blue", "away": "Red"},
  "players": [
    {"x": 10, "y": 20, "width": 8, "height": 18, "confidence": 0.9, "team": "home"}
  ]
}
```
Let me know if you need anything else."""


def detection_reply(*players, team_colors=None) -> str:
    return json.dumps({"teamColors": team_colors or {"home": "Blue", "away": "Red"}, "players": list(players)})


def detected_player(**overrides):
    raw = {"id": 1, "x": 30, "y": 40, "width": 8, "height": 18, "confidence": 0.9, "jersey": "9", "team": "away"}
    raw.update(overrides)
    return raw


class ZeroSource:
    """Byte source that fabricates zeros on demand."""

    def read(self, offset: int, length: int) -> bytes:
        return bytes(length)


def make_pipeline(http_client, sleep, clock, chunk_bytes=100, fallback_enabled=True) -> AnalysisPipeline:
    files = FilesApiClient(http_client, api_key=API_KEY, base_url=BASE_URL)
    gemini = GeminiClient(http_client, api_key=API_KEY, model="gemini-test", base_url=BASE_URL)
    return AnalysisPipeline(
        files,
        gemini,
        upload_manager=ChunkedUploadManager(files, chunk_bytes=chunk_bytes, max_upload_bytes=2 * GIB),
        poller=ReadinessPoller(files, 5.0, 1.2, 30.0, sleep=sleep, clock=clock),
        acquire_policy=RetryPolicy(max_attempts=3, base_delay_seconds=2.0),
        fallback_enabled=fallback_enabled,
        readiness_deadline_seconds=600.0,
        sleep=sleep,
    )


def small_video() -> MediaAsset:
    return MediaAsset.from_bytes(b"v" * 250, "match.mp4", "video/mp4")


class TestEndToEnd:
    """Full upload, poll and inference run against the fake service."""

    @pytest.mark.asyncio
    async def test_large_upload_to_detections(self, http_client, server, sleep, clock):
        """Test a 1.5 GB video flows through 15 chunks, 6 polls and one inference call."""
        server.states = ["PROCESSING"] * 5 + ["ACTIVE"]
        server.replies = [FENCED_DETECTION_REPLY]
        # Decimal gigabytes: 1.5 GiB would need 16 chunks of 100 MiB, not 15.
        media = MediaAsset("match.mp4", "video/mp4", 1_500_000_000, ZeroSource())
        pipeline = make_pipeline(http_client, sleep, clock, chunk_bytes=100 * MIB)

        result = await pipeline.detect_players_in_video(media)

        assert len(server.chunks) == 15
        assert [command for _, _, command in server.chunks].count("upload, finalize") == 1
        assert server.chunks[-1][2] == "upload, finalize"
        offsets = [offset for offset, _, _ in server.chunks]
        assert offsets == sorted(offsets)
        assert sum(length for _, length, _ in server.chunks) == 1_500_000_000
        assert server.status_checks == 6

        assert result.degraded is False
        assert result.attempts == 1
        assert len(result.value) == 1
        detection = result.value.detections[0]
        assert detection.jersey_number == "1"
        assert detection.id == 1
        assert result.value.team_colors.home == "Blue"

        parts = server.generate_payloads[0]["contents"][0]["parts"]
        assert parts[0]["file_data"]["file_uri"] == f"{BASE_URL}/v1beta/files/abc123"
        assert "text" in parts[1]
        assert server.deleted == ["files/abc123"]


class TestAnalyzeVideo:
    """Tests for whole-video analysis."""

    @pytest.mark.asyncio
    async def test_network_failures_fall_back(self, http_client, server, sleep, clock):
        """Test an always-failing model call retries to the limit then degrades."""
        server.replies = [httpx.ConnectError("connection refused")]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_video(small_video())

        assert server.generate_calls == 3
        assert sleep.calls == [2.0, 4.0]
        assert result.degraded is True
        assert result.attempts == 3
        assert len(result.value) > 0
        assert "Network" in result.warning
        assert server.deleted == ["files/abc123"]

    @pytest.mark.asyncio
    async def test_auth_failure_surfaces_and_cleans_up(self, http_client, server, sleep, clock):
        server.replies = [gemini_error_response(403, "PERMISSION_DENIED", "API key expired")]

        with pytest.raises(InferenceError) as exc_info:
            await make_pipeline(http_client, sleep, clock).detect_players_in_video(small_video())

        assert exc_info.value.category == InferenceErrorCategory.AUTH
        assert server.generate_calls == 1
        assert server.deleted == ["files/abc123"]

    @pytest.mark.asyncio
    async def test_empty_detections_are_retried(self, http_client, server, sleep, clock):
        """Test a reply with no usable players counts as a failed attempt."""
        server.replies = [
            detection_reply(detected_player(isReferee=True)),
            detection_reply(detected_player()),
        ]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_video(small_video())

        assert server.generate_calls == 2
        assert result.degraded is False
        assert result.attempts == 2
        assert [d.jersey_number for d in result.value.detections] == ["9"]

    @pytest.mark.asyncio
    async def test_unparseable_reply_is_retried(self, http_client, server, sleep, clock):
        server.replies = ["I could not find any players.", detection_reply(detected_player())]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_video(small_video())

        assert result.attempts == 2
        assert result.degraded is False

    @pytest.mark.asyncio
    async def test_fallback_disabled_returns_empty_set(self, http_client, server, sleep, clock):
        server.replies = ["not json"]
        pipeline = make_pipeline(http_client, sleep, clock, fallback_enabled=False)

        result = await pipeline.detect_players_in_video(small_video())

        assert result.degraded is True
        assert len(result.value) == 0

    @pytest.mark.asyncio
    async def test_empty_video_rejected_before_network(self, http_client, server, sleep, clock):
        media = MediaAsset.from_bytes(b"", "empty.mp4", "video/mp4")

        with pytest.raises(UploadError, match="empty"):
            await make_pipeline(http_client, sleep, clock).detect_players_in_video(media)
        assert server.calls == []


class TestAcquireAsset:
    """Tests for upload plus readiness under retry."""

    @pytest.mark.asyncio
    async def test_transient_upload_failure_restarts(self, http_client, server, sleep, clock):
        """Test a failed upload attempt restarts the whole upload."""
        server.start_errors = [httpx.ConnectError("connection reset")]

        remote = await make_pipeline(http_client, sleep, clock).acquire_asset(small_video())

        assert remote.name == "files/abc123"
        assert server.uploads_started == 2
        assert sleep.calls == [2.0]

    @pytest.mark.asyncio
    async def test_processing_failure_exhausts_and_cleans_up(self, http_client, server, sleep, clock):
        """Test every failed asset is deleted and the last error surfaces."""
        server.states = ["FAILED"]

        with pytest.raises(ProcessingError):
            await make_pipeline(http_client, sleep, clock).detect_players_in_video(small_video())

        assert server.uploads_started == 3
        assert server.deleted == ["files/abc123"] * 3
        assert server.generate_calls == 0

    @pytest.mark.asyncio
    async def test_rejected_upload_not_retried(self, http_client, server, sleep, clock):
        server.start_status = 400

        with pytest.raises(UploadError):
            await make_pipeline(http_client, sleep, clock).acquire_asset(small_video())
        assert server.uploads_started == 1


class TestPerformance:
    """Tests for per-player performance analysis."""

    @pytest.mark.asyncio
    async def test_performance_report(self, http_client, server, sleep, clock):
        server.replies = [
            "```json\n"
            + json.dumps({"matchId": "m1", "opponent": "Rovers", "overall": 91, "dominantFoot": {"right": 80, "left": 20}})
            + "\n```"
        ]

        result = await make_pipeline(http_client, sleep, clock).analyze_player_performance(small_video(), "Jane Doe")

        assert result.degraded is False
        assert result.value.overall == 91
        assert result.value.opponent == "Rovers"
        assert server.generate_payloads[0]["generationConfig"] == {
            "temperature": 0.1,
            "maxOutputTokens": 2000,
            "topP": 0.8,
            "topK": 10,
        }
        assert "Jane Doe" in server.generate_payloads[0]["contents"][0]["parts"][1]["text"]

    @pytest.mark.asyncio
    async def test_performance_fallback(self, http_client, server, sleep, clock):
        server.replies = [gemini_error_response(500)]

        result = await make_pipeline(http_client, sleep, clock).analyze_player_performance(small_video(), "Jane Doe")

        assert result.degraded is True
        assert 70 <= result.value.overall < 90

    @pytest.mark.asyncio
    async def test_performance_without_fallback_raises(self, http_client, server, sleep, clock):
        server.replies = [gemini_error_response(500)]
        pipeline = make_pipeline(http_client, sleep, clock, fallback_enabled=False)

        with pytest.raises(InferenceError):
            await pipeline.analyze_player_performance(small_video(), "Jane Doe")
        assert server.deleted == ["files/abc123"]

    def test_empty_player_name(self):
        with pytest.raises(ValueError, match="Player name"):
            performance_task("   ")


class TestTasks:
    """Tests for the built-in task parameters."""

    def test_retry_policies(self):
        assert video_detection_task().retry_policy == RetryPolicy(3, 2.0)
        assert frame_detection_task(1.0).retry_policy == RetryPolicy(4, 1.5)
        assert performance_task("Jane").retry_policy == RetryPolicy(3, 2.0)

    def test_frame_task_fallback_is_stamped(self):
        result = frame_detection_task(7.5).fallback()
        assert len(result) == 6
        assert {d.timestamp_seconds for d in result.detections} == {7.5}

    def test_video_task_accepts_lower_confidence(self):
        task = video_detection_task()
        result = task.validate(json.loads(detection_reply(detected_player(confidence=0.4))))
        assert len(result) == 1

    def test_frame_task_rejects_lower_confidence(self):
        task = frame_detection_task(1.0)
        with pytest.raises(SchemaError):
            task.validate(json.loads(detection_reply(detected_player(confidence=0.4))))


class TestFrameMode:
    """Tests for best-frame selection and single-frame detection."""

    @pytest.fixture
    def mock_sampler(self):
        """Patch FrameSampler with a 10 second clip."""
        with patch("pitchscan.services.analysis_pipeline.FrameSampler") as sampler_class:
            sampler = MagicMock()
            sampler.get_metadata.return_value = VideoMetadata(
                total_frames=300, fps=30.0, width=64, height=48, duration_seconds=10.0
            )
            sampler.sample_frames.return_value = [
                FrameSample(2.0, b"frame-a"),
                FrameSample(4.0, b"frame-b"),
                FrameSample(6.0, b"frame-c"),
            ]
            sampler.representative_frame.return_value = FrameSample(5.0, b"frame-mid")
            sampler_class.return_value = sampler
            yield sampler

    @pytest.mark.asyncio
    async def test_best_frame_chosen(self, http_client, server, sleep, clock, mock_sampler):
        """Test the frame with the highest player count is analyzed."""
        server.replies = ["3", "9 players", "5", detection_reply(detected_player(timestamp=99))]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_best_frame("match.mp4")

        mock_sampler.sample_frames.assert_called_once_with(5)
        assert result.best_frame.timestamp_seconds == 4.0
        assert [d.timestamp_seconds for d in result.value.detections] == [4.0]
        assert server.generate_calls == 4

        parts = server.generate_payloads[-1]["contents"][0]["parts"]
        assert "text" in parts[0]
        assert parts[1]["inline_data"]["mime_type"] == "image/jpeg"
        assert server.chunks == []
        mock_sampler.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_players_uses_midpoint(self, http_client, server, sleep, clock, mock_sampler):
        server.replies = ["0", "none", "0", detection_reply(detected_player())]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_best_frame("match.mp4")

        mock_sampler.representative_frame.assert_called_once_with(0.5)
        assert result.best_frame.timestamp_seconds == 5.0

    @pytest.mark.asyncio
    async def test_avatars_cropped_from_best_frame(self, http_client, server, sleep, clock, mock_sampler):
        """Test every detected player gets an avatar from the analyzed frame."""
        _, encoded = cv2.imencode(".jpg", np.full((48, 64, 3), 255, dtype=np.uint8))
        mock_sampler.sample_frames.return_value = [FrameSample(2.0, encoded.tobytes())]
        server.replies = ["4", detection_reply(detected_player(), detected_player(id=2, x=60))]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_best_frame("match.mp4")

        assert sorted(result.avatars) == [1, 2]
        avatar = cv2.imdecode(np.frombuffer(result.avatars[2], dtype=np.uint8), cv2.IMREAD_COLOR)
        assert avatar.shape == (150, 150, 3)

    @pytest.mark.asyncio
    async def test_undecodable_frame_has_no_avatars(self, http_client, server, sleep, clock, mock_sampler):
        server.replies = ["3", "9", "5", detection_reply(detected_player())]

        result = await make_pipeline(http_client, sleep, clock).detect_players_in_best_frame("match.mp4")

        assert len(result.value.detections) == 1
        assert result.avatars == {}

    @pytest.mark.asyncio
    async def test_frame_detection_falls_back(self, http_client, server, sleep, clock):
        """Test single-frame detection retries four times before degrading."""
        server.replies = ["no json at all"]
        frame = FrameSample(3.0, b"jpeg")

        result = await make_pipeline(http_client, sleep, clock).analyze_frame(frame, frame_detection_task(3.0))

        assert server.generate_calls == 4
        assert sleep.calls == [1.5, 3.0, 4.5]
        assert result.degraded is True
        assert result.best_frame is frame
        assert {d.timestamp_seconds for d in result.value.detections} == {3.0}
