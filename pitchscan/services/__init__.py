"""Services package for upload, polling, inference and result validation."""

from pitchscan.services.analysis_pipeline import (
    AnalysisPipeline,
    AnalysisTask,
    frame_detection_task,
    performance_task,
    video_detection_task,
)
from pitchscan.services.detection_normalizer import DetectionNormalizer, NormalizerConfig
from pitchscan.services.files_api import FilesApiClient
from pitchscan.services.frame_sampler import FrameSampler, VideoMetadata
from pitchscan.services.inference_client import GeminiClient, GenerationConfig
from pitchscan.services.json_extractor import extract_json
from pitchscan.services.performance_normalizer import normalize_performance
from pitchscan.services.readiness_poller import ReadinessPoller
from pitchscan.services.retry import AttemptState, RetryOrchestrator, RetryOutcome, RetryPolicy
from pitchscan.services.upload_manager import ChunkedUploadManager

__all__ = [
    "AnalysisPipeline",
    "AnalysisTask",
    "AttemptState",
    "ChunkedUploadManager",
    "DetectionNormalizer",
    "FilesApiClient",
    "FrameSampler",
    "GeminiClient",
    "GenerationConfig",
    "NormalizerConfig",
    "ReadinessPoller",
    "RetryOrchestrator",
    "RetryOutcome",
    "RetryPolicy",
    "VideoMetadata",
    "extract_json",
    "frame_detection_task",
    "normalize_performance",
    "performance_task",
    "video_detection_task",
]
