"""Error taxonomy for the upload and inference pipeline.

Every failure the pipeline can raise derives from :class:`PipelineError`.
The retry orchestrator decides retry-worthiness from the concrete type (and,
for uploads and inference, from the attached flag/category), and
:func:`describe_failure` turns any of them into a message that names the
probable cause for end users.
"""

from enum import Enum


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class UploadError(PipelineError):
    """Raised when a resumable upload cannot be started or completed.

    ``retryable`` is True only for transient faults (transport errors, 5xx)
    where restarting the whole upload may succeed. Protocol and configuration
    problems (missing session URL, invalid size or type) are never retryable.
    """

    def __init__(self, message: str, retryable: bool = False, status_code: int | None = None) -> None:
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


class ReadinessTimeoutError(PipelineError, TimeoutError):
    """Raised when a remote asset does not become ACTIVE before the deadline."""


class ProcessingError(PipelineError):
    """Raised when the remote service reports that processing an asset failed."""


class InferenceErrorCategory(str, Enum):
    """Upstream failure category for inference calls."""

    AUTH = "auth"
    QUOTA = "quota"
    SAFETY = "safety"
    INVALID_REQUEST = "invalid_request"
    NETWORK = "network"
    TIMEOUT = "timeout"
    NO_CANDIDATE = "no_candidate"
    GENERIC = "generic"


class InferenceError(PipelineError):
    """Raised when the model call fails or returns no usable candidate."""

    def __init__(
        self,
        message: str,
        category: InferenceErrorCategory = InferenceErrorCategory.GENERIC,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.category = category
        self.status_code = status_code


class ExtractionError(PipelineError):
    """Raised when no JSON object can be recovered from model text."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class SchemaError(PipelineError):
    """Raised when extracted JSON does not have the expected shape."""


class DecodeError(PipelineError):
    """Raised when a video cannot be opened or a frame cannot be decoded."""


RETRYABLE_INFERENCE_CATEGORIES = frozenset(
    {
        InferenceErrorCategory.NETWORK,
        InferenceErrorCategory.TIMEOUT,
        InferenceErrorCategory.GENERIC,
        InferenceErrorCategory.NO_CANDIDATE,
    }
)

# Failures that need someone to fix credentials or billing.
SURFACED_INFERENCE_CATEGORIES = frozenset(
    {
        InferenceErrorCategory.AUTH,
        InferenceErrorCategory.QUOTA,
    }
)


def is_retryable(exc: BaseException) -> bool:
    """Return True if a whole-operation retry may succeed after ``exc``."""
    if isinstance(exc, UploadError):
        return exc.retryable
    if isinstance(exc, InferenceError):
        return exc.category in RETRYABLE_INFERENCE_CATEGORIES
    return isinstance(exc, (ReadinessTimeoutError, ProcessingError, ExtractionError, SchemaError))


_INFERENCE_MESSAGES = {
    InferenceErrorCategory.AUTH: "Google AI API key is invalid or expired, please check the configuration",
    InferenceErrorCategory.QUOTA: "Google AI API quota exhausted, please try again later",
    InferenceErrorCategory.SAFETY: "Video content was blocked by the AI safety filter, please try another video",
    InferenceErrorCategory.INVALID_REQUEST: "Video format not supported by the AI model, please try an MP4 video",
    InferenceErrorCategory.NETWORK: "Network connection to the AI service failed, please check the connection and retry",
    InferenceErrorCategory.TIMEOUT: "AI processing timed out, the video may be too long or complex",
    InferenceErrorCategory.NO_CANDIDATE: "The AI service returned no usable analysis result",
    InferenceErrorCategory.GENERIC: "The AI service returned an error, please retry later",
}


def describe_failure(exc: BaseException) -> str:
    """Build a user-visible message naming the probable cause of ``exc``."""
    if isinstance(exc, InferenceError):
        return _INFERENCE_MESSAGES[exc.category]
    if isinstance(exc, UploadError):
        if exc.retryable:
            return f"Network error while uploading the video, please retry ({exc})"
        return f"Video upload rejected: {exc}"
    if isinstance(exc, TimeoutError):
        return "Remote video processing timed out, please try a shorter video clip"
    if isinstance(exc, ProcessingError):
        return "The AI service failed to process the video, the format may be unsupported"
    if isinstance(exc, DecodeError):
        return "The video could not be decoded, the file may be corrupt or in an unsupported format"
    if isinstance(exc, (ExtractionError, SchemaError)):
        return "The AI returned a malformed analysis result that could not be parsed"
    return f"Analysis failed: {exc}"
