"""Gemini generateContent client.

Sends a frame or uploaded file reference plus an instruction to the model and
returns its raw text reply. Upstream failures are classified into
:class:`InferenceErrorCategory` so the retry orchestrator can tell quota and
credential problems apart from transient network faults.
"""

import base64
import logging
import re
from dataclasses import dataclass
from typing import Any, Union

import httpx

from pitchscan.config import settings
from pitchscan.errors import InferenceError, InferenceErrorCategory

logger = logging.getLogger(__name__)


@dataclass
class TextPart:
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass
class FilePart:
    """Reference to a file uploaded through the Files API."""

    uri: str
    mime_type: str = "video/mp4"

    def to_dict(self) -> dict[str, Any]:
        return {"file_data": {"mime_type": self.mime_type or "video/mp4", "file_uri": self.uri}}


@dataclass
class InlineImagePart:
    data: bytes
    mime_type: str = "image/jpeg"

    def to_dict(self) -> dict[str, Any]:
        return {
            "inline_data": {
                "mime_type": self.mime_type,
                "data": base64.b64encode(self.data).decode("ascii"),
            }
        }


Part = Union[TextPart, FilePart, InlineImagePart]


@dataclass
class GenerationConfig:
    temperature: float | None = None
    max_output_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None

    def to_dict(self) -> dict[str, Any]:
        values = {
            "temperature": self.temperature,
            "maxOutputTokens": self.max_output_tokens,
            "topP": self.top_p,
            "topK": self.top_k,
        }
        return {k: v for k, v in values.items() if v is not None}


def _error_details(body: Any) -> tuple[str, str]:
    """Pull ``(status, message)`` out of a Google API error body."""
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        return str(error.get("status", "")), str(error.get("message", ""))
    return "", ""


def classify_http_error(status_code: int, body: Any = None) -> InferenceErrorCategory:
    """Map an upstream HTTP failure to a retry-relevant category."""
    api_status, message = _error_details(body)
    lowered = message.lower()

    if status_code in (401, 403) or api_status in ("UNAUTHENTICATED", "PERMISSION_DENIED"):
        return InferenceErrorCategory.AUTH
    if "api key" in lowered or "api_key" in lowered:
        return InferenceErrorCategory.AUTH
    if status_code == 429 or api_status == "RESOURCE_EXHAUSTED" or "quota" in lowered:
        return InferenceErrorCategory.QUOTA
    if "safety" in lowered:
        return InferenceErrorCategory.SAFETY
    if status_code in (408, 504) or api_status == "DEADLINE_EXCEEDED":
        return InferenceErrorCategory.TIMEOUT
    if status_code == 400 or api_status in ("INVALID_ARGUMENT", "FAILED_PRECONDITION"):
        return InferenceErrorCategory.INVALID_REQUEST
    return InferenceErrorCategory.GENERIC


def extract_text(body: Any) -> str:
    """Return ``candidates[0].content.parts[0].text`` from a response body.

    Raises:
        InferenceError: SAFETY if the prompt or candidate was blocked,
            NO_CANDIDATE if any level of the path is missing.
    """
    if not isinstance(body, dict):
        raise InferenceError("AI response body is not an object", InferenceErrorCategory.NO_CANDIDATE)

    feedback = body.get("promptFeedback")
    if isinstance(feedback, dict) and feedback.get("blockReason"):
        raise InferenceError(
            f"Prompt blocked: {feedback['blockReason']}", InferenceErrorCategory.SAFETY
        )

    candidates = body.get("candidates")
    candidate = candidates[0] if isinstance(candidates, list) and candidates else None
    if not isinstance(candidate, dict):
        raise InferenceError("AI did not return a valid candidate", InferenceErrorCategory.NO_CANDIDATE)

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    part = parts[0] if isinstance(parts, list) and parts else None
    text = part.get("text") if isinstance(part, dict) else None

    if not isinstance(text, str) or not text.strip():
        if candidate.get("finishReason") in ("SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST"):
            raise InferenceError(
                f"Candidate blocked: {candidate['finishReason']}", InferenceErrorCategory.SAFETY
            )
        raise InferenceError("AI did not return a valid candidate", InferenceErrorCategory.NO_CANDIDATE)
    return text


class GeminiClient:
    """Explicit model client, constructed once by the composition root."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._http = http
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._model = model or settings.gemini_model
        self._base_url = (base_url or settings.gemini_base_url).rstrip("/")

        if not self._api_key:
            logger.warning("GEMINI_API_KEY not set. Inference calls will be rejected.")

    @property
    def model(self) -> str:
        return self._model

    async def generate(self, parts: list[Part], config: GenerationConfig | None = None) -> str:
        """Run one generateContent call and return the reply text.

        Raises:
            InferenceError: With the upstream failure category.
        """
        payload: dict[str, Any] = {"contents": [{"parts": [p.to_dict() for p in parts]}]}
        if config is not None and config.to_dict():
            payload["generationConfig"] = config.to_dict()

        url = f"{self._base_url}/v1beta/models/{self._model}:generateContent"
        try:
            response = await self._http.post(url, params={"key": self._api_key}, json=payload)
        except httpx.TimeoutException as e:
            raise InferenceError(f"AI request timed out: {e}", InferenceErrorCategory.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise InferenceError(f"AI request failed: {e}", InferenceErrorCategory.NETWORK) from e

        if response.is_error:
            try:
                body = response.json()
            except ValueError:
                body = None
            category = classify_http_error(response.status_code, body)
            logger.error(f"AI service error {response.status_code} ({category.value}): {response.text[:500]}")
            raise InferenceError(
                f"Google AI service error: {response.status_code}",
                category,
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise InferenceError(
                "AI response was not valid JSON", InferenceErrorCategory.NO_CANDIDATE
            ) from e

        text = extract_text(body)
        logger.debug(f"AI raw response: {text[:500]}")
        return text

    async def count_players(self, image: InlineImagePart, prompt: str) -> int:
        """Ask for a rough player count; 0 when the call or the reply fails."""
        try:
            text = await self.generate([TextPart(prompt), image])
        except InferenceError as e:
            logger.warning(f"Player count request failed: {e}")
            return 0
        return parse_player_count(text)


def parse_player_count(text: str) -> int:
    """First integer in ``text``, clamped to a full pitch of 22 players."""
    match = re.search(r"\d+", text)
    if not match:
        return 0
    return max(0, min(22, int(match.group(0))))
