"""Recovers one JSON object from free-form model text.

Extraction is a prioritized list of strategies. Each takes the raw text and
returns ``(value, ok)``; the first strategy reporting ``ok`` wins. Strategies
only ever parse text the model produced, they never repair or invent JSON.
"""

import json
import logging
import re
from typing import Any, Callable, Sequence

from pitchscan.errors import ExtractionError

logger = logging.getLogger(__name__)

StrategyResult = tuple[dict[str, Any] | None, bool]
Strategy = Callable[[str], StrategyResult]

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_BALANCED_OBJECT = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")
_FENCE_MARKER = re.compile(r"```(?:json)?", re.IGNORECASE)


def _parse_object(candidate: str) -> StrategyResult:
    try:
        value = json.loads(candidate)
    except (ValueError, TypeError, RecursionError):
        # ValueError covers malformed JSON and oversized integer literals.
        return None, False
    if not isinstance(value, dict):
        return None, False
    return value, True


def outermost_braces(text: str) -> StrategyResult:
    """Parse from the first ``{`` to the last ``}`` inclusive."""
    first = text.find("{")
    last = text.rfind("}")
    if first == -1 or last <= first:
        return None, False
    return _parse_object(text[first : last + 1])


def fenced_code_block(text: str) -> StrategyResult:
    """Parse the interior of the first fenced block that holds an object."""
    for match in _FENCED_BLOCK.finditer(text):
        value, ok = _parse_object(match.group(1))
        if ok:
            return value, True
    return None, False


def balanced_object(text: str) -> StrategyResult:
    """Parse the first brace-balanced object (up to one nesting level)."""
    for match in _BALANCED_OBJECT.finditer(text):
        value, ok = _parse_object(match.group(0))
        if ok:
            return value, True
    return None, False


def strip_noise(text: str) -> StrategyResult:
    """Drop fence markers and the prose around the object, then parse."""
    cleaned = _FENCE_MARKER.sub("", text)
    first = cleaned.find("{")
    if first == -1:
        return None, False
    cleaned = cleaned[first:]
    # Cut after the first closing brace that yields valid JSON.
    for end in (m.end() for m in re.finditer(r"\}", cleaned)):
        value, ok = _parse_object(cleaned[:end].strip())
        if ok:
            return value, True
    return None, False


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    outermost_braces,
    fenced_code_block,
    balanced_object,
    strip_noise,
)


def extract_json(text: str, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES) -> dict[str, Any]:
    """Return the first JSON object any strategy recovers from ``text``.

    Raises:
        ExtractionError: If every strategy fails. The raw text is attached.
    """
    if not text or not text.strip():
        raise ExtractionError("AI response was empty", raw_text=text or "")

    for strategy in strategies:
        value, ok = strategy(text)
        if ok:
            logger.debug(f"JSON extracted with strategy {strategy.__name__}")
            return value
        logger.debug(f"JSON strategy {strategy.__name__} failed")

    logger.warning(f"No JSON object found in AI response: {text[:500]}")
    raise ExtractionError("No valid JSON object found in AI response", raw_text=text)
