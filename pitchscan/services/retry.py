"""Bounded retry with linear backoff and deterministic fallback.

Each wrapped operation runs through the states
``ATTEMPTING -> SUCCESS | RETRYING -> ATTEMPTING | EXHAUSTED``. Retries here
restart a whole operation (an upload plus readiness wait, or an inference
call plus parsing), so the backoff is linear in the attempt number rather
than multiplicative.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Generic, TypeVar

from pitchscan.errors import (
    SURFACED_INFERENCE_CATEGORIES,
    InferenceError,
    PipelineError,
    describe_failure,
    is_retryable,
)
from pitchscan.types import AnalysisResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[int], Awaitable[T]]


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.base_delay_seconds < 0:
            raise ValueError(f"base_delay_seconds must be non-negative, got {self.base_delay_seconds}")

    def delay_after(self, attempt: int) -> float:
        """Delay before the attempt following ``attempt`` (1-based)."""
        return self.base_delay_seconds * attempt


@dataclass
class RetryOutcome(Generic[T]):
    state: AttemptState
    attempts: int
    value: T | None = None
    last_error: PipelineError | None = None
    history: list[AttemptState] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == AttemptState.SUCCESS


class RetryOrchestrator:
    """Runs operations under a RetryPolicy.

    Only :class:`PipelineError` failures are considered; anything else
    (programming errors, cancellation) propagates untouched.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retryable: Callable[[BaseException], bool] = is_retryable,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._retryable = retryable

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def run(self, operation: Operation[T], label: str = "operation") -> RetryOutcome[T]:
        """Run ``operation(attempt)`` until it succeeds or retries run out.

        A non-retryable failure ends the loop early with EXHAUSTED.
        """
        history: list[AttemptState] = []
        max_attempts = self._policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            history.append(AttemptState.ATTEMPTING)
            logger.info(f"{label}: attempt {attempt}/{max_attempts}")
            try:
                value = await operation(attempt)
            except PipelineError as e:
                if not self._retryable(e):
                    logger.error(f"{label}: attempt {attempt} failed with non-retryable error: {e}")
                    history.append(AttemptState.EXHAUSTED)
                    return RetryOutcome(AttemptState.EXHAUSTED, attempt, last_error=e, history=history)
                if attempt == max_attempts:
                    logger.error(f"{label}: attempt {attempt} failed, no attempts left: {e}")
                    history.append(AttemptState.EXHAUSTED)
                    return RetryOutcome(AttemptState.EXHAUSTED, attempt, last_error=e, history=history)

                delay = self._policy.delay_after(attempt)
                logger.warning(f"{label}: attempt {attempt} failed, retrying in {delay:.1f}s: {e}")
                history.append(AttemptState.RETRYING)
                await self._sleep(delay)
                continue

            history.append(AttemptState.SUCCESS)
            logger.info(f"{label}: attempt {attempt} succeeded")
            return RetryOutcome(AttemptState.SUCCESS, attempt, value=value, history=history)

        raise AssertionError("unreachable")

    async def run_or_raise(self, operation: Operation[T], label: str = "operation") -> T:
        """Like :meth:`run`, but raise the last error when not successful."""
        outcome = await self.run(operation, label)
        if not outcome.succeeded:
            raise outcome.last_error
        return outcome.value

    async def run_with_fallback(
        self,
        operation: Operation[T],
        fallback: Callable[[], T] | None,
        label: str = "operation",
    ) -> AnalysisResult[T]:
        """Run ``operation``; on exhaustion return ``fallback()`` flagged degraded.

        Credential and quota failures are raised instead of masked, and so is
        every failure when no fallback is given.
        """
        outcome = await self.run(operation, label)
        if outcome.succeeded:
            return AnalysisResult(value=outcome.value, attempts=outcome.attempts)

        error = outcome.last_error
        if isinstance(error, InferenceError) and error.category in SURFACED_INFERENCE_CATEGORIES:
            raise error
        if fallback is None:
            raise error

        warning = describe_failure(error)
        logger.warning(f"{label}: all attempts failed, returning fallback result ({warning})")
        return AnalysisResult(
            value=fallback(),
            degraded=True,
            attempts=outcome.attempts,
            warning=warning,
        )
