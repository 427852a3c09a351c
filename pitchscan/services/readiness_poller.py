"""Polls the Files API until an uploaded asset is ready for inference."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Iterator

import httpx

from pitchscan.config import settings
from pitchscan.errors import ProcessingError, ReadinessTimeoutError
from pitchscan.services.files_api import FilesApiClient
from pitchscan.types import RemoteAsset, RemoteAssetState

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
Clock = Callable[[], float]


def poll_intervals(initial: float, factor: float, maximum: float) -> Iterator[float]:
    """Yield an endless, non-decreasing interval sequence capped at ``maximum``."""
    if initial <= 0 or factor < 1.0 or maximum < initial:
        raise ValueError(
            f"Invalid poll schedule: initial={initial}, factor={factor}, maximum={maximum}"
        )
    interval = initial
    while True:
        yield interval
        interval = min(interval * factor, maximum)


class ReadinessPoller:
    """Waits for PROCESSING assets to become ACTIVE.

    Status-check failures are logged and polling continues; only an explicit
    FAILED state or the deadline end the wait.
    """

    def __init__(
        self,
        files: FilesApiClient,
        initial_interval: float | None = None,
        backoff_factor: float | None = None,
        max_interval: float | None = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = time.monotonic,
    ) -> None:
        self._files = files
        self._initial = initial_interval or settings.readiness_initial_interval_seconds
        self._factor = backoff_factor or settings.readiness_backoff_factor
        self._max = max_interval or settings.readiness_max_interval_seconds
        self._sleep = sleep
        self._clock = clock

    async def wait_until_active(self, name: str, deadline_seconds: float | None = None) -> RemoteAsset:
        """Block the calling task until ``name`` is ACTIVE.

        Args:
            name: Remote asset name, e.g. ``files/abc123``.
            deadline_seconds: Maximum time to wait. Defaults to settings.

        Returns:
            The ACTIVE remote asset.

        Raises:
            ProcessingError: If the remote reports FAILED.
            ReadinessTimeoutError: If the deadline elapses first.
        """
        deadline_seconds = deadline_seconds or settings.readiness_deadline_seconds
        started = self._clock()
        intervals = poll_intervals(self._initial, self._factor, self._max)
        polls = 0

        logger.info(f"Waiting for {name} to finish processing (deadline {deadline_seconds:.0f}s)")
        while self._clock() - started < deadline_seconds:
            polls += 1
            try:
                asset = await self._files.get_file(name)
            except (httpx.HTTPError, KeyError, ValueError) as e:
                logger.warning(f"Status check {polls} for {name} failed, continuing: {e}")
            else:
                logger.info(f"Status check {polls} for {name}: {asset.state.value}")
                if asset.state == RemoteAssetState.ACTIVE:
                    return asset
                if asset.state == RemoteAssetState.FAILED:
                    raise ProcessingError(f"Remote processing failed for {name}")

            remaining = deadline_seconds - (self._clock() - started)
            if remaining <= 0:
                break
            await self._sleep(min(next(intervals), remaining))

        raise ReadinessTimeoutError(
            f"{name} still processing after {deadline_seconds:.0f}s ({polls} status checks)"
        )
