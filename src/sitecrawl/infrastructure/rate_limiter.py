"""
Crawl-delay throttling and consecutive-error backoff.

This module provides the two pieces of shared timing state used by the
fetch workers: a host-wide crawl-delay limiter and a circuit-breaker style
backoff on runs of consecutive page failures.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime

from sitecrawl.constants import (
    DEFAULT_CRAWL_DELAY_SECONDS,
    EXPONENTIAL_BACKOFF_BASE,
    INITIAL_BACKOFF_DELAY_SECONDS,
    MAX_BACKOFF_DELAY_SECONDS,
    MAX_CONSECUTIVE_ERRORS,
)

logger = logging.getLogger(__name__)


@dataclass
class ThrottleMetrics:
    """Current throttling statistics."""
    current_delay: float
    last_request_time: datetime | None
    total_requests: int
    total_wait_time: float
    total_backoffs: int
    total_backoff_time: float


class CrawlDelayLimiter:
    """
    Enforces a minimum interval between the starts of consecutive fetches.

    A single last-request timestamp is shared by every worker. The
    check-sleep-stamp sequence runs under a lock, so two workers can never
    start fetches closer together than the delay.
    """

    def __init__(self, default_delay: float = DEFAULT_CRAWL_DELAY_SECONDS):
        """
        Initialize limiter.

        Args:
            default_delay: Delay used when the caller passes none
        """
        self.default_delay = default_delay

        self._current_delay = default_delay
        self._last_request_time: float | None = None
        self._lock = asyncio.Lock()

        # Statistics
        self._total_requests = 0
        self._total_wait_time = 0.0

    async def wait(self, delay: float | None = None) -> float:
        """
        Sleep out the remainder of the crawl-delay since the last request.

        Args:
            delay: Crawl-delay in seconds (default_delay when None)

        Returns:
            Actual time waited (seconds)
        """
        delay = self.default_delay if delay is None else delay

        async with self._lock:
            self._current_delay = delay
            now = time.monotonic()

            if self._last_request_time is not None:
                elapsed = now - self._last_request_time
                wait_time = max(0.0, delay - elapsed)
            else:
                wait_time = 0.0

            if wait_time > 0:
                await asyncio.sleep(wait_time)
                self._total_wait_time += wait_time

            self._last_request_time = time.monotonic()
            self._total_requests += 1
            return wait_time

    def reset(self) -> None:
        """Reset limiter to initial state."""
        self._current_delay = self.default_delay
        self._last_request_time = None
        self._total_requests = 0
        self._total_wait_time = 0.0

    @property
    def current_delay(self) -> float:
        """Delay applied to the most recent request."""
        return self._current_delay

    @property
    def last_request_time(self) -> float | None:
        """Monotonic timestamp of the most recent request start."""
        return self._last_request_time

    @property
    def total_wait_time(self) -> float:
        return self._total_wait_time

    @property
    def total_requests(self) -> int:
        return self._total_requests


class ErrorBackoff:
    """
    Shared consecutive-failure counter with a capped exponential pause.

    Once the counter reaches ``threshold`` the caller sleeps
    ``min(max_delay, base_delay * 2 ** (errors - threshold))`` and the counter
    resets. The crawl slows down under host instability instead of aborting.
    """

    def __init__(
        self,
        threshold: int = MAX_CONSECUTIVE_ERRORS,
        base_delay: float = INITIAL_BACKOFF_DELAY_SECONDS,
        max_delay: float = MAX_BACKOFF_DELAY_SECONDS,
    ):
        """
        Initialize backoff.

        Args:
            threshold: Consecutive errors that trigger a pause
            base_delay: Pause for the first step (seconds)
            max_delay: Cap for the pause (seconds)
        """
        self.threshold = threshold
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._errors = 0
        self._total_errors = 0
        self._total_backoffs = 0
        self._total_backoff_time = 0.0

    def record_success(self) -> None:
        """Reset the consecutive-error counter."""
        self._errors = 0

    def record_error(self) -> int:
        """Increment the consecutive-error counter.

        Returns:
            Consecutive errors after this one
        """
        self._errors += 1
        self._total_errors += 1
        return self._errors

    def calculate_delay(self, errors: int | None = None) -> float:
        """Pause for ``errors`` consecutive failures, 0.0 below the threshold."""
        errors = self._errors if errors is None else errors
        if errors < self.threshold:
            return 0.0
        delay = self.base_delay * (EXPONENTIAL_BACKOFF_BASE ** (errors - self.threshold))
        return min(self.max_delay, delay)

    async def maybe_backoff(self) -> float:
        """Sleep if the threshold is reached, then reset the counter.

        Returns:
            Time slept (seconds)
        """
        delay = self.calculate_delay()
        if delay <= 0:
            return 0.0

        logger.warning(
            f"{self._errors} consecutive errors, backing off for {delay:.1f}s"
        )
        self._total_backoffs += 1
        self._total_backoff_time += delay
        await asyncio.sleep(delay)
        self._errors = 0
        return delay

    @property
    def consecutive_errors(self) -> int:
        return self._errors

    @property
    def total_errors(self) -> int:
        return self._total_errors

    @property
    def total_backoffs(self) -> int:
        return self._total_backoffs

    @property
    def total_backoff_time(self) -> float:
        return self._total_backoff_time


def get_metrics(limiter: CrawlDelayLimiter, backoff: ErrorBackoff) -> ThrottleMetrics:
    """
    Snapshot throttling statistics for a run.

    Returns:
        ThrottleMetrics snapshot
    """
    last = limiter.last_request_time
    last_dt = None
    if last is not None:
        # monotonic clock -> wall clock
        last_dt = datetime.fromtimestamp(time.time() - (time.monotonic() - last))

    return ThrottleMetrics(
        current_delay=limiter.current_delay,
        last_request_time=last_dt,
        total_requests=limiter.total_requests,
        total_wait_time=limiter.total_wait_time,
        total_backoffs=backoff.total_backoffs,
        total_backoff_time=backoff.total_backoff_time,
    )
