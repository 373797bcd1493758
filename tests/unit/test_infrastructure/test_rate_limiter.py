"""Unit tests for CrawlDelayLimiter and ErrorBackoff."""

import pytest
import asyncio
import time
from unittest.mock import AsyncMock, patch

pytest_plugins = ('pytest_asyncio',)

from sitecrawl.infrastructure.rate_limiter import (
    CrawlDelayLimiter,
    ErrorBackoff,
    ThrottleMetrics,
    get_metrics,
)


class TestCrawlDelayLimiter:
    """Tests for CrawlDelayLimiter."""

    @pytest.fixture
    def limiter(self):
        """Create a limiter with a short delay for testing."""
        return CrawlDelayLimiter(default_delay=0.1)

    @pytest.mark.asyncio
    async def test_first_request_no_wait(self, limiter):
        """Test first request does not wait."""
        waited = await limiter.wait()

        assert waited == 0.0
        assert limiter.total_requests == 1

    @pytest.mark.asyncio
    async def test_second_request_waits(self, limiter):
        """Test consecutive requests are spaced by the delay."""
        await limiter.wait()
        start = time.monotonic()
        await limiter.wait()
        elapsed = time.monotonic() - start

        assert elapsed >= 0.09
        assert limiter.total_wait_time > 0

    @pytest.mark.asyncio
    async def test_explicit_delay_overrides_default(self, limiter):
        """Test a per-call delay is used instead of the default."""
        await limiter.wait(0.0)
        waited = await limiter.wait(0.0)

        assert waited == 0.0
        assert limiter.current_delay == 0.0

    @pytest.mark.asyncio
    async def test_concurrent_waiters_are_spaced(self):
        """Test concurrent callers never start closer together than the delay."""
        limiter = CrawlDelayLimiter(default_delay=0.1)
        stamps = []

        async def request():
            await limiter.wait()
            stamps.append(time.monotonic())

        await asyncio.gather(*(request() for _ in range(4)))

        stamps.sort()
        gaps = [b - a for a, b in zip(stamps, stamps[1:])]
        assert all(gap >= 0.09 for gap in gaps)

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        """Test reset clears state."""
        await limiter.wait()
        limiter.reset()

        assert limiter.total_requests == 0
        assert limiter.last_request_time is None
        assert await limiter.wait() == 0.0


class TestErrorBackoff:
    """Tests for ErrorBackoff."""

    def test_no_delay_below_threshold(self):
        """Test errors below the threshold do not pause."""
        backoff = ErrorBackoff(threshold=5)
        for _ in range(4):
            backoff.record_error()

        assert backoff.calculate_delay() == 0.0

    def test_delay_formula(self):
        """Test min(cap, base * 2 ** (errors - threshold))."""
        backoff = ErrorBackoff(threshold=5, base_delay=1.0, max_delay=5.0)

        assert backoff.calculate_delay(5) == 1.0
        assert backoff.calculate_delay(6) == 2.0
        assert backoff.calculate_delay(7) == 4.0
        assert backoff.calculate_delay(8) == 5.0

    def test_success_resets(self):
        """Test a success resets the consecutive counter."""
        backoff = ErrorBackoff()
        backoff.record_error()
        backoff.record_error()
        backoff.record_success()

        assert backoff.consecutive_errors == 0
        assert backoff.total_errors == 2

    @pytest.mark.asyncio
    async def test_maybe_backoff_sleeps_then_resets(self):
        """Test reaching the threshold sleeps and resets the counter."""
        backoff = ErrorBackoff(threshold=2, base_delay=1.0, max_delay=5.0)
        backoff.record_error()
        backoff.record_error()

        with patch("sitecrawl.infrastructure.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep:
            slept = await backoff.maybe_backoff()

        sleep.assert_awaited_once_with(1.0)
        assert slept == 1.0
        assert backoff.consecutive_errors == 0
        assert backoff.total_backoffs == 1
        assert backoff.total_backoff_time == 1.0

    @pytest.mark.asyncio
    async def test_maybe_backoff_noop_below_threshold(self):
        """Test no sleep below the threshold."""
        backoff = ErrorBackoff(threshold=2)
        backoff.record_error()

        assert await backoff.maybe_backoff() == 0.0
        assert backoff.consecutive_errors == 1


class TestThrottleMetrics:
    """Tests for get_metrics."""

    @pytest.mark.asyncio
    async def test_metrics_snapshot(self):
        """Test metrics reflect limiter and backoff state."""
        limiter = CrawlDelayLimiter(default_delay=0.0)
        backoff = ErrorBackoff()
        await limiter.wait()

        metrics = get_metrics(limiter, backoff)

        assert isinstance(metrics, ThrottleMetrics)
        assert metrics.total_requests == 1
        assert metrics.last_request_time is not None
        assert metrics.total_backoffs == 0

    def test_metrics_before_any_request(self):
        metrics = get_metrics(CrawlDelayLimiter(), ErrorBackoff())
        assert metrics.last_request_time is None
        assert metrics.current_delay == 0.2
