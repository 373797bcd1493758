"""
Infrastructure Package.

Provides browser pooling, crawl-delay throttling and error backoff for
the fetch workers.
"""

from .browser_pool import (
    BrowserPool,
    BrowserEntry,
    BrowserHealth,
    BrowserState,
    PoolStatus,
    PoolAcquireTimeout,
    PoolClosedError,
)
from .rate_limiter import (
    CrawlDelayLimiter,
    ErrorBackoff,
    ThrottleMetrics,
    get_metrics,
)

__all__ = [
    # Browser Pool
    "BrowserPool",
    "BrowserEntry",
    "BrowserHealth",
    "BrowserState",
    "PoolStatus",
    "PoolAcquireTimeout",
    "PoolClosedError",
    # Rate Limiter
    "CrawlDelayLimiter",
    "ErrorBackoff",
    "ThrottleMetrics",
    "get_metrics",
]
