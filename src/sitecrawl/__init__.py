"""Site crawl orchestration engine."""

__version__ = "0.1.0"

from sitecrawl.site_crawler import AsyncSiteCrawler, CrawlError, crawl_site
from sitecrawl.frontier import Frontier
from sitecrawl.resolver import RobotsSitemapResolver
from sitecrawl.robots import RobotsRules
from sitecrawl.sitemap_parser import SitemapParser, parse_sitemap
from sitecrawl.link_checker import LinkHealthChecker
from sitecrawl.page_processor import PageProcessor
from sitecrawl.fetcher import HttpFetcher, FetchError, FetchResponse, classify_error
from sitecrawl.models import (
    PageResult,
    LinkInfo,
    ImageInfo,
    BrokenLink,
    BrokenImage,
    CrawlRunState,
)
from sitecrawl.config import CrawlConfig, settings

from sitecrawl.infrastructure import (
    BrowserPool,
    BrowserState,
    PoolStatus,
    PoolAcquireTimeout,
    PoolClosedError,
    CrawlDelayLimiter,
    ErrorBackoff,
)

__all__ = [
    # Core
    "AsyncSiteCrawler",
    "CrawlError",
    "crawl_site",
    "Frontier",
    "RobotsSitemapResolver",
    "RobotsRules",
    "SitemapParser",
    "parse_sitemap",
    "LinkHealthChecker",
    "PageProcessor",
    "HttpFetcher",
    "FetchError",
    "FetchResponse",
    "classify_error",
    # Models
    "PageResult",
    "LinkInfo",
    "ImageInfo",
    "BrokenLink",
    "BrokenImage",
    "CrawlRunState",
    "CrawlConfig",
    "settings",
    # Infrastructure
    "BrowserPool",
    "BrowserState",
    "PoolStatus",
    "PoolAcquireTimeout",
    "PoolClosedError",
    "CrawlDelayLimiter",
    "ErrorBackoff",
]
