"""Robots & sitemap resolution performed once at the start of a crawl run."""

import logging
from typing import List, Optional, Tuple

from sitecrawl.constants import (
    COMMON_SITEMAP_PATHS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ROBOTS_REQUEST_HEADERS,
)
from sitecrawl.fetcher import FetchError, HttpFetcher
from sitecrawl.robots import RobotsRules
from sitecrawl.sitemap_parser import SitemapParser
from sitecrawl.text import origin_of

logger = logging.getLogger(__name__)


class RobotsSitemapResolver:
    """Fetch robots.txt and every reachable sitemap for a site.

    Failures never propagate: a missing or broken robots.txt yields ``None``
    (allow everything) and unreachable sitemaps contribute no URLs.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        sitemap_paths: Tuple[str, ...] = COMMON_SITEMAP_PATHS,
    ):
        """Initialize the resolver.

        Args:
            fetcher: HTTP capability
            sitemap_paths: Conventional sitemap paths tried on the site origin
        """
        self.fetcher = fetcher
        self.sitemap_paths = sitemap_paths

    async def resolve(
        self, base_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    ) -> Tuple[Optional[RobotsRules], List[str]]:
        """Resolve robots rules and the candidate URL list for a site.

        Args:
            base_url: Any URL on the site (normally the crawl start URL)
            timeout: Per-request timeout in seconds

        Returns:
            Tuple of (RobotsRules or None, deduplicated sitemap URLs in first-seen order)
        """
        robots = await self.load_robots(base_url, timeout)
        sitemap_urls = await self.find_sitemap_urls(base_url, robots, timeout)
        return robots, sitemap_urls

    async def load_robots(
        self, base_url: str, timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS
    ) -> Optional[RobotsRules]:
        """Load and parse robots.txt for the site.

        Returns:
            RobotsRules, or None when robots.txt is missing or unreachable
        """
        robots_url = f"{origin_of(base_url)}/robots.txt"

        try:
            response = await self.fetcher.get(
                robots_url,
                headers=ROBOTS_REQUEST_HEADERS,
                timeout=timeout,
                status_validator=lambda status: 200 <= status < 300,
            )
        except FetchError as e:
            logger.info(f"No robots.txt found at {robots_url} ({e})")
            return None

        rules = RobotsRules.parse(robots_url, response.text)
        logger.info(f"Loaded robots.txt from {robots_url}")
        return rules

    async def find_sitemap_urls(
        self,
        base_url: str,
        robots: Optional[RobotsRules],
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> List[str]:
        """Collect page URLs from declared and conventional sitemaps.

        Sitemaps declared in robots.txt are read first, then the conventional
        paths; the same literal sitemap URL is never parsed twice.
        """
        origin = origin_of(base_url)
        candidates: List[str] = []
        if robots is not None:
            candidates.extend(robots.sitemaps)
        candidates.extend(f"{origin}{path}" for path in self.sitemap_paths)

        parser = SitemapParser(self.fetcher, timeout=timeout)
        parsed_sitemaps = set()
        urls: List[str] = []

        for sitemap_url in candidates:
            if sitemap_url in parsed_sitemaps:
                continue
            parsed_sitemaps.add(sitemap_url)
            urls.extend(await parser.parse(sitemap_url))

        # Set semantics, first occurrence wins
        unique_urls = list(dict.fromkeys(urls))
        if unique_urls:
            logger.info(f"Found {len(unique_urls)} URLs in sitemaps")
        else:
            logger.info("No sitemap found - pages will be discovered by following links")
        return unique_urls
