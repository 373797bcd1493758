"""Sampled link and image health checks."""

import asyncio
import logging
from typing import List, Optional, Tuple, Union

from sitecrawl.constants import (
    LINK_CHECK_CONCURRENCY,
    LINK_CHECK_SAMPLE_SIZE,
    LINK_CHECK_TIMEOUT_SECONDS,
    LINK_HEALTHY_STATUS_THRESHOLD,
    NETWORK_ERROR_MARKER,
)
from sitecrawl.fetcher import FetchError, HttpFetcher
from sitecrawl.models import BrokenImage, BrokenLink, ImageInfo, LinkInfo

logger = logging.getLogger(__name__)


class LinkHealthChecker:
    """
    Check a page's links and images with HEAD requests.

    Only the first ``sample_size`` links and images of a page are considered,
    and external links are not checked. A check is healthy iff the response
    status is below 400; anything else (including network failures) is
    reported as broken.
    """

    def __init__(
        self,
        fetcher: HttpFetcher,
        timeout: float = LINK_CHECK_TIMEOUT_SECONDS,
        sample_size: int = LINK_CHECK_SAMPLE_SIZE,
        concurrency: int = LINK_CHECK_CONCURRENCY,
    ):
        """
        Initialize the checker.

        Args:
            fetcher: HTTP capability used for the HEAD checks
            timeout: Timeout per HEAD check (seconds)
            sample_size: Links/images checked per page
            concurrency: HEAD checks in flight at once
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self.sample_size = sample_size
        self.concurrency = max(1, concurrency)

    async def check_url(self, url: str) -> Optional[Union[int, str]]:
        """
        HEAD a single URL.

        Returns:
            None when healthy, else the HTTP status or "Network error"
        """
        try:
            response = await self.fetcher.head(url, timeout=self.timeout)
        except FetchError as e:
            if e.status_code is not None:
                return e.status_code
            logger.debug(f"HEAD check failed for {url}: {e}")
            return NETWORK_ERROR_MARKER
        except Exception as e:
            logger.debug(f"HEAD check failed for {url}: {e}")
            return NETWORK_ERROR_MARKER

        if response.status_code < LINK_HEALTHY_STATUS_THRESHOLD:
            return None
        return response.status_code

    async def _check_all(self, urls: List[str]) -> List[Optional[Union[int, str]]]:
        """Check URLs with bounded concurrency; results follow input order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(url: str):
            async with semaphore:
                return await self.check_url(url)

        return await asyncio.gather(*(bounded(url) for url in urls))

    async def check_links(self, links: List[LinkInfo]) -> List[BrokenLink]:
        """
        Check the first ``sample_size`` links; external ones are skipped.

        Returns:
            Broken links, in input order
        """
        sample = [link for link in links[: self.sample_size] if link.is_internal]
        if not sample:
            return []

        statuses = await self._check_all([link.href for link in sample])
        return [
            BrokenLink(url=link.href, text=link.text, status=status)
            for link, status in zip(sample, statuses)
            if status is not None
        ]

    async def check_images(self, images: List[ImageInfo]) -> List[BrokenImage]:
        """
        Check the first ``sample_size`` images.

        Returns:
            Broken images, in input order
        """
        sample = images[: self.sample_size]
        if not sample:
            return []

        statuses = await self._check_all([image.src for image in sample])
        return [
            BrokenImage(src=image.src, alt=image.alt, status=status)
            for image, status in zip(sample, statuses)
            if status is not None
        ]

    async def check_page(
        self, links: List[LinkInfo], images: List[ImageInfo]
    ) -> Tuple[List[BrokenLink], List[BrokenImage]]:
        """Check a page's links and images together."""
        broken_links, broken_images = await asyncio.gather(
            self.check_links(links), self.check_images(images)
        )
        if broken_links or broken_images:
            logger.info(
                f"Found {len(broken_links)} broken links and "
                f"{len(broken_images)} broken images"
            )
        return broken_links, broken_images
