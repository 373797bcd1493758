"""Per-URL processing: fetch, extract, admit links, render fallback, health check."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import urlparse

from sitecrawl.config import CrawlConfig
from sitecrawl.constants import (
    PAGE_STATUS_REJECT_THRESHOLD,
    RENDER_USER_AGENT,
    RENDER_VIEWPORT_HEIGHT,
    RENDER_VIEWPORT_WIDTH,
    RETRYABLE_ERROR_TYPES,
)
from sitecrawl.fetcher import FetchError, HttpFetcher, classify_error
from sitecrawl.infrastructure.browser_pool import BrowserPool
from sitecrawl.link_checker import LinkHealthChecker
from sitecrawl.models import ImageInfo, LinkInfo, PageResult
from sitecrawl.page_parser import extract_links_and_images, parse_page

logger = logging.getLogger(__name__)

# Admission callback: url -> True if it entered the frontier
AdmitFn = Callable[[str], bool]

# Awaited before each retry so retries honour the crawl delay
ThrottleFn = Callable[[], Awaitable[Any]]


class PageProcessor:
    """
    Turn one URL into one PageResult.

    ``process()`` never raises for page-level problems: fetch failures and
    unexpected exceptions become an error result so the rest of the crawl is
    unaffected.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher: HttpFetcher,
        base_host: str,
        admit: AdmitFn,
        browser_pool: Optional[BrowserPool] = None,
        link_checker: Optional[LinkHealthChecker] = None,
        throttle: Optional[ThrottleFn] = None,
    ):
        """
        Initialize the processor.

        Args:
            config: Crawl options
            fetcher: HTTP capability for page fetches
            base_host: host[:port] of the crawl
            admit: Offers a discovered internal URL to the frontier
            browser_pool: Rendering pool (fallback disabled when None)
            link_checker: Health checker (checks skipped when None)
            throttle: Awaited before each retried fetch
        """
        self.config = config
        self.fetcher = fetcher
        self.base_host = base_host
        self.admit = admit
        self.browser_pool = browser_pool
        self.link_checker = link_checker
        self.throttle = throttle

    async def process(self, url: str) -> PageResult:
        """
        Fetch and analyze a single page.

        Timeouts, connection resets and transient network errors are retried
        up to ``max_retries`` times with exponential backoff.

        Args:
            url: Page URL (already dispatched by the frontier)

        Returns:
            PageResult; ``error`` is set when the page could not be processed
        """
        attempt = 1
        while True:
            try:
                return await self._process(url, attempt)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error_type = classify_error(e)
                if error_type in RETRYABLE_ERROR_TYPES and attempt <= self.config.max_retries:
                    delay = self.retry_delay(attempt)
                    logger.info(
                        f"🔄 {error_type} for {url}, retrying in {delay:.1f}s "
                        f"(attempt {attempt + 1}/{self.config.max_retries + 1})"
                    )
                    await asyncio.sleep(delay)
                    if self.throttle is not None:
                        await self.throttle()
                    attempt += 1
                    continue

                logger.warning(f"⚠️ Error crawling {url}: {e}")
                return self._error_result(url, e, error_type, attempt)

    def retry_delay(self, attempt: int) -> float:
        """Pause before the retry that follows failed attempt ``attempt``."""
        delay = self.config.retry_base_delay * (2 ** (attempt - 1))
        return min(delay, self.config.retry_max_delay)

    async def _process(self, url: str, attempt: int = 1) -> PageResult:
        response = await self.fetcher.get(
            url,
            timeout=self.config.timeout,
            max_bytes=self.config.max_response_bytes,
            status_validator=lambda status: status < PAGE_STATUS_REJECT_THRESHOLD,
        )

        parsed = parse_page(response.text, url, self.base_host)

        if parsed.noindex:
            logger.info(f"Page has noindex directive, skipping: {url}")
            return PageResult(
                url=url,
                status_code=response.status_code,
                noindex=True,
                nofollow=parsed.nofollow,
                robots_meta=parsed.robots_meta,
                page_size=len(response.content),
                attempts=attempt,
            )

        links, images = parsed.links, parsed.images
        self._admit_links(links, parsed.nofollow)

        rendered = False
        if (
            self.config.enable_rendering_fallback
            and self.browser_pool is not None
            and len(links) < self.config.rendering_min_links
        ):
            rendered_result = await self._render_fallback(url, len(links), parsed.nofollow)
            if rendered_result is not None:
                links, images = rendered_result
                rendered = True

        broken_links, broken_images = [], []
        if self.link_checker is not None:
            broken_links, broken_images = await self.link_checker.check_page(links, images)

        return PageResult(
            url=url,
            status_code=response.status_code,
            title=parsed.title,
            meta_description=parsed.meta_description,
            h1_count=len(parsed.h1_tags),
            h1_tags=parsed.h1_tags,
            h2_tags=parsed.h2_tags,
            word_count=parsed.word_count,
            canonical_url=parsed.canonical_url,
            images=images,
            links=links,
            broken_links=broken_links,
            broken_images=broken_images,
            page_size=len(response.content),
            noindex=False,
            nofollow=parsed.nofollow,
            robots_meta=parsed.robots_meta,
            rendered=rendered,
            attempts=attempt,
        )

    def _admit_links(self, links: List[LinkInfo], page_nofollow: bool) -> int:
        """Offer followable internal links to the frontier.

        Returns:
            Number of links admitted
        """
        if page_nofollow:
            return 0

        admitted = 0
        for link in links:
            if not link.is_internal or link.nofollow:
                continue
            if urlparse(link.href).scheme not in ("http", "https"):
                continue
            if self.admit(link.href):
                admitted += 1
        return admitted

    async def _render_fallback(
        self, url: str, static_link_count: int, page_nofollow: bool
    ) -> Optional[Tuple[List[LinkInfo], List[ImageInfo]]]:
        """
        Re-render a link-poor page in a headless browser.

        Internal links found in the rendered document are admitted either way.

        Returns:
            Rendered (links, images) if they hold strictly more links than the
            static parse, else None
        """
        logger.info(
            f"🔄 Only {static_link_count} links found in static HTML, "
            f"trying rendering fallback for {url}"
        )

        async def render(page) -> str:
            await page.goto(
                url,
                wait_until="networkidle",
                timeout=self.config.render_timeout * 1000,  # Playwright uses milliseconds
            )
            await asyncio.sleep(self.config.render_settle_seconds)
            return await page.content()

        try:
            html = await self.browser_pool.with_page(
                render,
                timeout=self.config.render_timeout,
                user_agent=RENDER_USER_AGENT,
                viewport={"width": RENDER_VIEWPORT_WIDTH, "height": RENDER_VIEWPORT_HEIGHT},
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"⚠️ Rendering fallback failed for {url}: {e}")
            return None

        links, images = extract_links_and_images(html, url, self.base_host)
        self._admit_links(links, page_nofollow)

        if len(links) > static_link_count:
            logger.info(
                f"✓ Rendering found {len(links)} links vs {static_link_count}, "
                f"using rendered result"
            )
            return links, images

        logger.debug(f"Rendering found {len(links)} links for {url}, keeping static result")
        return None

    @staticmethod
    def _error_result(url: str, error: Exception, error_type: str, attempts: int) -> PageResult:
        status = 0
        if isinstance(error, FetchError) and error.status_code is not None:
            status = error.status_code

        message = str(error) or type(error).__name__
        return PageResult(
            url=url,
            status_code=status,
            error=message,
            error_type=error_type,
            errors=[message],
            attempts=attempts,
        )
