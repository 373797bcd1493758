"""Async site crawler: resolver, frontier and a pool of fetch workers."""

import asyncio
import dataclasses
import inspect
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from sitecrawl.config import CrawlConfig
from sitecrawl.constants import WORKER_IDLE_POLL_SECONDS
from sitecrawl.fetcher import HttpFetcher
from sitecrawl.frontier import Frontier
from sitecrawl.infrastructure.browser_pool import BrowserPool
from sitecrawl.infrastructure.rate_limiter import CrawlDelayLimiter, ErrorBackoff, get_metrics
from sitecrawl.link_checker import LinkHealthChecker
from sitecrawl.models import CrawlRunState, PageResult
from sitecrawl.page_processor import PageProcessor
from sitecrawl.resolver import RobotsSitemapResolver
from sitecrawl.text import normalize_url

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], Any]


class CrawlError(Exception):
    """A failure that aborted the whole crawl run."""


class AsyncSiteCrawler:
    """
    Crawl one site with a fixed number of concurrent workers.

    A run resolves robots.txt and sitemaps once, seeds the frontier with the
    start URL followed by sitemap URLs, then lets ``concurrency`` workers pull
    URLs until the frontier is drained or the page cap is reached. Per-page
    failures become error results; only structural failures abort the run.

    All run state lives in a ``CrawlRunState`` created by ``crawl()``, so two
    crawls never share a frontier, result list or error counter.
    """

    def __init__(
        self,
        start_url: str,
        config: Optional[CrawlConfig] = None,
        progress_callback: Optional[ProgressCallback] = None,
        fetcher: Optional[HttpFetcher] = None,
        resolver: Optional[RobotsSitemapResolver] = None,
        browser_pool: Optional[BrowserPool] = None,
        link_checker: Optional[LinkHealthChecker] = None,
        **overrides: Any,
    ):
        """
        Initialize the crawler.

        Args:
            start_url: URL the crawl starts from; its host bounds the crawl
            config: Crawl options (defaults when None)
            progress_callback: Called with the visited count after each page
            fetcher: HTTP capability (one is created per run when None)
            resolver: Robots/sitemap resolver (built on the fetcher when None)
            browser_pool: Rendering pool (created when rendering is enabled)
            link_checker: Health checker (built on the fetcher when None)
            **overrides: CrawlConfig fields overriding ``config``

        Raises:
            ValueError: Invalid start URL or option values
        """
        config = config or CrawlConfig()
        if overrides:
            unknown = set(overrides) - set(config.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown crawl options: {', '.join(sorted(unknown))}")
            config = dataclasses.replace(config, **overrides)
        config.validate()
        self.config = config

        start_url = normalize_url(start_url)
        parsed = urlparse(start_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Invalid start URL: {start_url}")
        self.start_url = start_url
        self.base_host = parsed.netloc.lower()

        self.progress_callback = progress_callback
        self._fetcher = fetcher
        self._resolver = resolver
        self._browser_pool = browser_pool
        self._link_checker = link_checker

        self.state: Optional[CrawlRunState] = None
        self.limiter: Optional[CrawlDelayLimiter] = None

        # Worker coordination, reset per run
        self._cond: Optional[asyncio.Condition] = None
        self._active = 0

    async def crawl(self) -> List[PageResult]:
        """
        Run the crawl.

        Returns:
            One PageResult per visited URL, in completion order

        Raises:
            CrawlError: A run-fatal failure aborted the crawl
        """
        config = self.config
        fetcher = self._fetcher or HttpFetcher(user_agent=config.user_agent, timeout=config.timeout)
        owns_fetcher = self._fetcher is None

        browser_pool = None
        owns_pool = False
        if config.enable_rendering_fallback:
            browser_pool = self._browser_pool or BrowserPool(
                max_size=config.pool_max_size,
                acquire_timeout=config.pool_acquire_timeout,
                idle_timeout=config.pool_idle_timeout,
                max_age=config.pool_max_age,
                max_lifetime=config.pool_max_lifetime,
                executable_path=config.chrome_path,
            )
            owns_pool = not browser_pool.is_started

        state = CrawlRunState(
            start_url=self.start_url,
            base_host=self.base_host,
            config=config,
            frontier=Frontier(config.max_pages),
            backoff=ErrorBackoff(
                threshold=config.max_consecutive_errors,
                base_delay=config.backoff_base_seconds,
                max_delay=config.max_backoff_seconds,
            ),
        )
        self.state = state
        self.limiter = CrawlDelayLimiter(config.default_crawl_delay)

        logger.info(f"Starting crawl from: {self.start_url}")
        logger.info(f"Max pages: {config.max_pages}, Concurrency: {config.concurrency}")

        try:
            if browser_pool is not None and owns_pool:
                await browser_pool.start()

            resolver = self._resolver or RobotsSitemapResolver(fetcher)
            state.robots, sitemap_urls = await resolver.resolve(
                self.start_url, timeout=config.timeout
            )
            state.sitemap_urls = list(dict.fromkeys(normalize_url(url) for url in sitemap_urls))
            seeded = state.frontier.seed(self.start_url, state.sitemap_urls)
            logger.info(f"Seeded {seeded} URLs ({len(state.sitemap_urls)} from sitemaps)")

            link_checker = self._link_checker
            if link_checker is None and config.check_links:
                link_checker = LinkHealthChecker(
                    fetcher,
                    timeout=config.link_check_timeout,
                    sample_size=config.link_check_sample_size,
                    concurrency=config.link_check_concurrency,
                )

            processor = PageProcessor(
                config,
                fetcher,
                self.base_host,
                admit=state.frontier.enqueue,
                browser_pool=browser_pool,
                link_checker=link_checker,
                throttle=lambda: self.limiter.wait(self._crawl_delay(state)),
            )

            await self._run_workers(state, processor)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Crawl of {self.start_url} failed: {e}")
            raise CrawlError(f"Crawl of {self.start_url} failed: {e}") from e
        finally:
            state.finished_at = datetime.now()
            if browser_pool is not None and owns_pool:
                await browser_pool.close()
            if owns_fetcher:
                await fetcher.aclose()

        summary = self.get_summary()
        logger.info(f"\n{'=' * 60}")
        logger.info(
            f"Crawl complete! Processed {summary['pages_crawled']} pages "
            f"in {summary['duration_seconds']:.1f}s"
        )
        if summary["errors"]:
            logger.info(f"Failed pages: {summary['errors']}")
        logger.info(f"{'=' * 60}\n")

        return state.results

    async def _run_workers(self, state: CrawlRunState, processor: PageProcessor) -> None:
        self._cond = asyncio.Condition()
        self._active = 0

        workers = [
            asyncio.create_task(self._worker(i, state, processor))
            for i in range(state.config.concurrency)
        ]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

    async def _next_url(self, state: CrawlRunState) -> Optional[str]:
        """
        Wait for work.

        Returns:
            Next URL, or None when the frontier is drained and no other
            worker can add to it, or the page cap is reached
        """
        frontier = state.frontier
        async with self._cond:
            while True:
                if frontier.visited_count >= state.config.max_pages:
                    return None

                url = frontier.dequeue()
                if url is not None:
                    self._active += 1
                    return url

                if self._active == 0:
                    self._cond.notify_all()
                    return None

                # Another worker may still discover links
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=WORKER_IDLE_POLL_SECONDS)
                except asyncio.TimeoutError:
                    pass

    async def _worker(self, worker_id: int, state: CrawlRunState, processor: PageProcessor) -> None:
        logger.debug(f"Worker {worker_id} started")
        while True:
            url = await self._next_url(state)
            if url is None:
                break
            try:
                await self._visit(url, state, processor)
            finally:
                async with self._cond:
                    self._active -= 1
                    self._cond.notify_all()
        logger.debug(f"Worker {worker_id} finished")

    async def _visit(self, url: str, state: CrawlRunState, processor: PageProcessor) -> None:
        """Run the worker step for one dequeued URL."""
        frontier = state.frontier
        config = state.config

        if frontier.is_visited(url):
            frontier.skip(url)
            return

        if state.robots is not None and not state.robots.is_allowed(url, config.bot_name):
            logger.info(f"Skipping {url} (disallowed by robots.txt)")
            frontier.skip(url)
            return

        visited = frontier.mark_visited(url)
        logger.info(f"Crawling ({visited}/{config.max_pages}): {url}")

        await self.limiter.wait(self._crawl_delay(state))

        result = await processor.process(url)
        state.results.append(result)

        if result.is_error:
            state.backoff.record_error()
            await state.backoff.maybe_backoff()
        else:
            state.backoff.record_success()

        await self._report_progress(visited)

    @staticmethod
    def _crawl_delay(state: CrawlRunState) -> float:
        """Robots delay for our bot (or the wildcard group), else the default."""
        delay = state.robots.crawl_delay(state.config.bot_name) if state.robots else None
        return delay if delay else state.config.default_crawl_delay

    async def _report_progress(self, visited: int) -> None:
        if self.progress_callback is None:
            return
        try:
            outcome = self.progress_callback(visited)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def get_summary(self) -> Dict[str, Any]:
        """
        Summarize the most recent run.

        Returns:
            Dictionary with page, error, rendering and health-check totals
        """
        state = self.state
        if state is None:
            return {
                "start_url": self.start_url,
                "pages_crawled": 0,
                "errors": 0,
                "errors_by_type": {},
                "retries": 0,
                "noindex_pages": 0,
                "rendered_pages": 0,
                "broken_links": 0,
                "broken_images": 0,
                "sitemap_urls": 0,
                "robots_txt": False,
                "skipped_urls": 0,
                "duration_seconds": 0.0,
                "throttle": {},
            }

        results = state.results
        errors_by_type = Counter(r.error_type or "UNKNOWN_ERROR" for r in results if r.is_error)

        throttle = {}
        if self.limiter is not None:
            metrics = get_metrics(self.limiter, state.backoff)
            throttle = dataclasses.asdict(metrics)
            if metrics.last_request_time is not None:
                throttle["last_request_time"] = metrics.last_request_time.isoformat()

        return {
            "start_url": state.start_url,
            "pages_crawled": len(results),
            "errors": sum(1 for r in results if r.is_error),
            "errors_by_type": dict(errors_by_type),
            "retries": sum(r.attempts - 1 for r in results),
            "noindex_pages": sum(1 for r in results if r.noindex),
            "rendered_pages": sum(1 for r in results if r.rendered),
            "broken_links": sum(len(r.broken_links) for r in results),
            "broken_images": sum(len(r.broken_images) for r in results),
            "sitemap_urls": len(state.sitemap_urls),
            "robots_txt": state.robots is not None,
            "skipped_urls": state.frontier.skipped_count,
            "duration_seconds": state.duration_seconds,
            "throttle": throttle,
        }


def crawl_site(
    start_url: str,
    config: Optional[CrawlConfig] = None,
    progress_callback: Optional[ProgressCallback] = None,
    **options: Any,
) -> List[PageResult]:
    """
    Convenience function to crawl a site synchronously.

    Args:
        start_url: URL to start from
        config: Crawl options
        progress_callback: Called with the visited count after each page
        **options: CrawlConfig field overrides

    Returns:
        List of PageResult in completion order
    """
    crawler = AsyncSiteCrawler(
        start_url, config=config, progress_callback=progress_callback, **options
    )
    return asyncio.run(crawler.crawl())
