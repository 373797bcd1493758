"""URL frontier: deduplicating FIFO work queue with a page cap."""

import logging
import threading
from collections import deque
from typing import Deque, FrozenSet, Iterable, Optional, Set

logger = logging.getLogger(__name__)


class Frontier:
    """Work queue of URLs awaiting a fetch.

    Every admitted URL lives in exactly one of: queued, in flight (dequeued
    but not yet dispatched or skipped), or visited. The sum of the three
    never exceeds ``max_pages``. URLs skipped after dequeue (e.g. blocked by
    robots.txt) leave the count and are never admitted again.

    All check-then-act operations run under a single lock so concurrent
    workers cannot admit the same URL twice.
    """

    def __init__(self, max_pages: int):
        if max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {max_pages}")

        self.max_pages = max_pages
        self._queue: Deque[str] = deque()
        self._queued: Set[str] = set()
        self._in_flight: Set[str] = set()
        self._visited: Set[str] = set()
        self._skipped: Set[str] = set()
        self._lock = threading.Lock()

    def seed(self, start_url: str, sitemap_urls: Iterable[str] = ()) -> int:
        """Admit the start URL, then sitemap URLs in their original order.

        The start URL always goes first so it is crawled even under a cap of 1;
        sitemap URLs fill at most ``max_pages - 1`` slots.

        Args:
            start_url: Normalized crawl start URL
            sitemap_urls: Candidate URLs from the sitemap resolver

        Returns:
            Number of URLs admitted
        """
        admitted = 1 if self.enqueue(start_url) else 0

        for url in sitemap_urls:
            if self.is_full:
                break
            if self.enqueue(url):
                admitted += 1

        logger.debug(f"Seeded frontier with {admitted} URLs")
        return admitted

    def enqueue(self, url: str) -> bool:
        """Admit ``url`` at the tail of the queue if it is new and the cap allows.

        Returns:
            True if the URL was admitted
        """
        with self._lock:
            if (
                url in self._visited
                or url in self._queued
                or url in self._in_flight
                or url in self._skipped
            ):
                return False
            if self._admitted_unlocked() >= self.max_pages:
                return False

            self._queue.append(url)
            self._queued.add(url)
            return True

    def dequeue(self) -> Optional[str]:
        """Pop the oldest queued URL and move it in flight.

        Returns:
            URL, or None when the queue is empty
        """
        with self._lock:
            if not self._queue:
                return None

            url = self._queue.popleft()
            self._queued.discard(url)
            self._in_flight.add(url)
            return url

    def mark_visited(self, url: str) -> int:
        """Record ``url`` as dispatched for fetching.

        Returns:
            Visited count after this URL
        """
        with self._lock:
            self._in_flight.discard(url)
            self._queued.discard(url)
            self._visited.add(url)
            return len(self._visited)

    def skip(self, url: str) -> None:
        """Drop an in-flight URL without visiting it; it will not be re-admitted."""
        with self._lock:
            self._in_flight.discard(url)
            self._skipped.add(url)

    def is_visited(self, url: str) -> bool:
        with self._lock:
            return url in self._visited

    def _admitted_unlocked(self) -> int:
        return len(self._queued) + len(self._in_flight) + len(self._visited)

    @property
    def admitted_count(self) -> int:
        with self._lock:
            return self._admitted_unlocked()

    @property
    def visited(self) -> FrozenSet[str]:
        """Snapshot of visited URLs."""
        with self._lock:
            return frozenset(self._visited)

    @property
    def visited_count(self) -> int:
        with self._lock:
            return len(self._visited)

    @property
    def queued_count(self) -> int:
        with self._lock:
            return len(self._queued)

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._in_flight)

    @property
    def skipped_count(self) -> int:
        with self._lock:
            return len(self._skipped)

    @property
    def has_pending(self) -> bool:
        """Whether any URL is waiting in the queue."""
        with self._lock:
            return bool(self._queue)

    @property
    def is_full(self) -> bool:
        """Whether the page cap has been reached."""
        with self._lock:
            return self._admitted_unlocked() >= self.max_pages

    def __len__(self) -> int:
        return self.queued_count
