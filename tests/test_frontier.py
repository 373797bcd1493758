"""Tests for the URL frontier."""

import threading

import pytest

from sitecrawl.frontier import Frontier


class TestFrontierAdmission:
    """Test cases for dedup and the page cap."""

    def test_rejects_invalid_cap(self):
        """Test a cap below 1 is rejected."""
        with pytest.raises(ValueError):
            Frontier(0)

    def test_enqueue_deduplicates(self):
        """Test the same URL is admitted once."""
        frontier = Frontier(10)
        assert frontier.enqueue("https://example.com/a") is True
        assert frontier.enqueue("https://example.com/a") is False
        assert frontier.queued_count == 1

    def test_visited_url_not_readmitted(self):
        """Test a visited URL cannot re-enter the queue."""
        frontier = Frontier(10)
        frontier.enqueue("https://example.com/a")
        url = frontier.dequeue()
        frontier.mark_visited(url)

        assert frontier.enqueue("https://example.com/a") is False
        assert frontier.is_visited("https://example.com/a")

    def test_in_flight_url_not_readmitted(self):
        """Test a dequeued but undispatched URL is still known."""
        frontier = Frontier(10)
        frontier.enqueue("https://example.com/a")
        frontier.dequeue()

        assert frontier.enqueue("https://example.com/a") is False
        assert frontier.in_flight_count == 1

    def test_cap_counts_visited_and_queued(self):
        """Test admission stops once visited + queued reaches the cap."""
        frontier = Frontier(2)
        frontier.enqueue("https://example.com/a")
        frontier.mark_visited(frontier.dequeue())
        assert frontier.enqueue("https://example.com/b") is True
        assert frontier.enqueue("https://example.com/c") is False
        assert frontier.is_full

    def test_skipped_url_frees_capacity_but_stays_known(self):
        """Test a skipped URL leaves the count and is never re-admitted."""
        frontier = Frontier(1)
        frontier.enqueue("https://example.com/private/x")
        url = frontier.dequeue()
        frontier.skip(url)

        assert frontier.skipped_count == 1
        assert frontier.admitted_count == 0
        assert frontier.enqueue("https://example.com/private/x") is False
        assert frontier.enqueue("https://example.com/ok") is True

    def test_dequeue_is_fifo(self):
        """Test URLs come out in admission order."""
        frontier = Frontier(10)
        for path in ("a", "b", "c"):
            frontier.enqueue(f"https://example.com/{path}")

        assert frontier.dequeue() == "https://example.com/a"
        assert frontier.dequeue() == "https://example.com/b"
        assert frontier.dequeue() == "https://example.com/c"
        assert frontier.dequeue() is None
        assert frontier.has_pending is False

    def test_concurrent_enqueue_admits_once(self):
        """Test racing threads admit a URL exactly once and respect the cap."""
        frontier = Frontier(50)
        results = []

        def worker():
            for i in range(100):
                results.append(frontier.enqueue(f"https://example.com/{i}"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(results) == 50
        assert frontier.queued_count == 50
        assert len(frontier) == 50


class TestFrontierSeeding:
    """Test cases for seeding order."""

    def test_start_url_first_then_sitemap_order(self):
        """Test the start URL precedes sitemap URLs, which keep their order."""
        frontier = Frontier(4)
        sitemap = [f"https://example.com/s{i}" for i in range(10)]

        admitted = frontier.seed("https://example.com/", sitemap)

        assert admitted == 4
        order = [frontier.dequeue() for _ in range(4)]
        assert order == [
            "https://example.com/",
            "https://example.com/s0",
            "https://example.com/s1",
            "https://example.com/s2",
        ]

    def test_start_url_admitted_with_cap_of_one(self):
        """Test a cap of 1 still admits the start URL."""
        frontier = Frontier(1)
        frontier.seed("https://example.com/", ["https://example.com/a"])

        assert frontier.dequeue() == "https://example.com/"
        assert frontier.dequeue() is None

    def test_sitemap_duplicate_of_start_url_ignored(self):
        """Test a sitemap entry equal to the start URL does not use a slot."""
        frontier = Frontier(3)
        admitted = frontier.seed(
            "https://example.com/",
            ["https://example.com/", "https://example.com/a", "https://example.com/b"],
        )

        assert admitted == 3
        assert frontier.queued_count == 3

    def test_visited_snapshot(self):
        """Test visited returns an immutable snapshot."""
        frontier = Frontier(3)
        frontier.seed("https://example.com/")
        count = frontier.mark_visited(frontier.dequeue())

        assert count == 1
        assert frontier.visited == frozenset({"https://example.com/"})
        assert frontier.visited_count == 1
