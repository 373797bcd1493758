"""Shared fixtures: an in-memory website served through httpx.MockTransport."""

import time
from typing import Dict, List, Optional, Tuple, Union

import httpx
import pytest

from sitecrawl.fetcher import HttpFetcher


class FakeSite:
    """Request handler for httpx.MockTransport.

    Pages are keyed by path. Anything not registered answers 404.
    A failure given as a list raises its exceptions one request at a time,
    then the path is served normally.
    Every request is recorded as (method, url, monotonic time).
    """

    def __init__(
        self,
        pages: Optional[Dict[str, str]] = None,
        robots: Optional[str] = None,
        files: Optional[Dict[str, Tuple[int, str]]] = None,
        statuses: Optional[Dict[str, int]] = None,
        failures: Optional[Dict[str, Union[Exception, List[Exception]]]] = None,
    ):
        self.pages = pages or {}
        self.robots = robots
        self.files = files or {}
        self.statuses = statuses or {}
        self.failures = failures or {}
        self.requests: List[Tuple[str, str, float]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, str(request.url), time.monotonic()))

        failure = self.failures.get(path)
        if isinstance(failure, list):
            if failure:
                raise failure.pop(0)
        elif failure is not None:
            raise failure

        if path == "/robots.txt":
            if self.robots is None:
                return httpx.Response(404, text="Not found")
            return httpx.Response(200, text=self.robots)

        if path in self.files:
            status, body = self.files[path]
            return httpx.Response(status, text=body)

        if path in self.statuses:
            return httpx.Response(self.statuses[path], text="error")

        if path in self.pages:
            return httpx.Response(200, html=self.pages[path])

        return httpx.Response(404, text="Not found")

    def page_fetches(self) -> List[str]:
        """Paths fetched with GET, excluding robots.txt and sitemaps."""
        fetched = []
        for method, url, _ in self.requests:
            path = httpx.URL(url).path
            if method != "GET" or path == "/robots.txt" or "sitemap" in path:
                continue
            fetched.append(path)
        return fetched

    def page_fetch_times(self) -> List[float]:
        times = []
        for method, url, at in self.requests:
            path = httpx.URL(url).path
            if method == "GET" and path != "/robots.txt" and "sitemap" not in path:
                times.append(at)
        return times


def html_page(title: str = "Page", links=(), images=(), body: str = "", head: str = "") -> str:
    """Build a small HTML document. ``links`` are hrefs or (href, rel) pairs."""
    anchors = []
    for link in links:
        if isinstance(link, tuple):
            href, rel = link
            anchors.append(f'<a href="{href}" rel="{rel}">{href}</a>')
        else:
            anchors.append(f'<a href="{link}">{link}</a>')
    imgs = "".join(f'<img src="{src}" alt="{alt}">' for src, alt in images)
    return (
        f"<html><head><title>{title}</title>{head}</head>"
        f"<body><h1>{title}</h1>{body}{''.join(anchors)}{imgs}</body></html>"
    )


@pytest.fixture
def make_fetcher():
    """Build an HttpFetcher bound to a FakeSite."""
    fetchers = []

    def factory(site: FakeSite) -> HttpFetcher:
        fetcher = HttpFetcher(transport=httpx.MockTransport(site))
        fetchers.append(fetcher)
        return fetcher

    return factory
