"""Data models for crawl runs."""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from sitecrawl.config import CrawlConfig
    from sitecrawl.frontier import Frontier
    from sitecrawl.infrastructure.rate_limiter import ErrorBackoff
    from sitecrawl.robots import RobotsRules


@dataclass
class LinkInfo:
    """An ``<a href>`` found on a page."""

    href: str
    text: str = ""
    is_internal: bool = False
    nofollow: bool = False


@dataclass
class ImageInfo:
    """An ``<img src>`` found on a page."""

    src: str
    alt: str = ""
    has_alt: bool = False


@dataclass
class BrokenLink:
    """A sampled link whose HEAD check failed."""

    url: str
    text: str = ""
    status: Union[int, str] = 0  # HTTP status or "Network error"


@dataclass
class BrokenImage:
    """A sampled image whose HEAD check failed."""

    src: str
    alt: str = ""
    status: Union[int, str] = 0  # HTTP status or "Network error"


@dataclass
class PageResult:
    """One record per visited URL."""

    url: str
    status_code: int = 0
    title: Optional[str] = None
    meta_description: Optional[str] = None
    h1_count: int = 0
    h1_tags: list[str] = field(default_factory=list)
    h2_tags: list[str] = field(default_factory=list)
    word_count: int = 0
    canonical_url: Optional[str] = None
    images: list[ImageInfo] = field(default_factory=list)
    links: list[LinkInfo] = field(default_factory=list)
    broken_links: list[BrokenLink] = field(default_factory=list)
    broken_images: list[BrokenImage] = field(default_factory=list)
    page_size: int = 0  # bytes
    noindex: bool = False
    nofollow: bool = False
    robots_meta: str = ""
    rendered: bool = False  # links/images taken from the rendering fallback
    error: Optional[str] = None
    error_type: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    attempts: int = 1  # fetch attempts, retries included
    crawled_at: datetime = field(default_factory=datetime.now)

    @property
    def is_error(self) -> bool:
        """Whether the fetch for this page failed."""
        return self.error is not None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["crawled_at"] = self.crawled_at.isoformat()
        return data


@dataclass
class CrawlRunState:
    """Aggregate state owned by exactly one crawl invocation."""

    start_url: str
    base_host: str
    config: "CrawlConfig"
    frontier: "Frontier"
    backoff: "ErrorBackoff"
    robots: Optional["RobotsRules"] = None
    sitemap_urls: list[str] = field(default_factory=list)
    results: list[PageResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()
