"""HTML extraction for crawled pages."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from sitecrawl.constants import MISSING_VALUE
from sitecrawl.models import ImageInfo, LinkInfo
from sitecrawl.text import (
    is_internal_url,
    normalize_alt_text,
    normalize_heading,
    normalize_meta,
    normalize_text,
    resolve_url,
)


@dataclass
class ParsedPage:
    """Everything extracted from one HTML document."""

    title: str = MISSING_VALUE
    meta_description: str = MISSING_VALUE
    h1_tags: List[str] = field(default_factory=list)
    h2_tags: List[str] = field(default_factory=list)
    word_count: int = 0
    canonical_url: Optional[str] = None
    robots_meta: str = ""
    noindex: bool = False
    nofollow: bool = False
    images: List[ImageInfo] = field(default_factory=list)
    links: List[LinkInfo] = field(default_factory=list)


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def parse_robots_meta(soup: BeautifulSoup) -> Tuple[str, bool, bool]:
    """Read the ``<meta name="robots">`` directives.

    Returns:
        Tuple of (raw content, noindex, nofollow)
    """
    tag = soup.find("meta", attrs={"name": lambda v: v and v.lower() == "robots"})
    content = (tag.get("content") or "") if tag else ""
    directives = [d.strip() for d in content.lower().split(",")]
    return content, "noindex" in directives, "nofollow" in directives


def extract_links(soup: BeautifulSoup, page_url: str, base_host: str) -> List[LinkInfo]:
    """Collect every ``<a href>`` in document order, resolved against the page URL."""
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        if not href.strip():
            continue

        resolved = resolve_url(href, page_url)
        rel = anchor.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()

        links.append(
            LinkInfo(
                href=resolved,
                text=normalize_text(anchor.get_text(" ")),
                is_internal=is_internal_url(resolved, base_host),
                nofollow="nofollow" in [r.lower() for r in rel],
            )
        )
    return links


def extract_images(soup: BeautifulSoup, page_url: str) -> List[ImageInfo]:
    """Collect every ``<img src>`` in document order."""
    images = []
    for img in soup.find_all("img"):
        src = img.get("src")
        if not src or not src.strip():
            continue

        alt = normalize_alt_text(img.get("alt", ""))
        images.append(
            ImageInfo(src=resolve_url(src, page_url), alt=alt, has_alt=bool(alt))
        )
    return images


def extract_links_and_images(
    html: str, page_url: str, base_host: str
) -> Tuple[List[LinkInfo], List[ImageInfo]]:
    """Extract only links and images, as needed for a rendered document."""
    soup = make_soup(html)
    return extract_links(soup, page_url, base_host), extract_images(soup, page_url)


def parse_page(html: str, page_url: str, base_host: str) -> ParsedPage:
    """Extract metadata, links and images from an HTML document.

    Args:
        html: Page HTML
        page_url: URL the HTML was fetched from (base for relative references)
        base_host: host[:port] of the crawl, decides which links are internal

    Returns:
        ParsedPage. For a ``noindex`` page only the robots fields are filled in.
    """
    soup = make_soup(html)
    robots_meta, noindex, nofollow = parse_robots_meta(soup)

    if noindex:
        return ParsedPage(robots_meta=robots_meta, noindex=True, nofollow=nofollow)

    title_tag = soup.find("title")
    title = normalize_meta(title_tag.get_text()) if title_tag else ""

    description_tag = soup.find(
        "meta", attrs={"name": lambda v: v and v.lower() == "description"}
    )
    description = normalize_meta(description_tag.get("content")) if description_tag else ""

    h1_tags = [normalize_heading(h.get_text(" ")) for h in soup.find_all("h1")]
    h2_tags = [normalize_heading(h.get_text(" ")) for h in soup.find_all("h2")]

    # Word count
    body = soup.body or soup
    body_text = normalize_text(body.get_text(" "))
    word_count = len(body_text.split()) if body_text else 0

    canonical = soup.find("link", rel="canonical")
    canonical_url = canonical.get("href") if canonical else None
    if canonical_url:
        canonical_url = resolve_url(canonical_url, page_url)

    return ParsedPage(
        title=title or MISSING_VALUE,
        meta_description=description or MISSING_VALUE,
        h1_tags=h1_tags,
        h2_tags=h2_tags,
        word_count=word_count,
        canonical_url=canonical_url,
        robots_meta=robots_meta,
        noindex=False,
        nofollow=nofollow,
        images=extract_images(soup, page_url),
        links=extract_links(soup, page_url, base_host),
    )
