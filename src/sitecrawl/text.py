"""Text and URL normalization shared by page extraction and the frontier."""

import html
import re
import unicodedata
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_text(text) -> str:
    """Decode entities, apply NFC and collapse whitespace.

    Args:
        text: Raw text, possibly containing HTML entities

    Returns:
        Cleaned single-line text ("" for None or non-string input)
    """
    if not text or not isinstance(text, str):
        return ""

    normalized = html.unescape(text)
    normalized = unicodedata.normalize("NFC", normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def normalize_meta(text) -> str:
    """Normalize a title or meta description."""
    return normalize_text(text)


def normalize_heading(text) -> str:
    """Normalize heading text."""
    return normalize_text(text)


def normalize_alt_text(text) -> str:
    """Normalize image alt text; whitespace-only alt counts as missing."""
    return normalize_text(text)


def strip_fragment(url: str) -> str:
    """Remove the ``#fragment`` part of a URL."""
    return urldefrag(url)[0]


def normalize_url(url: str) -> str:
    """Canonical frontier form of an http(s) URL.

    Strips the fragment, lowercases scheme and host, and turns an empty path
    into ``/`` so ``https://Example.com`` and ``https://example.com/#top`` are
    the same entry. Other schemes are returned without their fragment.
    """
    url = strip_fragment(url.strip())
    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    scheme = parsed.scheme.lower()
    if scheme not in ("http", "https") or not parsed.netloc:
        return url

    return urlunparse(parsed._replace(
        scheme=scheme,
        netloc=parsed.netloc.lower(),
        path=parsed.path or "/",
    ))


def resolve_url(href: str, base_url: str) -> str:
    """Resolve ``href`` against ``base_url`` and normalize the result.

    Args:
        href: Raw href/src attribute value
        base_url: URL of the page the attribute was found on

    Returns:
        Normalized absolute URL, or ``href`` unchanged if it cannot be resolved
    """
    try:
        return normalize_url(urljoin(base_url, href.strip()))
    except ValueError:
        return href


def is_internal_url(url: str, base_host: str) -> bool:
    """Check whether ``url`` is on the crawl's host (host and port must match)."""
    try:
        return urlparse(url).netloc.lower() == base_host.lower()
    except ValueError:
        return False


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
