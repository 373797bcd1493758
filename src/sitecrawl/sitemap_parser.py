"""Sitemap parser with recursive sitemap index support."""

import logging
import re
from typing import List, Optional, Set
from xml.etree import ElementTree as ET

from sitecrawl.constants import (
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    MAX_SITEMAP_DEPTH,
    SITEMAP_REQUEST_HEADERS,
)
from sitecrawl.fetcher import FetchError, HttpFetcher

logger = logging.getLogger(__name__)


class SitemapParser:
    """
    Parse sitemaps to extract URLs for crawling.

    Supports:
    - Standard sitemap.xml files
    - Sitemap index files (nested sitemaps, resolved sequentially)
    - Plain-text sitemaps (one URL per line)
    """

    SITEMAP_NS = 'http://www.sitemaps.org/schemas/sitemap/0.9'

    def __init__(
        self,
        fetcher: HttpFetcher,
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        max_depth: int = MAX_SITEMAP_DEPTH,
    ):
        """
        Initialize the sitemap parser.

        Args:
            fetcher: HTTP capability used to download sitemaps
            timeout: Per-request timeout in seconds
            max_depth: Maximum nesting of sitemap indexes to follow
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self.max_depth = max_depth
        self._seen: Set[str] = set()

    async def parse(self, sitemap_url: str) -> List[str]:
        """
        Parse a sitemap and return all page URLs, in document order.

        A failure to fetch or parse yields an empty list rather than an exception.

        Args:
            sitemap_url: URL to the sitemap.xml or sitemap index

        Returns:
            List of URLs found in the sitemap (may contain duplicates across nested sitemaps)
        """
        return await self._fetch_and_parse(sitemap_url, depth=0)

    async def _fetch_and_parse(self, sitemap_url: str, depth: int) -> List[str]:
        """Recursively fetch and parse sitemaps."""
        if depth > self.max_depth:  # Prevent runaway recursion
            logger.warning(f"Sitemap nesting too deep, skipping: {sitemap_url}")
            return []

        if sitemap_url in self._seen:
            return []
        self._seen.add(sitemap_url)

        try:
            response = await self.fetcher.get(
                sitemap_url,
                headers=SITEMAP_REQUEST_HEADERS,
                timeout=self.timeout,
                status_validator=lambda status: 200 <= status < 300,
            )
        except FetchError as e:
            logger.info(f"Could not fetch sitemap {sitemap_url}: {e}")
            return []

        content = response.text.lstrip('﻿')
        if not content.strip():
            logger.debug(f"Empty sitemap at {sitemap_url}")
            return []

        if not self._looks_like_xml(content):
            return self._parse_text_sitemap(content)

        try:
            root = ET.fromstring(self._clean_xml_content(content))
        except ET.ParseError as e:
            logger.info(f"Could not parse sitemap {sitemap_url}: {e}")
            return []

        root_tag = self._local_name(root.tag)

        if root_tag == 'sitemapindex':
            return await self._parse_sitemap_index(root, sitemap_url, depth)
        if root_tag == 'urlset':
            urls = self._parse_urlset(root)
            logger.info(f"Extracted {len(urls)} URLs from sitemap {sitemap_url}")
            return urls

        logger.warning(f"Unknown sitemap root element: {root_tag}")
        return []

    async def _parse_sitemap_index(
        self, root: ET.Element, sitemap_url: str, depth: int
    ) -> List[str]:
        """Parse each nested sitemap in turn; one failure does not stop the rest."""
        nested = self._collect_locs(root, 'sitemap')
        logger.info(f"Sitemap index {sitemap_url} lists {len(nested)} sitemaps")

        urls: List[str] = []
        for child_url in nested:
            try:
                urls.extend(await self._fetch_and_parse(child_url, depth + 1))
            except Exception as e:
                logger.warning(f"Failed to parse nested sitemap {child_url}: {e}")
        return urls

    def _parse_urlset(self, root: ET.Element) -> List[str]:
        """Extract page URLs from a urlset element."""
        return self._collect_locs(root, 'url')

    def _collect_locs(self, root: ET.Element, parent_tag: str) -> List[str]:
        """Collect ``<parent_tag><loc>`` values, with or without namespace."""
        locs = []
        for elem in root.iter():
            if self._local_name(elem.tag) != parent_tag:
                continue

            loc = elem.find(f'{{{self.SITEMAP_NS}}}loc')
            if loc is None:
                loc = elem.find('loc')

            if loc is not None and loc.text and loc.text.strip():
                locs.append(loc.text.strip())
        return locs

    @staticmethod
    def _parse_text_sitemap(content: str) -> List[str]:
        """Parse a plain-text sitemap."""
        return [
            line.strip()
            for line in content.splitlines()
            if line.strip().startswith(('http://', 'https://'))
        ]

    @staticmethod
    def _looks_like_xml(content: str) -> bool:
        return content.lstrip().startswith('<')

    @staticmethod
    def _local_name(tag: str) -> str:
        return tag.split('}')[-1] if '}' in tag else tag

    def _clean_xml_content(self, content: str) -> str:
        """Clean XML content by removing any HTML wrapper."""
        content = re.sub(r'<!DOCTYPE[^>]*>', '', content)

        if '<html' in content.lower():
            match = re.search(r'(<\?xml.*?</(?:urlset|sitemapindex)>)', content, re.DOTALL)
            if match:
                return match.group(1)

            match = re.search(r'(<(?:urlset|sitemapindex).*?</(?:urlset|sitemapindex)>)', content, re.DOTALL)
            if match:
                return match.group(1)

        return content.strip()


async def parse_sitemap(
    sitemap_url: str,
    fetcher: Optional[HttpFetcher] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
) -> List[str]:
    """
    Convenience function to parse a sitemap.

    Args:
        sitemap_url: URL to the sitemap
        fetcher: Optional fetcher; a temporary one is created when omitted
        timeout: Per-request timeout in seconds

    Returns:
        List of URLs from the sitemap
    """
    if fetcher is not None:
        return await SitemapParser(fetcher, timeout=timeout).parse(sitemap_url)

    async with HttpFetcher(timeout=timeout) as own_fetcher:
        return await SitemapParser(own_fetcher, timeout=timeout).parse(sitemap_url)
