"""Tests for robots.txt rules, sitemap parsing and the resolver."""

import httpx
import pytest

from conftest import FakeSite
from sitecrawl.resolver import RobotsSitemapResolver
from sitecrawl.robots import RobotsRules
from sitecrawl.sitemap_parser import SitemapParser, parse_sitemap

ROBOTS = """\
User-agent: SitecrawlBot
Disallow: /private/
Crawl-delay: 2

User-agent: *
Disallow: /admin/
Crawl-delay: 1

Sitemap: https://example.com/declared.xml
"""

URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/a</loc></url>
  <url><loc> https://example.com/b </loc></url>
</urlset>
"""

URLSET_NO_NS = """<urlset>
  <url><loc>https://example.com/c</loc></url>
</urlset>
"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-1.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-broken.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-2.xml</loc></sitemap>
</sitemapindex>
"""


class TestRobotsRules:
    """Test cases for RobotsRules."""

    def test_named_group_applies_to_bot(self):
        """Test the bot's own group is used when declared."""
        rules = RobotsRules.parse("https://example.com/robots.txt", ROBOTS)

        assert rules.is_allowed("https://example.com/private/x", "SitecrawlBot") is False
        assert rules.is_allowed("https://example.com/admin/", "SitecrawlBot") is True
        assert rules.crawl_delay("SitecrawlBot") == 2.0

    def test_wildcard_fallback(self):
        """Test other agents fall back to the wildcard group."""
        rules = RobotsRules.parse("https://example.com/robots.txt", ROBOTS)

        assert rules.is_allowed("https://example.com/admin/x", "OtherBot") is False
        assert rules.is_allowed("https://example.com/private/x", "OtherBot") is True
        assert rules.crawl_delay("OtherBot") == 1.0

    def test_no_crawl_delay(self):
        """Test crawl_delay is None when nothing is declared."""
        rules = RobotsRules.parse(
            "https://example.com/robots.txt", "User-agent: *\nDisallow: /x/\n"
        )
        assert rules.crawl_delay("SitecrawlBot") is None

    def test_fractional_crawl_delay(self):
        """Test fractional delays are kept for the bot and wildcard groups."""
        rules = RobotsRules.parse(
            "https://example.com/robots.txt",
            "User-agent: SitecrawlBot\nCrawl-delay: 0.5\n\nUser-agent: *\nCrawl-delay: 1.5\n",
        )

        assert rules.crawl_delay("SitecrawlBot") == 0.5
        assert rules.crawl_delay("SitecrawlBot/1.0") == 0.5
        assert rules.crawl_delay("OtherBot") == 1.5

    def test_zero_crawl_delay_means_default(self):
        """Test Crawl-delay: 0 is treated as undeclared."""
        rules = RobotsRules.parse(
            "https://example.com/robots.txt", "User-agent: *\nCrawl-delay: 0\n"
        )
        assert rules.crawl_delay("SitecrawlBot") is None

    def test_invalid_crawl_delay_ignored(self):
        rules = RobotsRules.parse(
            "https://example.com/robots.txt",
            "User-agent: *\nCrawl-delay: soon\nCrawl-delay: -3\n",
        )
        assert rules.crawl_delay("SitecrawlBot") is None

    def test_shared_group_delay(self):
        """Test consecutive User-agent lines share one Crawl-delay."""
        rules = RobotsRules.parse(
            "https://example.com/robots.txt",
            "User-agent: AlphaBot\nUser-agent: SitecrawlBot\nDisallow: /x/\nCrawl-delay: 2.5\n",
        )
        assert rules.crawl_delay("SitecrawlBot") == 2.5
        assert rules.crawl_delay("OtherBot") is None

    def test_sitemaps(self):
        """Test declared sitemaps are exposed in order."""
        rules = RobotsRules.parse("https://example.com/robots.txt", ROBOTS)
        assert rules.sitemaps == ["https://example.com/declared.xml"]

    def test_empty_robots_allows_everything(self):
        """Test an empty robots.txt allows all URLs."""
        rules = RobotsRules.parse("https://example.com/robots.txt", "")
        assert rules.is_allowed("https://example.com/anything", "SitecrawlBot")
        assert rules.sitemaps == []


class TestSitemapParser:
    """Test cases for SitemapParser."""

    @pytest.mark.asyncio
    async def test_urlset(self, make_fetcher):
        """Test a namespaced urlset is flattened in document order."""
        site = FakeSite(files={"/sitemap.xml": (200, URLSET)})
        fetcher = make_fetcher(site)

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap.xml")

        assert urls == ["https://example.com/a", "https://example.com/b"]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_urlset_without_namespace(self, make_fetcher):
        """Test a urlset without namespace is accepted."""
        site = FakeSite(files={"/sitemap.xml": (200, URLSET_NO_NS)})
        fetcher = make_fetcher(site)

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap.xml")

        assert urls == ["https://example.com/c"]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_index_recurses_and_tolerates_broken_child(self, make_fetcher):
        """Test a sitemap index resolves children and skips the broken one."""
        site = FakeSite(files={
            "/sitemap_index.xml": (200, INDEX),
            "/sitemap-1.xml": (200, URLSET),
            "/sitemap-broken.xml": (200, "<urlset><url><loc>oops"),
            "/sitemap-2.xml": (200, URLSET_NO_NS),
        })
        fetcher = make_fetcher(site)

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap_index.xml")

        assert urls == [
            "https://example.com/a",
            "https://example.com/b",
            "https://example.com/c",
        ]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_self_referencing_index_terminates(self, make_fetcher):
        """Test an index that lists itself does not loop."""
        index = """<sitemapindex>
          <sitemap><loc>https://example.com/sitemap_index.xml</loc></sitemap>
        </sitemapindex>"""
        site = FakeSite(files={"/sitemap_index.xml": (200, index)})
        fetcher = make_fetcher(site)

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap_index.xml")

        assert urls == []
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_text_sitemap(self, make_fetcher):
        """Test a plain-text sitemap keeps only URL lines."""
        body = "https://example.com/a\n\n# comment\nhttps://example.com/b\n"
        site = FakeSite(files={"/sitemap.txt": (200, body)})
        fetcher = make_fetcher(site)

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap.txt")

        assert urls == ["https://example.com/a", "https://example.com/b"]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_missing_sitemap_is_empty(self, make_fetcher):
        """Test a 404 yields an empty list rather than an exception."""
        fetcher = make_fetcher(FakeSite())

        urls = await SitemapParser(fetcher).parse("https://example.com/sitemap.xml")

        assert urls == []
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_parse_sitemap_convenience(self, make_fetcher):
        """Test the module-level helper with an explicit fetcher."""
        fetcher = make_fetcher(FakeSite(files={"/sitemap.xml": (200, URLSET)}))

        urls = await parse_sitemap("https://example.com/sitemap.xml", fetcher=fetcher)

        assert len(urls) == 2
        await fetcher.aclose()


class TestRobotsSitemapResolver:
    """Test cases for RobotsSitemapResolver."""

    @pytest.mark.asyncio
    async def test_resolve_declared_then_conventional(self, make_fetcher):
        """Test robots-declared sitemaps come first and URLs are deduplicated."""
        site = FakeSite(
            robots=ROBOTS,
            files={
                "/declared.xml": (200, URLSET_NO_NS),
                "/sitemap.xml": (200, URLSET),
                "/sitemap.txt": (200, "https://example.com/a\nhttps://example.com/d\n"),
            },
        )
        fetcher = make_fetcher(site)

        robots, urls = await RobotsSitemapResolver(fetcher).resolve("https://example.com/")

        assert robots is not None
        assert urls == [
            "https://example.com/c",
            "https://example.com/a",
            "https://example.com/b",
            "https://example.com/d",
        ]
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_missing_robots_is_permissive(self, make_fetcher):
        """Test a missing robots.txt yields None and no sitemap URLs."""
        fetcher = make_fetcher(FakeSite())

        robots, urls = await RobotsSitemapResolver(fetcher).resolve("https://example.com/page")

        assert robots is None
        assert urls == []
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_unreachable_robots_is_permissive(self, make_fetcher):
        """Test a network failure on robots.txt is absorbed."""
        site = FakeSite(failures={"/robots.txt": httpx.ConnectError("connection refused")})
        fetcher = make_fetcher(site)

        robots = await RobotsSitemapResolver(fetcher).load_robots("https://example.com/")

        assert robots is None
        await fetcher.aclose()

    @pytest.mark.asyncio
    async def test_each_sitemap_parsed_once(self, make_fetcher):
        """Test a sitemap declared in robots.txt and also conventional is fetched once."""
        robots_txt = "User-agent: *\nAllow: /\nSitemap: https://example.com/sitemap.xml\n"
        site = FakeSite(robots=robots_txt, files={"/sitemap.xml": (200, URLSET)})
        fetcher = make_fetcher(site)

        await RobotsSitemapResolver(fetcher).resolve("https://example.com/")

        sitemap_gets = [url for method, url, _ in site.requests if url.endswith("/sitemap.xml")]
        assert len(sitemap_gets) == 1
        await fetcher.aclose()
