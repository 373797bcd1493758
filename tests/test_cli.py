"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, patch

from sitecrawl import cli
from sitecrawl.models import PageResult
from sitecrawl.site_crawler import CrawlError


class TestCli:
    """Test cases for sitecrawl.cli."""

    def test_build_config_applies_flags(self):
        args = cli.build_parser().parse_args([
            "https://example.com/", "--max-pages", "20", "--concurrency", "2",
            "--render-fallback", "--render-min-links", "4", "--no-link-check",
            "--max-retries", "0",
        ])

        config = cli.build_config(args)

        assert config.max_pages == 20
        assert config.concurrency == 2
        assert config.enable_rendering_fallback is True
        assert config.rendering_min_links == 4
        assert config.check_links is False
        assert config.max_retries == 0

    def test_invalid_option_exit_code(self, capsys):
        assert cli.main(["https://example.com/", "--max-pages", "0"]) == 2
        assert "max_pages" in capsys.readouterr().err

    def test_invalid_url_exit_code(self):
        assert cli.main(["not-a-url"]) == 2

    def test_crawl_failure_exit_code(self):
        with patch("sitecrawl.cli.AsyncSiteCrawler.crawl", new=AsyncMock(side_effect=CrawlError("boom"))):
            assert cli.main(["https://example.com/"]) == 1

    def test_results_written_as_json(self, tmp_path):
        output = tmp_path / "results.json"
        results = [PageResult(url="https://example.com/", status_code=200, title="Home")]

        with patch("sitecrawl.cli.AsyncSiteCrawler.crawl", new=AsyncMock(return_value=results)):
            code = cli.main(["https://example.com/", "--output", str(output)])

        assert code == 0
        data = json.loads(output.read_text())
        assert data[0]["url"] == "https://example.com/"
        assert data[0]["title"] == "Home"
