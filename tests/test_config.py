"""Tests for crawl configuration."""

import pytest

from sitecrawl.config import CrawlConfig


class TestCrawlConfig:
    """Test cases for CrawlConfig."""

    def test_defaults(self):
        """Test default option values."""
        config = CrawlConfig()

        assert config.max_pages == 500
        assert config.concurrency == 3
        assert config.timeout == 5.0
        assert config.enable_rendering_fallback is False
        assert config.rendering_min_links == 10
        assert config.default_crawl_delay == 0.2
        assert config.max_consecutive_errors == 5
        assert config.max_backoff_seconds == 5.0
        assert config.max_response_bytes == 10 * 1024 * 1024
        assert config.link_check_sample_size == 10
        assert config.pool_max_size == 3

    @pytest.mark.parametrize("field_name", ["max_pages", "concurrency", "pool_max_size"])
    def test_validate_rejects_non_positive(self, field_name):
        """Test validate() rejects non-positive bounds."""
        config = CrawlConfig(**{field_name: 0})
        with pytest.raises(ValueError):
            config.validate()

    def test_validate_rejects_zero_timeout(self):
        config = CrawlConfig(timeout=0)
        with pytest.raises(ValueError):
            config.validate()

    def test_from_env(self, monkeypatch):
        """Test SITECRAWL_ variables override defaults with type conversion."""
        monkeypatch.setenv("SITECRAWL_MAX_PAGES", "25")
        monkeypatch.setenv("SITECRAWL_TIMEOUT", "7.5")
        monkeypatch.setenv("SITECRAWL_ENABLE_RENDERING_FALLBACK", "true")
        monkeypatch.setenv("SITECRAWL_BOT_NAME", "MyBot")
        monkeypatch.setenv("SITECRAWL_CONCURRENCY", "not-a-number")

        config = CrawlConfig.from_env()

        assert config.max_pages == 25
        assert config.timeout == 7.5
        assert config.enable_rendering_fallback is True
        assert config.bot_name == "MyBot"
        assert config.concurrency == 3

    def test_from_file_with_crawl_section(self, tmp_path):
        """Test YAML options under a crawl: key."""
        path = tmp_path / "crawl.yaml"
        path.write_text("crawl:\n  max_pages: 40\n  check_links: false\n")

        config = CrawlConfig.from_file(str(path))

        assert config.max_pages == 40
        assert config.check_links is False

    def test_from_file_top_level(self, tmp_path):
        """Test options may sit at the top level."""
        path = tmp_path / "crawl.yaml"
        path.write_text("concurrency: 6\n")

        assert CrawlConfig.from_file(str(path)).concurrency == 6

    def test_from_missing_file_uses_defaults(self, tmp_path):
        config = CrawlConfig.from_file(str(tmp_path / "nope.yaml"))
        assert config.max_pages == 500

    def test_save_and_reload(self, tmp_path):
        """Test save_to_file round-trips through from_file."""
        path = tmp_path / "saved.yaml"
        CrawlConfig(max_pages=12, rendering_min_links=4).save_to_file(str(path))

        reloaded = CrawlConfig.from_file(str(path))

        assert reloaded.max_pages == 12
        assert reloaded.rendering_min_links == 4
        assert reloaded.to_dict() == CrawlConfig.from_file(str(path)).to_dict()

    def test_from_file_empty_crawl_section(self, tmp_path):
        """Test an empty ``crawl:`` key yields defaults."""
        path = tmp_path / "crawl.yaml"
        path.write_text("crawl:\n")

        assert CrawlConfig.from_file(str(path)).to_dict() == CrawlConfig().to_dict()

    def test_from_file_converts_types(self, tmp_path):
        """Test file values are converted to the field types."""
        path = tmp_path / "crawl.yaml"
        path.write_text(
            "crawl:\n"
            "  max_pages: '25'\n"
            "  timeout: 3\n"
            "  check_links: 'no'\n"
            "  concurrency: lots\n"
        )

        config = CrawlConfig.from_file(str(path))

        assert config.max_pages == 25
        assert config.timeout == 3.0
        assert isinstance(config.timeout, float)
        assert config.check_links is False
        assert config.concurrency == 3

    @pytest.mark.parametrize("body", ["- 1\n- 2\n", "just text\n", "crawl: [1, 2]\n"])
    def test_from_file_rejects_non_mapping(self, tmp_path, body):
        path = tmp_path / "crawl.yaml"
        path.write_text(body)

        with pytest.raises(ValueError):
            CrawlConfig.from_file(str(path))

    def test_retry_defaults_and_validation(self):
        config = CrawlConfig()
        assert config.max_retries == 2
        assert config.retry_base_delay == 1.0

        with pytest.raises(ValueError):
            CrawlConfig(max_retries=-1).validate()
