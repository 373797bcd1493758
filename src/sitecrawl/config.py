from dotenv import load_dotenv
from dataclasses import dataclass, field
from typing import Optional
from pathlib import Path
import os

import yaml

from sitecrawl.constants import (
    BROWSER_MAX_AGE_SECONDS,
    BROWSER_MAX_LIFETIME_SECONDS,
    BROWSER_POOL_ACQUIRE_TIMEOUT_SECONDS,
    BROWSER_POOL_IDLE_TIMEOUT_SECONDS,
    BROWSER_POOL_MAX_SIZE,
    DEFAULT_BOT_NAME,
    DEFAULT_CONCURRENCY,
    DEFAULT_CRAWL_DELAY_SECONDS,
    DEFAULT_MAX_PAGES_TO_CRAWL,
    DEFAULT_RENDERING_MIN_LINKS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_USER_AGENT,
    INITIAL_BACKOFF_DELAY_SECONDS,
    LINK_CHECK_CONCURRENCY,
    LINK_CHECK_SAMPLE_SIZE,
    LINK_CHECK_TIMEOUT_SECONDS,
    MAX_BACKOFF_DELAY_SECONDS,
    MAX_CONSECUTIVE_ERRORS,
    MAX_FETCH_RETRIES,
    MAX_RESPONSE_BYTES,
    RENDER_SETTLE_SECONDS,
    RENDER_TIMEOUT_SECONDS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_DELAY_SECONDS,
)

load_dotenv()  # Loads variables from .env file


class Settings:
    """
    Manages process-level settings loaded from environment variables.
    """
    USER_AGENT = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
    CHROME_PATH = os.getenv("CHROME_PATH")  # Use Playwright's bundled Chromium when unset
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def _coerce(current, value):
    """Convert a raw option value to the type of the field's current value.

    Raises:
        ValueError, TypeError: If the value cannot be converted
    """
    if value is None:
        return current
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return str(value)


@dataclass
class CrawlConfig:
    """Construction-time options for a single crawl run."""

    # Frontier / worker pool
    max_pages: int = DEFAULT_MAX_PAGES_TO_CRAWL
    concurrency: int = DEFAULT_CONCURRENCY
    timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS  # seconds, per request
    default_crawl_delay: float = DEFAULT_CRAWL_DELAY_SECONDS
    max_consecutive_errors: int = MAX_CONSECUTIVE_ERRORS
    backoff_base_seconds: float = INITIAL_BACKOFF_DELAY_SECONDS
    max_backoff_seconds: float = MAX_BACKOFF_DELAY_SECONDS
    max_response_bytes: int = MAX_RESPONSE_BYTES

    # Page fetch retries (timeouts, resets, transient network errors)
    max_retries: int = MAX_FETCH_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY_SECONDS
    retry_max_delay: float = RETRY_MAX_DELAY_SECONDS

    # Identity
    user_agent: str = field(default_factory=lambda: settings.USER_AGENT)
    bot_name: str = DEFAULT_BOT_NAME

    # Rendering fallback
    enable_rendering_fallback: bool = False
    rendering_min_links: int = DEFAULT_RENDERING_MIN_LINKS
    render_timeout: float = RENDER_TIMEOUT_SECONDS
    render_settle_seconds: float = RENDER_SETTLE_SECONDS
    pool_max_size: int = BROWSER_POOL_MAX_SIZE
    pool_acquire_timeout: float = BROWSER_POOL_ACQUIRE_TIMEOUT_SECONDS
    pool_idle_timeout: float = BROWSER_POOL_IDLE_TIMEOUT_SECONDS
    pool_max_age: float = BROWSER_MAX_AGE_SECONDS
    pool_max_lifetime: float = BROWSER_MAX_LIFETIME_SECONDS
    chrome_path: Optional[str] = field(default_factory=lambda: settings.CHROME_PATH)

    # Link/image health checks
    check_links: bool = True
    link_check_sample_size: int = LINK_CHECK_SAMPLE_SIZE
    link_check_timeout: float = LINK_CHECK_TIMEOUT_SECONDS
    link_check_concurrency: int = LINK_CHECK_CONCURRENCY

    log_level: str = field(default_factory=lambda: settings.LOG_LEVEL)

    def validate(self) -> None:
        """Reject option combinations a crawl cannot run with.

        Raises:
            ValueError: If a bound is not positive
        """
        if self.max_pages < 1:
            raise ValueError(f"max_pages must be >= 1, got {self.max_pages}")
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if self.pool_max_size < 1:
            raise ValueError(f"pool_max_size must be >= 1, got {self.pool_max_size}")
        if self.rendering_min_links < 0:
            raise ValueError(
                f"rendering_min_links must be >= 0, got {self.rendering_min_links}"
            )
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """Load configuration from environment variables.

        Environment variables should be prefixed with SITECRAWL_
        e.g., SITECRAWL_MAX_PAGES=100

        Returns:
            CrawlConfig with values from environment
        """
        config = cls()
        prefix = "SITECRAWL_"

        for field_name in config.__dataclass_fields__:
            env_value = os.getenv(f"{prefix}{field_name.upper()}")
            if env_value is None:
                continue

            try:
                setattr(config, field_name, _coerce(getattr(config, field_name), env_value))
            except (TypeError, ValueError):
                pass  # Keep default if conversion fails

        return config

    @classmethod
    def from_file(cls, path: str) -> "CrawlConfig":
        """Load configuration from a YAML (or JSON) file.

        Options may sit at the top level or under a ``crawl:`` key.

        Args:
            path: Path to configuration file

        Returns:
            CrawlConfig with values from file

        Raises:
            ValueError: If the file or its ``crawl:`` section is not a mapping
        """
        config = cls()
        file_path = Path(path)

        if not file_path.exists():
            return config

        with open(file_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

        crawl_section = data.get('crawl') or data
        if not isinstance(crawl_section, dict):
            raise ValueError(f"'crawl' section in {path} must be a mapping")

        for field_name in config.__dataclass_fields__:
            if field_name not in crawl_section:
                continue
            try:
                setattr(config, field_name, _coerce(getattr(config, field_name), crawl_section[field_name]))
            except (TypeError, ValueError):
                pass  # Keep default if conversion fails

        return config

    def to_dict(self) -> dict:
        """Convert options to dictionary.

        Returns:
            Dictionary of all option values
        """
        return {
            field_name: getattr(self, field_name)
            for field_name in self.__dataclass_fields__
        }

    def save_to_file(self, path: str) -> None:
        """Save current options to a YAML file.

        Args:
            path: Path to save configuration
        """
        with open(path, 'w') as f:
            yaml.safe_dump({'crawl': self.to_dict()}, f, sort_keys=False)
