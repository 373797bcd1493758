# src/sitecrawl/constants.py
"""Centralized constants for the crawl engine.

This module contains magic numbers and defaults that are used across
multiple modules. For user-configurable options, see config.py and
CrawlConfig.
"""

# =============================================================================
# Frontier / Worker Pool Constants
# =============================================================================

# Default maximum number of pages admitted to a single crawl run
DEFAULT_MAX_PAGES_TO_CRAWL = 500

# Default number of concurrent fetch workers
DEFAULT_CONCURRENCY = 3

# Default per-request timeout in seconds
DEFAULT_REQUEST_TIMEOUT_SECONDS = 5.0

# Crawl-delay applied when robots.txt is absent or declares none
DEFAULT_CRAWL_DELAY_SECONDS = 0.2

# Consecutive page failures before the shared backoff pause kicks in
MAX_CONSECUTIVE_ERRORS = 5

# Base pause for the first backoff step (seconds)
INITIAL_BACKOFF_DELAY_SECONDS = 1.0

# Base for exponential backoff calculation
EXPONENTIAL_BACKOFF_BASE = 2

# Cap for the backoff pause (seconds)
MAX_BACKOFF_DELAY_SECONDS = 5.0

# Maximum response body accepted for a page (bytes)
MAX_RESPONSE_BYTES = 10 * 1024 * 1024

# Extra attempts for a page fetch that failed with a retryable error
MAX_FETCH_RETRIES = 2

# First retry pause (seconds); doubles per attempt
RETRY_BASE_DELAY_SECONDS = 1.0

# Cap for the retry pause (seconds)
RETRY_MAX_DELAY_SECONDS = 10.0

# Error categories worth another attempt; DNS, SSL, refused and HTTP errors are not
RETRYABLE_ERROR_TYPES = frozenset({"TIMEOUT", "CONNECTION_RESET", "NETWORK_ERROR"})

# Statuses at or above this are rejected by the page fetch status validator
PAGE_STATUS_REJECT_THRESHOLD = 500

# How often an idle worker re-checks the frontier (seconds)
WORKER_IDLE_POLL_SECONDS = 0.5


# =============================================================================
# Robots & Sitemap Constants
# =============================================================================

# Product token matched against robots.txt user-agent groups
DEFAULT_BOT_NAME = "SitecrawlBot"

# Conventional sitemap locations tried in addition to robots.txt declarations
COMMON_SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap.txt",
    "/sitemaps.xml",
    "/sitemap-index.xml",
    "/wp-sitemap.xml",  # WordPress
    "/page-sitemap.xml",
)

# Nested sitemap index levels followed before giving up
MAX_SITEMAP_DEPTH = 3


# =============================================================================
# Rendering Fallback Constants
# =============================================================================

# Static link count below which a page is re-rendered in a browser
DEFAULT_RENDERING_MIN_LINKS = 10

# Browser pool bounds
BROWSER_POOL_MAX_SIZE = 3
BROWSER_POOL_MIN_SIZE = 0

# Lease wait before failing (seconds)
BROWSER_POOL_ACQUIRE_TIMEOUT_SECONDS = 30.0

# Idle instances older than this are evicted (seconds)
BROWSER_POOL_IDLE_TIMEOUT_SECONDS = 30.0

# Interval between eviction sweeps (seconds)
BROWSER_POOL_EVICTION_INTERVAL_SECONDS = 10.0

# Instances older than this fail validation at lease time (seconds)
BROWSER_MAX_AGE_SECONDS = 90.0

# Hard self-destruct timer attached to every instance (seconds)
BROWSER_MAX_LIFETIME_SECONDS = 120.0

# Time allowed for closing a pool with leased instances outstanding (seconds)
BROWSER_POOL_DRAIN_TIMEOUT_SECONDS = 5.0

# Navigation timeout inside the browser (seconds)
RENDER_TIMEOUT_SECONDS = 30.0

# Pause after navigation to let client-side rendering settle (seconds)
RENDER_SETTLE_SECONDS = 2.0

# Launch arguments for headless Chromium in container contexts
BROWSER_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--js-flags=--max-old-space-size=768",
    "--disable-features=AudioServiceOutOfProcess,SitePerProcess",
    "--no-default-browser-check",
    "--disable-blink-features=AutomationControlled",
)

# User agent and viewport used for rendered pages
RENDER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)
RENDER_VIEWPORT_WIDTH = 1366
RENDER_VIEWPORT_HEIGHT = 768


# =============================================================================
# Health Check Constants
# =============================================================================

# Links and images checked per page
LINK_CHECK_SAMPLE_SIZE = 10

# Timeout for a single HEAD check (seconds)
LINK_CHECK_TIMEOUT_SECONDS = 3.0

# HEAD checks in flight at once per page
LINK_CHECK_CONCURRENCY = 5

# Statuses below this are healthy
LINK_HEALTHY_STATUS_THRESHOLD = 400

# Marker recorded when a HEAD check never got a response
NETWORK_ERROR_MARKER = "Network error"


# =============================================================================
# HTTP Constants
# =============================================================================

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; SitecrawlBot/1.0; +https://github.com/sitecrawl/sitecrawl)"
)

# Browser-like header set sent with every page fetch
DEFAULT_REQUEST_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}

SITEMAP_REQUEST_HEADERS = {
    "Accept": "application/xml, text/xml, text/plain, */*",
}

ROBOTS_REQUEST_HEADERS = {
    "Accept": "text/plain,text/html,*/*",
    "Accept-Language": "en-US,en;q=0.9",
}

# Placeholder recorded for empty titles and meta descriptions
MISSING_VALUE = "Missing"
