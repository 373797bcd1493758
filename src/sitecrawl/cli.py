"""Command-line interface for the site crawler."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from sitecrawl.config import CrawlConfig
from sitecrawl.logging_config import setup_logging
from sitecrawl.site_crawler import AsyncSiteCrawler, CrawlError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="sitecrawl",
        description="Crawl a website and report per-page metadata, links and broken resources",
    )
    parser.add_argument("url", help="URL to start crawling from")
    parser.add_argument(
        "--max-pages", type=int, default=None,
        help="Maximum number of pages to crawl (default: 500)"
    )
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Number of concurrent fetch workers (default: 3)"
    )
    parser.add_argument(
        "--timeout", type=float, default=None,
        help="Per-request timeout in seconds (default: 5)"
    )
    parser.add_argument(
        "--render-fallback", action="store_true",
        help="Re-render link-poor pages in headless Chromium"
    )
    parser.add_argument(
        "--render-min-links", type=int, default=None,
        help="Static link count below which a page is rendered (default: 10)"
    )
    parser.add_argument(
        "--no-link-check", action="store_true",
        help="Skip broken link/image checks"
    )
    parser.add_argument(
        "--max-retries", type=int, default=None,
        help="Retries for timeouts and transient network errors (default: 2)"
    )
    parser.add_argument(
        "--config", type=str, metavar="PATH",
        help="YAML configuration file (options under a 'crawl:' key)"
    )
    parser.add_argument(
        "--output", "-o", type=str, metavar="PATH",
        help="Write JSON results to file (default: stdout)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )
    return parser


def build_config(args: argparse.Namespace) -> CrawlConfig:
    """Merge config file / environment with command-line flags.

    Args:
        args: Parsed arguments

    Returns:
        Validated CrawlConfig

    Raises:
        ValueError: If the resulting options are invalid
    """
    config = CrawlConfig.from_file(args.config) if args.config else CrawlConfig.from_env()

    if args.max_pages is not None:
        config.max_pages = args.max_pages
    if args.concurrency is not None:
        config.concurrency = args.concurrency
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.render_fallback:
        config.enable_rendering_fallback = True
    if args.render_min_links is not None:
        config.rendering_min_links = args.render_min_links
    if args.no_link_check:
        config.check_links = False
    if args.max_retries is not None:
        config.max_retries = args.max_retries
    if args.log_level:
        config.log_level = args.log_level

    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code: 0 on success, 1 if the crawl failed, 2 on invalid arguments
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(level=config.log_level, log_file=args.log_file)

    try:
        crawler = AsyncSiteCrawler(args.url, config=config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        results = asyncio.run(crawler.crawl())
    except CrawlError as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Crawl interrupted")
        return 1

    summary = crawler.get_summary()
    logger.info(
        f"Pages: {summary['pages_crawled']}, errors: {summary['errors']}, "
        f"rendered: {summary['rendered_pages']}, broken links: {summary['broken_links']}, "
        f"broken images: {summary['broken_images']}, retries: {summary['retries']}"
    )
    if summary["errors_by_type"]:
        logger.info(f"Errors by type: {summary['errors_by_type']}")

    payload = json.dumps([result.to_dict() for result in results], indent=2, ensure_ascii=False)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(payload)
        logger.info(f"✓ Results written to {args.output}")
    else:
        print(payload)

    return 0


if __name__ == "__main__":
    sys.exit(main())
