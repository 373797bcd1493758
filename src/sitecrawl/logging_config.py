"""Logging setup for crawl runs.

Log records go to stderr (and optionally a file) because the CLI writes the
JSON results to stdout.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that chatter at INFO/DEBUG during a crawl
NOISY_LOGGERS = ('httpx', 'httpcore', 'hpack', 'urllib3', 'asyncio', 'playwright')


def resolve_level(level: Union[str, int, None]) -> int:
    """Map a level name or number to a logging level; unknown names give INFO."""
    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    value = getattr(logging, str(level).strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: Union[str, int, None] = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> int:
    """Configure the root logger for a crawl run.

    Args:
        level: Level name (DEBUG, INFO, ...) or number for sitecrawl output
        log_file: Optional log file path; parent directories are created
        format_string: Optional custom format string
        quiet: Logger names held at WARNING whatever ``level`` is

    Returns:
        The numeric level applied to the root logger
    """
    numeric_level = resolve_level(level)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(
        level=numeric_level,
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    return numeric_level
