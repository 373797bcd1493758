"""robots.txt rules for a single crawl run."""

import logging
import math
from typing import Dict, Iterable, List, Optional
from urllib.robotparser import RobotFileParser

logger = logging.getLogger(__name__)

# Directives that close a run of User-agent lines
_RULE_KEYS = ("allow", "disallow", "crawl-delay", "request-rate")


def _agent_token(user_agent: str) -> str:
    return user_agent.split("/")[0].strip().lower()


def parse_crawl_delays(lines: Iterable[str]) -> Dict[str, float]:
    """Collect ``Crawl-delay`` values per user-agent token.

    ``RobotFileParser`` only keeps whole-second delays, so values are read
    here as floats. Consecutive ``User-agent`` lines share one group; the
    first delay declared for an agent wins. Negative and non-numeric values
    are ignored.

    Returns:
        Mapping of lowercased agent token ("*" for the wildcard) to seconds
    """
    delays: Dict[str, float] = {}
    agents: List[str] = []
    in_rules = False

    for raw in lines:
        line = raw.split("#", 1)[0].strip()
        if ":" not in line:
            continue
        key, value = (part.strip() for part in line.split(":", 1))
        key = key.lower()

        if key == "user-agent":
            if in_rules:
                agents = []
                in_rules = False
            agents.append(_agent_token(value))
            continue

        if key not in _RULE_KEYS:
            continue
        in_rules = True

        if key == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                logger.debug(f"Ignoring non-numeric Crawl-delay: {value!r}")
                continue
            if not math.isfinite(delay) or delay < 0:
                continue
            for agent in agents:
                delays.setdefault(agent, delay)

    return delays


class RobotsRules:
    """Parsed allow/disallow/crawl-delay directives keyed by user agent.

    Lookups for a named bot use that bot's group when robots.txt declares one
    and fall back to the wildcard (``*``) group otherwise.
    """

    def __init__(self, parser: RobotFileParser, content: str = "", url: str = ""):
        self._parser = parser
        self._delays = parse_crawl_delays(content.splitlines())
        self.content = content
        self.url = url

    @classmethod
    def parse(cls, robots_url: str, content: str) -> "RobotsRules":
        """Build rules from robots.txt content.

        Args:
            robots_url: URL the content was fetched from
            content: Raw robots.txt body

        Returns:
            RobotsRules instance
        """
        rp = RobotFileParser()
        rp.set_url(robots_url)
        rp.parse(content.splitlines())
        return cls(rp, content=content, url=robots_url)

    def is_allowed(self, url: str, user_agent: str = "*") -> bool:
        """Check if ``url`` may be fetched by ``user_agent``."""
        return self._parser.can_fetch(user_agent, url)

    def crawl_delay(self, user_agent: str = "*") -> Optional[float]:
        """Return the crawl-delay in seconds for ``user_agent``, if declared.

        Fractional values are kept. A declared delay of 0 counts as no delay,
        so callers apply their default.
        """
        token = _agent_token(user_agent)
        delay = None
        if token != "*":
            for agent, value in self._delays.items():
                if agent != "*" and agent in token:
                    delay = value
                    break
        if delay is None:
            delay = self._delays.get("*")
        return delay or None

    @property
    def sitemaps(self) -> List[str]:
        """Sitemap URLs declared with ``Sitemap:`` lines, in file order."""
        return list(self._parser.site_maps() or [])
