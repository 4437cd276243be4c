"""
TCG Price Aggregator - robots.txt Policy Engine

Fetches and parses a site's crawl policy into a RobotsPolicy. The policy
is advisory for display purposes but mandatory for crawler adapters:
they refuse to touch the search endpoint when allowed_for_search is False.

Failing to read robots.txt is never fatal. A conservative default
(allowed, 2 second delay) is substituted and the degradation is logged.
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from tcgprice.config import settings

logger = structlog.get_logger(__name__)


class RobotsPolicy(BaseModel):
    """Parsed crawl rules relevant to this crawler."""

    model_config = ConfigDict(frozen=True)

    allowed_for_search: bool = True
    crawl_delay_ms: int = Field(default=2000, ge=0)
    disallowed_paths: tuple[str, ...] = ()


def default_policy() -> RobotsPolicy:
    """Policy used whenever robots.txt can't be fetched or parsed."""
    return RobotsPolicy(
        allowed_for_search=True,
        crawl_delay_ms=settings.DEFAULT_CRAWL_DELAY_MS,
        disallowed_paths=(),
    )


def _pattern_matches(pattern: str, path: str) -> bool:
    """robots.txt path pattern match: prefix, '*' wildcard, '$' end anchor."""
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = ".*".join(re.escape(part) for part in body.split("*"))
    if anchored:
        regex += "$"
    return re.match(regex, path) is not None


def path_is_blocked(disallowed: str, search_path: str) -> bool:
    """
    True if a Disallow entry covers the search endpoint.

    Plain entries are prefix-related either way, so "Disallow: /search/"
    still blocks "/search" (results live under the disallowed subtree).
    Wildcard or anchored entries use robots.txt pattern matching only.
    """
    if "*" in disallowed or disallowed.endswith("$"):
        return _pattern_matches(disallowed, search_path)
    base = search_path.rstrip("/")
    entry = disallowed.rstrip("/")
    return search_path.startswith(entry) or entry.startswith(base)


def is_path_allowed(policy: RobotsPolicy, path: str) -> bool:
    """True unless a Disallow pattern matches `path` (used for item pages)."""
    return not any(_pattern_matches(p, path) for p in policy.disallowed_paths)


def _parse_delay_ms(value: str) -> int | None:
    try:
        seconds = float(value)
    except ValueError:
        return None
    if seconds < 0:
        return None
    return int(seconds * 1000)


def parse_robots_txt(
    content: str,
    agent_name: str | None = None,
    search_path: str = "/search",
) -> RobotsPolicy:
    """
    Parse robots.txt text. Pure and idempotent.

    A group applies when its User-agent is '*' or contains `agent_name`
    (case-insensitive). Groups naming this crawler take precedence over
    the wildcard group. Within the applicable groups, Disallow paths are
    collected and the largest Crawl-delay wins, floored at
    MIN_CRAWL_DELAY_MS. Without any Crawl-delay, DEFAULT_CRAWL_DELAY_MS applies.

    Args:
        content: Raw robots.txt body.
        agent_name: This crawler's product token, e.g. "TCGAssistant".
        search_path: Path the crawler needs, checked against Disallow.

    Returns:
        RobotsPolicy.
    """
    name = (agent_name or settings.CRAWLER_AGENT_NAME).lower()

    # bucket -> (disallowed paths, declared delays)
    buckets: dict[str, tuple[list[str], list[int]]] = {
        "specific": ([], []),
        "wildcard": ([], []),
    }
    current: set[str] = set()
    last_was_agent = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if not last_was_agent:
                current = set()
            agent = value.lower()
            if agent == "*":
                current.add("wildcard")
            elif name and name in agent:
                current.add("specific")
            last_was_agent = True
            continue

        last_was_agent = False
        if not current:
            continue

        for bucket in current:
            disallowed, delays = buckets[bucket]
            if directive == "disallow" and value:
                disallowed.append(value)
            elif directive == "crawl-delay":
                delay_ms = _parse_delay_ms(value)
                if delay_ms is not None:
                    delays.append(delay_ms)

    specific_paths, specific_delays = buckets["specific"]
    use = "specific" if (specific_paths or specific_delays) else "wildcard"
    disallowed, delays = buckets[use]

    if delays:
        crawl_delay_ms = max(max(delays), settings.MIN_CRAWL_DELAY_MS)
    else:
        crawl_delay_ms = settings.DEFAULT_CRAWL_DELAY_MS

    # Preserve order, drop duplicates
    unique_paths = tuple(dict.fromkeys(disallowed))
    allowed = not any(path_is_blocked(p, search_path) for p in unique_paths)

    return RobotsPolicy(
        allowed_for_search=allowed,
        crawl_delay_ms=crawl_delay_ms,
        disallowed_paths=unique_paths,
    )


def robots_url(base_url: str) -> str:
    """`https://host/anything` -> `https://host/robots.txt`."""
    parts = urlsplit(base_url)
    return f"{parts.scheme}://{parts.netloc}/robots.txt"


async def load_policy(
    client: httpx.AsyncClient,
    base_url: str,
    search_path: str = "/search",
    user_agent: str | None = None,
    agent_name: str | None = None,
    timeout: float | None = None,
) -> RobotsPolicy:
    """
    Fetch `<base_url>/robots.txt` and parse it.

    A 404 means the site publishes no rules. Any other failure returns
    default_policy(); this function never raises for network problems.
    """
    url = robots_url(base_url)
    try:
        response = await client.get(
            url,
            headers={
                "User-Agent": user_agent or settings.CRAWLER_USER_AGENT,
                "Accept": "text/plain, */*",
            },
            timeout=timeout if timeout is not None else settings.ROBOTS_TIMEOUT_SECONDS,
        )
        if response.status_code == 404:
            logger.info("robots_txt_missing", url=url)
            return parse_robots_txt("", agent_name, search_path)

        response.raise_for_status()
        policy = parse_robots_txt(response.text, agent_name, search_path)

    except (httpx.HTTPError, UnicodeDecodeError, ValueError) as e:
        logger.warning(
            "robots_policy_defaulted",
            url=url,
            error=str(e),
            error_type=type(e).__name__,
        )
        return default_policy()

    logger.info(
        "robots_policy_loaded",
        url=url,
        allowed_for_search=policy.allowed_for_search,
        crawl_delay_ms=policy.crawl_delay_ms,
        disallowed_count=len(policy.disallowed_paths),
    )
    return policy
