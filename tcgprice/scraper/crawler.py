"""
TCG Price Aggregator - Polite Crawler Adapter

Base class for marketplaces that only expose HTML. Each request goes
through the same sequence:

  1. Read robots.txt once per adapter (lazy, lock-guarded).
  2. Refuse the search endpoint if robots disallows it (PolicyDenied).
  3. Wait on the adapter's own RateGate for the crawl delay.
  4. GET the search page and extract listings.
  5. Enrich the first few listings from their item pages, within a share
     of the attempt timeout; the rest stay unenriched.

Raw search results are cached per query. fetch() raises like any other
adapter. Once the orchestrator has exhausted its retries, fallback_for()
can substitute a flagged, deterministic placeholder observation
(source="fallback") so the caller still gets a range; aggregated results
carry that flag through.
"""

from __future__ import annotations

import asyncio
import hashlib
import random
from decimal import Decimal
from typing import Any, ClassVar
from urllib.parse import urlsplit

import httpx

from tcgprice.config import ObservationSource, SourceKind, settings
from tcgprice.errors import NotFound, PolicyDenied, UpstreamError
from tcgprice.pipeline.base import PriceAdapter
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.cache import TTLCache
from tcgprice.pricing.stats import compute_price_stats
from tcgprice.scraper import CrawlerSearchResult, ItemDetail
from tcgprice.scraper.extractor import PatternExtractor
from tcgprice.scraper.rate_limit import RateGate
from tcgprice.scraper.robots import RobotsPolicy, is_path_allowed, load_policy

# Appended to the search string so marketplace search narrows to cards
GAME_KEYWORDS: dict[str, str] = {
    "pokemon": "ポケモン カード",
    "yugioh": "遊戯王 カード",
    "one-piece": "ワンピース カード",
    "magic": "MTG カード",
}


def build_search_query(query: CardQuery) -> str:
    """
    Join the identity fields into a marketplace search string.

    Examples:
        >>> build_search_query(CardQuery(name="ピカチュウ", series="基本セット",
        ...                              card_number="025/025", game_type="pokemon"))
        'ピカチュウ 基本セット 025/025 ポケモン カード'
    """
    parts = [query.name, query.series, query.card_number]
    keyword = GAME_KEYWORDS.get((query.game_type or "").lower())
    if keyword:
        parts.append(keyword)
    return " ".join(p.strip() for p in parts if p and p.strip())


class BaseCrawlerAdapter(PriceAdapter):
    """
    Robots-aware, rate-gated crawler for one marketplace.

    Subclasses set platform, base_url, currency and extractor_class,
    and optionally search_path / search_param.
    """

    kind = SourceKind.CRAWLER
    currency = "JPY"

    base_url: ClassVar[str] = ""
    search_path: ClassVar[str] = "/search"
    search_param: ClassVar[str] = "keyword"
    search_params: ClassVar[dict[str, str]] = {}    # Extra fixed query params
    extractor_class: ClassVar[type[PatternExtractor]] = PatternExtractor

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        gate: RateGate | None = None,
        fallback_enabled: bool | None = None,
    ) -> None:
        super().__init__(client)
        self.site_url = (base_url or self.base_url).rstrip("/")
        self.extractor = self.extractor_class(self.site_url)
        self.gate = gate or RateGate(self.platform, settings.DEFAULT_CRAWL_DELAY_MS)
        self.fallback_enabled = (
            settings.CRAWLER_FALLBACK_ENABLED if fallback_enabled is None else fallback_enabled
        )
        self._policy: RobotsPolicy | None = None
        self._policy_lock = asyncio.Lock()
        self._denied_logged = False
        self._search_cache: TTLCache[list[CrawlerSearchResult]] = TTLCache(
            settings.CRAWLER_CACHE_TTL_SECONDS
        )

    def is_active(self) -> bool:
        return True

    @property
    def policy(self) -> RobotsPolicy | None:
        return self._policy

    # -----------------------------------------------------------------------
    # Robots
    # -----------------------------------------------------------------------

    async def ensure_policy(self) -> RobotsPolicy:
        """Load robots.txt on first use; later calls reuse the same policy."""
        async with self._policy_lock:
            if self._policy is None:
                self._policy = await load_policy(
                    self.http(),
                    self.site_url,
                    search_path=self.search_path,
                    user_agent=settings.CRAWLER_USER_AGENT,
                    agent_name=settings.CRAWLER_AGENT_NAME,
                )
                self.gate.set_interval(self._policy.crawl_delay_ms)
            return self._policy

    # -----------------------------------------------------------------------
    # HTTP
    # -----------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        return {
            "User-Agent": settings.CRAWLER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": settings.CRAWLER_ACCEPT_LANGUAGE,
        }

    async def _get_page(
        self,
        url: str,
        timeout: float,
        params: dict[str, Any] | None = None,
    ) -> str:
        await self.gate.wait()
        try:
            response = await self.http().get(
                url, params=params, headers=self._headers(), timeout=timeout
            )
            response.raise_for_status()
            return response.text
        except httpx.HTTPStatusError as e:
            self.logger.warning(
                "crawler_http_error",
                platform=self.platform,
                status_code=e.response.status_code,
                url=url,
            )
            raise UpstreamError(
                self.platform,
                f"HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            self.logger.warning(
                "crawler_request_error",
                platform=self.platform,
                error=str(e),
                error_type=type(e).__name__,
                url=url,
            )
            raise UpstreamError(self.platform, f"request failed: {type(e).__name__}") from e

    # -----------------------------------------------------------------------
    # Search
    # -----------------------------------------------------------------------

    def search_cache_key(self, search_term: str, max_results: int) -> str:
        return f"{self.platform}|{search_term.lower()}|{max_results}"

    async def search_card(
        self,
        query: CardQuery,
        max_results: int | None = None,
        use_cache: bool = True,
        timeout: float | None = None,
        deadline: float | None = None,
    ) -> list[CrawlerSearchResult]:
        """
        Search the marketplace and return enriched listings.

        `deadline` is a reading of the gate's clock after which no more
        detail pages are requested.

        Raises:
            PolicyDenied: robots.txt forbids the search path. No request is
                made to the search endpoint.
            UpstreamError: The search page could not be fetched.
        """
        limit = max_results or settings.CRAWLER_MAX_RESULTS
        request_timeout = timeout or settings.CRAWLER_REQUEST_TIMEOUT_SECONDS

        policy = await self.ensure_policy()
        if not policy.allowed_for_search:
            if not self._denied_logged:
                self.logger.warning(
                    "crawler_search_disallowed",
                    platform=self.platform,
                    search_path=self.search_path,
                )
                self._denied_logged = True
            raise PolicyDenied(self.platform, self.search_path)

        term = build_search_query(query)
        key = self.search_cache_key(term, limit)
        if use_cache:
            cached, found = self._search_cache.get(key)
            if found:
                self.logger.debug("crawler_cache_hit", platform=self.platform, cache_key=key)
                return cached

        html = await self._get_page(
            f"{self.site_url}{self.search_path}",
            request_timeout,
            params={self.search_param: term, **self.search_params},
        )
        listings = self.extractor.extract_listings(html, limit)
        listings = await self._enrich(listings, request_timeout, deadline)

        self.logger.info(
            "crawler_search_completed",
            platform=self.platform,
            search_term=term,
            listings=len(listings),
        )
        if listings:
            self._search_cache.set(key, listings)
        return listings

    async def get_item_details(self, item_url: str, timeout: float | None = None) -> ItemDetail | None:
        """Fetch and extract one item page. None when disallowed or failed."""
        policy = await self.ensure_policy()
        path = urlsplit(item_url).path or "/"
        if not is_path_allowed(policy, path):
            self.logger.debug("crawler_detail_disallowed", platform=self.platform, path=path)
            return None

        try:
            html = await self._get_page(
                item_url, timeout or settings.CRAWLER_REQUEST_TIMEOUT_SECONDS
            )
        except UpstreamError:
            return None
        return self.extractor.extract_detail(html)

    async def _enrich(
        self,
        listings: list[CrawlerSearchResult],
        timeout: float,
        deadline: float | None = None,
    ) -> list[CrawlerSearchResult]:
        enriched: list[CrawlerSearchResult] = []
        budget_spent = False
        for index, listing in enumerate(listings):
            if budget_spent or index >= settings.CRAWLER_DETAIL_LIMIT or not listing.item_url:
                enriched.append(listing)
                continue

            request_timeout = timeout
            if deadline is not None:
                # Gate sleep plus the request must finish before the deadline
                remaining = deadline - self.gate.now() - self.gate.pending_wait()
                if remaining <= 0:
                    self.logger.info(
                        "crawler_enrich_budget_spent",
                        platform=self.platform,
                        enriched=index,
                        skipped=min(len(listings), settings.CRAWLER_DETAIL_LIMIT) - index,
                    )
                    budget_spent = True
                    enriched.append(listing)
                    continue
                request_timeout = min(timeout, remaining)

            detail = await self.get_item_details(listing.item_url, request_timeout)
            if detail is None:
                enriched.append(listing)
                continue

            enriched.append(listing.model_copy(update={
                "condition": detail.condition or None,
                "seller": detail.seller or None,
                "description": detail.description or None,
            }))
        return enriched

    # -----------------------------------------------------------------------
    # PriceAdapter
    # -----------------------------------------------------------------------

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        deadline = self.gate.now() + timeout * settings.CRAWLER_ENRICH_BUDGET_RATIO
        listings = await self.search_card(query, timeout=timeout, deadline=deadline)
        stats = compute_price_stats(item.price for item in listings)
        if stats is None:
            raise NotFound(self.platform, "no listings with a price")
        return self._observation(stats, ObservationSource.CRAWLER)

    def fallback_for(self, query: CardQuery, error: Exception) -> PriceObservation | None:
        """Placeholder after a failed lookup; never for a robots denial."""
        if not self.fallback_enabled:
            return None
        if not isinstance(error, (NotFound, UpstreamError, TimeoutError)):
            return None
        self.logger.warning(
            "crawler_fallback_used",
            platform=self.platform,
            reason=str(error),
            error_type=type(error).__name__,
        )
        return self.fallback_observation(query)

    def fallback_observation(self, query: CardQuery) -> PriceObservation:
        """
        Placeholder range derived from the card identity.

        Deterministic for a given query so repeated lookups agree. Flagged
        source="fallback"; never mistaken for scraped data.
        """
        identity = "|".join([
            self.platform,
            query.name.lower(),
            (query.series or "").lower(),
            query.card_number or "",
        ])
        seed = int.from_bytes(hashlib.sha256(identity.encode("utf-8")).digest()[:8], "big")
        rng = random.Random(seed)

        base = Decimal(str(round(10 + rng.random() * 100, 2)))
        stats = compute_price_stats([
            base * Decimal("0.8"),
            base,
            base * Decimal("1.2"),
        ])
        return self._observation(stats, ObservationSource.FALLBACK, currency="USD")

    # -----------------------------------------------------------------------
    # Status
    # -----------------------------------------------------------------------

    def service_status(self) -> dict[str, Any]:
        policy = self._policy
        return {
            "platform": self.platform,
            "base_url": self.site_url,
            "robots_loaded": policy is not None,
            "allowed_for_search": policy.allowed_for_search if policy else None,
            "crawl_delay_ms": self.gate.min_interval_ms,
            "cache_size": len(self._search_cache),
            "last_request_at": self.gate.last_request_at,
            "fallback_enabled": self.fallback_enabled,
        }

    async def check_online(self, timeout: float | None = None) -> dict[str, Any]:
        """GET the site root; never raises."""
        try:
            response = await self.http().get(
                self.site_url,
                headers=self._headers(),
                timeout=timeout or settings.CRAWLER_REQUEST_TIMEOUT_SECONDS,
            )
            online = response.status_code < 400
            return {
                "platform": self.platform,
                "status": "online" if online else "offline",
                "status_code": response.status_code,
            }
        except httpx.HTTPError as e:
            return {
                "platform": self.platform,
                "status": "offline",
                "error": str(e),
            }

    def clear_cache(self) -> None:
        self._search_cache.invalidate()
