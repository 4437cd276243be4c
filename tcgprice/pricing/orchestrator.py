"""
TCG Price Aggregator - Orchestrator

Entry point for a price lookup:

    cache check -> concurrent adapter fan-out -> collect successes
                -> aggregate -> cache write

Each adapter call is wrapped in its own retry policy and timeout and
runs under asyncio.gather(return_exceptions=True), so one slow or
failing platform never blocks or fails the others. Once a platform's
attempts are exhausted its adapter may substitute a flagged fallback
observation (crawlers only). Adapter errors mean
"this platform contributed nothing"; only when nothing at all succeeded
does the caller see AllSourcesFailed, and that outcome is never cached.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from tcgprice.config import settings
from tcgprice.errors import AllSourcesFailed
from tcgprice.pipeline.base import PriceAdapter
from tcgprice.pipeline.registry import build_adapters
from tcgprice.pricing import AggregatedPriceResult, CardQuery, PriceObservation, PriceQueryOptions
from tcgprice.pricing.aggregator import aggregate
from tcgprice.pricing.cache import ResultCache, make_cache_key
from tcgprice.pricing.retry import with_retry

logger = structlog.get_logger(__name__)


class PriceOrchestrator:
    """
    Multi-source price lookup with caching.

    Usage:
        async with PriceOrchestrator() as orchestrator:
            result = await orchestrator.get_card_prices(CardQuery(name="Pikachu"))
    """

    def __init__(
        self,
        adapters: dict[str, PriceAdapter] | None = None,
        cache: ResultCache | None = None,
        retry_base_delay: float | None = None,
        currency: str | None = None,
    ) -> None:
        self.adapters = adapters if adapters is not None else build_adapters()
        self.cache = cache if cache is not None else ResultCache(settings.PRICE_CACHE_TTL_SECONDS)
        self.retry_base_delay = (
            settings.RETRY_BASE_DELAY_SECONDS if retry_base_delay is None else retry_base_delay
        )
        self.currency = currency or settings.DEFAULT_CURRENCY

    async def __aenter__(self) -> PriceOrchestrator:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()

    # -----------------------------------------------------------------------
    # Source selection
    # -----------------------------------------------------------------------

    def active_sources(self) -> list[str]:
        return [name for name, adapter in self.adapters.items() if adapter.is_active()]

    def _select_sources(self, requested: list[str] | None) -> tuple[list[str], dict[str, str]]:
        """Split requested ids into dispatchable sources and skip reasons."""
        if requested is None:
            return self.active_sources(), {}

        selected: list[str] = []
        skipped: dict[str, str] = {}
        for name in dict.fromkeys(s.lower() for s in requested):
            adapter = self.adapters.get(name)
            if adapter is None:
                skipped[name] = "unknown source"
            elif not adapter.is_active():
                skipped[name] = "inactive (missing credentials)"
            else:
                selected.append(name)
        return selected, skipped

    # -----------------------------------------------------------------------
    # Lookup
    # -----------------------------------------------------------------------

    async def _fetch_one(
        self,
        adapter: PriceAdapter,
        query: CardQuery,
        options: PriceQueryOptions,
    ) -> PriceObservation:
        timeout = options.timeout_ms / 1000

        async def attempt() -> PriceObservation:
            return await asyncio.wait_for(adapter.fetch(query, timeout), timeout)

        try:
            return await with_retry(
                attempt,
                max_attempts=options.max_retries,
                base_delay=self.retry_base_delay,
            )
        except Exception as e:
            # Retries exhausted (or error was final); adapter may substitute
            fallback = adapter.fallback_for(query, e)
            if fallback is None:
                raise
            return fallback

    async def get_card_prices(
        self,
        query: CardQuery,
        options: PriceQueryOptions | None = None,
    ) -> AggregatedPriceResult:
        """
        Look up one card across the requested (or all active) sources.

        Raises:
            AllSourcesFailed: No source produced an observation.
        """
        options = options or PriceQueryOptions(
            max_retries=settings.DEFAULT_MAX_RETRIES,
            timeout_ms=settings.DEFAULT_TIMEOUT_MS,
        )
        sources, failures = self._select_sources(options.sources)
        cache_key = make_cache_key(query, sources)

        if options.use_cache:
            cached, found = await self.cache.get(cache_key)
            if found:
                logger.info("price_cache_hit", cache_key=cache_key)
                return cached

        if not sources:
            logger.warning("price_lookup_no_sources", cache_key=cache_key, skipped=failures)
            raise AllSourcesFailed(failures)

        logger.info("price_lookup_dispatch", card_name=query.name, sources=sources)
        outcomes = await asyncio.gather(
            *(self._fetch_one(self.adapters[name], query, options) for name in sources),
            return_exceptions=True,
        )

        observations: list[PriceObservation] = []
        for name, outcome in zip(sources, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                reason = str(outcome) or type(outcome).__name__
                failures[name] = reason
                logger.warning(
                    "price_source_failed",
                    platform=name,
                    error=reason,
                    error_type=type(outcome).__name__,
                )
                continue
            observations.append(outcome)

        if not observations:
            logger.error("price_lookup_all_failed", cache_key=cache_key, failures=failures)
            raise AllSourcesFailed(failures)

        result = aggregate(observations, self.currency)
        result.cache_key = cache_key

        await self.cache.set(cache_key, result)
        logger.info(
            "price_lookup_complete",
            cache_key=cache_key,
            platforms_used=result.platforms_used,
            failed=sorted(failures),
        )
        return result

    # -----------------------------------------------------------------------
    # Status & maintenance
    # -----------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        return {
            "registered_sources": list(self.adapters),
            "active_sources": self.active_sources(),
            "cache_size": len(self.cache),
            "currency": self.currency,
        }

    async def clear_cache(self, key: str | None = None) -> None:
        await self.cache.invalidate(key)
        logger.info("price_cache_cleared", cache_key=key or "*")


async def get_card_prices(
    query: CardQuery,
    options: PriceQueryOptions | None = None,
) -> AggregatedPriceResult:
    """One-shot lookup with a throwaway orchestrator (no shared cache)."""
    async with PriceOrchestrator() as orchestrator:
        return await orchestrator.get_card_prices(query, options)
