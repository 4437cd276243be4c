"""End-to-end tests for the price orchestrator with stub and real adapters."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest
import respx

from tcgprice.config import ObservationSource, SourceKind
from tcgprice.errors import AllSourcesFailed, NotFound, UpstreamError
from tcgprice.pipeline.base import PriceAdapter
from tcgprice.pricing import AggregatedPriceResult, CardQuery, PriceObservation, PriceQueryOptions
from tcgprice.pricing.cache import ResultCache, make_cache_key
from tcgprice.pricing.orchestrator import PriceOrchestrator
from tcgprice.pricing.stats import compute_price_stats
from tcgprice.scraper.rate_limit import RateGate
from tcgprice.scraper.snkrdunk import SnkrdunkAdapter
from tcgprice.storage.kv_store import SqlKeyValueStore

QUERY = CardQuery(name="Pikachu VMAX", game_type="pokemon")


class StubAdapter(PriceAdapter):
    """Adapter returning fixed price points, or raising a queue of errors first."""

    kind = SourceKind.API

    def __init__(
        self,
        platform: str,
        points: list[str] | None = None,
        errors: list[Exception] | None = None,
        delay: float = 0.0,
        active: bool = True,
    ) -> None:
        super().__init__()
        self.platform = platform
        self.points = [Decimal(p) for p in points or []]
        self.errors = list(errors or [])
        self.delay = delay
        self.active = active
        self.calls = 0

    def is_active(self) -> bool:
        return self.active

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.errors:
            raise self.errors.pop(0)
        stats = compute_price_stats(self.points)
        if stats is None:
            raise NotFound(self.platform)
        return self._observation(stats, ObservationSource.API)


def _orchestrator(*adapters: StubAdapter, cache: ResultCache | None = None) -> PriceOrchestrator:
    return PriceOrchestrator(
        adapters={a.platform: a for a in adapters},
        cache=cache if cache is not None else ResultCache(ttl_seconds=1800),
        retry_base_delay=0.0,
        currency="USD",
    )


def _options(**kwargs) -> PriceQueryOptions:
    defaults = {"max_retries": 3, "timeout_ms": 1000}
    defaults.update(kwargs)
    return PriceQueryOptions(**defaults)


class TestGetCardPrices:
    @pytest.mark.asyncio
    async def test_two_api_sources_aggregated(self) -> None:
        """[40,45,50] + [38,44,55]: mean of platform averages, widest range."""
        orchestrator = _orchestrator(
            StubAdapter("tcgplayer", ["40", "45", "50"]),
            StubAdapter("ebay", ["38", "44", "55"]),
        )
        result = await orchestrator.get_card_prices(QUERY, _options())

        assert result.average == Decimal("45.34")
        assert result.min == Decimal("38.00")
        assert result.max == Decimal("55.00")
        assert result.platforms_used == ["tcgplayer", "ebay"]
        assert result.cache_key == make_cache_key(QUERY, ["tcgplayer", "ebay"])
        assert result.min <= result.median <= result.max

    @pytest.mark.asyncio
    async def test_all_sources_fail_no_cache_write(self) -> None:
        cache = ResultCache(ttl_seconds=1800)
        orchestrator = _orchestrator(
            StubAdapter("tcgplayer", errors=[NotFound("tcgplayer")]),
            StubAdapter("ebay", errors=[UpstreamError("ebay", "HTTP 500")] * 3),
            cache=cache,
        )
        with pytest.raises(AllSourcesFailed) as exc_info:
            await orchestrator.get_card_prices(QUERY, _options())

        assert set(exc_info.value.failures) == {"tcgplayer", "ebay"}
        assert len(cache) == 0
        key = make_cache_key(QUERY, ["tcgplayer", "ebay"])
        assert await cache.get(key) == (None, False)

    @pytest.mark.asyncio
    async def test_partial_failure_lists_only_contributors(self) -> None:
        orchestrator = _orchestrator(
            StubAdapter("tcgplayer", ["10"]),
            StubAdapter("ebay", errors=[UpstreamError("ebay", "boom")] * 3),
            StubAdapter("cardmarket", errors=[NotFound("cardmarket")]),
        )
        result = await orchestrator.get_card_prices(QUERY, _options())

        assert result.platforms_used == ["tcgplayer"]
        assert list(result.platforms) == ["tcgplayer"]

    @pytest.mark.asyncio
    async def test_transient_errors_retried_per_platform(self) -> None:
        flaky = StubAdapter("ebay", ["20"], errors=[UpstreamError("ebay", "HTTP 503")])
        missing = StubAdapter("tcgplayer", errors=[NotFound("tcgplayer")])
        orchestrator = _orchestrator(flaky, missing)

        result = await orchestrator.get_card_prices(QUERY, _options(max_retries=3))

        assert flaky.calls == 2
        assert missing.calls == 1
        assert result.platforms_used == ["ebay"]

    @pytest.mark.asyncio
    async def test_retry_budget_respected(self) -> None:
        down = StubAdapter("ebay", errors=[UpstreamError("ebay", "HTTP 500")] * 10)
        orchestrator = _orchestrator(down, StubAdapter("tcgplayer", ["5"]))

        await orchestrator.get_card_prices(QUERY, _options(max_retries=2))

        assert down.calls == 2

    @pytest.mark.asyncio
    async def test_slow_source_times_out_without_blocking_others(self) -> None:
        slow = StubAdapter("ebay", ["99"], delay=5.0)
        orchestrator = _orchestrator(slow, StubAdapter("tcgplayer", ["10"]))

        result = await orchestrator.get_card_prices(QUERY, _options(max_retries=1, timeout_ms=50))

        assert result.platforms_used == ["tcgplayer"]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_adapters(self) -> None:
        adapter = StubAdapter("ebay", ["10"])
        orchestrator = _orchestrator(adapter)

        first = await orchestrator.get_card_prices(QUERY, _options())
        second = await orchestrator.get_card_prices(QUERY, _options())

        assert adapter.calls == 1
        assert second.average == first.average

    @pytest.mark.asyncio
    async def test_use_cache_false_refetches(self) -> None:
        adapter = StubAdapter("ebay", ["10"])
        orchestrator = _orchestrator(adapter)

        await orchestrator.get_card_prices(QUERY, _options())
        await orchestrator.get_card_prices(QUERY, _options(use_cache=False))

        assert adapter.calls == 2

    @pytest.mark.asyncio
    async def test_default_sources_are_active_ones(self) -> None:
        inactive = StubAdapter("tcgplayer", ["1000"], active=False)
        active = StubAdapter("ebay", ["10"])
        orchestrator = _orchestrator(inactive, active)

        result = await orchestrator.get_card_prices(QUERY, _options())

        assert inactive.calls == 0
        assert result.platforms_used == ["ebay"]

    @pytest.mark.asyncio
    async def test_requested_sources_subset(self) -> None:
        a = StubAdapter("ebay", ["10"])
        b = StubAdapter("tcgplayer", ["20"])
        orchestrator = _orchestrator(a, b)

        result = await orchestrator.get_card_prices(QUERY, _options(sources=["tcgplayer"]))

        assert a.calls == 0
        assert result.platforms_used == ["tcgplayer"]
        assert result.cache_key.endswith("|tcgplayer")

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_requested_sources_fail(self) -> None:
        orchestrator = _orchestrator(StubAdapter("tcgplayer", ["1"], active=False))

        with pytest.raises(AllSourcesFailed) as exc_info:
            await orchestrator.get_card_prices(QUERY, _options(sources=["tcgplayer", "nope"]))

        assert exc_info.value.failures["nope"] == "unknown source"
        assert "inactive" in exc_info.value.failures["tcgplayer"]

    @pytest.mark.asyncio
    async def test_crawler_fallback_flag_reaches_result(self, fake_clock, recording_sleep) -> None:
        crawler = SnkrdunkAdapter(
            base_url="https://snkrdunk.com",
            gate=RateGate("snkrdunk", 0, clock=fake_clock, sleep=recording_sleep),
            fallback_enabled=True,
        )
        orchestrator = PriceOrchestrator(
            adapters={"ebay": StubAdapter("ebay", ["10"]), "snkrdunk": crawler},
            retry_base_delay=0.0,
            currency="USD",
        )
        with respx.mock:
            respx.get("https://snkrdunk.com/robots.txt").mock(return_value=httpx.Response(404))
            respx.get("https://snkrdunk.com/search").mock(
                return_value=httpx.Response(200, text="<html>no listings</html>")
            )
            async with orchestrator:
                result = await orchestrator.get_card_prices(QUERY, _options())

        assert result.platforms_used == ["ebay", "snkrdunk"]
        assert result.platforms["snkrdunk"].source == ObservationSource.FALLBACK
        assert result.has_fallback is True

    @pytest.mark.asyncio
    async def test_policy_denied_crawler_contributes_nothing(self, fake_clock, recording_sleep) -> None:
        crawler = SnkrdunkAdapter(
            base_url="https://snkrdunk.com",
            gate=RateGate("snkrdunk", 0, clock=fake_clock, sleep=recording_sleep),
        )
        orchestrator = PriceOrchestrator(
            adapters={"ebay": StubAdapter("ebay", ["10"]), "snkrdunk": crawler},
            retry_base_delay=0.0,
        )
        with respx.mock:
            respx.get("https://snkrdunk.com/robots.txt").mock(
                return_value=httpx.Response(200, text="User-agent: *\nDisallow: /search/\n")
            )
            search = respx.get("https://snkrdunk.com/search")
            async with orchestrator:
                result = await orchestrator.get_card_prices(QUERY, _options())

        assert not search.called
        assert result.platforms_used == ["ebay"]

    @pytest.mark.asyncio
    async def test_crawler_recovers_from_transient_error_by_retrying(
        self, fake_clock, recording_sleep, snkrdunk_search_html
    ) -> None:
        crawler = SnkrdunkAdapter(
            base_url="https://snkrdunk.com",
            gate=RateGate("snkrdunk", 0, clock=fake_clock, sleep=recording_sleep),
            fallback_enabled=True,
        )
        orchestrator = PriceOrchestrator(
            adapters={"snkrdunk": crawler}, retry_base_delay=0.0, currency="JPY"
        )
        with respx.mock:
            respx.get("https://snkrdunk.com/robots.txt").mock(return_value=httpx.Response(404))
            search = respx.get("https://snkrdunk.com/search").mock(
                side_effect=[
                    httpx.Response(503),
                    httpx.Response(200, text=snkrdunk_search_html),
                ]
            )
            respx.get(url__regex=r"https://snkrdunk\.com/item/\d+").mock(
                return_value=httpx.Response(404)
            )
            async with orchestrator:
                result = await orchestrator.get_card_prices(QUERY, _options(max_retries=3))

        assert search.call_count == 2
        assert result.platforms["snkrdunk"].source == ObservationSource.CRAWLER
        assert result.has_fallback is False
        assert result.average == Decimal("2000.00")

    @pytest.mark.asyncio
    async def test_crawler_fallback_only_after_all_attempts(self, fake_clock, recording_sleep) -> None:
        crawler = SnkrdunkAdapter(
            base_url="https://snkrdunk.com",
            gate=RateGate("snkrdunk", 0, clock=fake_clock, sleep=recording_sleep),
            fallback_enabled=True,
        )
        orchestrator = PriceOrchestrator(adapters={"snkrdunk": crawler}, retry_base_delay=0.0)
        with respx.mock:
            respx.get("https://snkrdunk.com/robots.txt").mock(return_value=httpx.Response(404))
            search = respx.get("https://snkrdunk.com/search").mock(
                return_value=httpx.Response(503)
            )
            async with orchestrator:
                result = await orchestrator.get_card_prices(QUERY, _options(max_retries=3))

        assert search.call_count == 3
        assert result.platforms["snkrdunk"].source == ObservationSource.FALLBACK

    @pytest.mark.asyncio
    async def test_crawl_delay_does_not_exhaust_attempt_timeout(self, snkrdunk_search_html) -> None:
        """Real 1s crawl delay inside a 1.5s attempt: listings still count, extra details skipped."""
        crawler = SnkrdunkAdapter(base_url="https://snkrdunk.com", fallback_enabled=False)
        orchestrator = PriceOrchestrator(
            adapters={"ebay": StubAdapter("ebay", ["10"]), "snkrdunk": crawler},
            retry_base_delay=0.0,
            currency="JPY",
        )
        with respx.mock:
            respx.get("https://snkrdunk.com/robots.txt").mock(
                return_value=httpx.Response(200, text="User-agent: *\nCrawl-delay: 1\n")
            )
            respx.get("https://snkrdunk.com/search").mock(
                return_value=httpx.Response(200, text=snkrdunk_search_html)
            )
            details = respx.get(url__regex=r"https://snkrdunk\.com/item/\d+").mock(
                return_value=httpx.Response(404)
            )
            async with orchestrator:
                result = await orchestrator.get_card_prices(
                    QUERY, _options(max_retries=1, timeout_ms=1500)
                )

        assert result.platforms_used == ["ebay", "snkrdunk"]
        assert result.platforms["snkrdunk"].source == ObservationSource.CRAWLER
        assert details.call_count == 1


class TestDurableCache:
    @pytest.mark.asyncio
    async def test_injected_store_cache_is_used_and_written(self, session_factory) -> None:
        store = SqlKeyValueStore(session_factory)
        cache = ResultCache(ttl_seconds=1800, store=store)
        adapter = StubAdapter("ebay", ["10"])
        orchestrator = _orchestrator(adapter, cache=cache)

        assert orchestrator.cache is cache
        result = await orchestrator.get_card_prices(QUERY, _options())

        payload = await store.get(result.cache_key)
        assert payload is not None
        assert AggregatedPriceResult.model_validate_json(payload).average == Decimal("10.00")

        # A second process with a cold memory layer is answered from the store
        other_adapter = StubAdapter("ebay", ["99"])
        other = _orchestrator(other_adapter, cache=ResultCache(ttl_seconds=1800, store=store))
        again = await other.get_card_prices(QUERY, _options())

        assert other_adapter.calls == 0
        assert again.average == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_failing_store_does_not_fail_lookup(self, broken_store) -> None:
        cache = ResultCache(ttl_seconds=1800, store=broken_store)
        orchestrator = _orchestrator(StubAdapter("ebay", ["10"]), cache=cache)

        result = await orchestrator.get_card_prices(QUERY, _options())

        assert result.platforms_used == ["ebay"]
        assert broken_store.calls == ["get_with_ttl", "set"]


class TestStatusAndMaintenance:
    @pytest.mark.asyncio
    async def test_get_status(self) -> None:
        orchestrator = _orchestrator(StubAdapter("ebay", ["1"]), StubAdapter("tcgplayer", active=False))
        await orchestrator.get_card_prices(QUERY, _options())

        status = orchestrator.get_status()

        assert status["registered_sources"] == ["ebay", "tcgplayer"]
        assert status["active_sources"] == ["ebay"]
        assert status["cache_size"] == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self) -> None:
        adapter = StubAdapter("ebay", ["1"])
        orchestrator = _orchestrator(adapter)
        await orchestrator.get_card_prices(QUERY, _options())

        await orchestrator.clear_cache()
        await orchestrator.get_card_prices(QUERY, _options())

        assert adapter.calls == 2
