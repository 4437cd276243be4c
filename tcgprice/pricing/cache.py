"""
TCG Price Aggregator - TTL Cache

One generic in-memory TTL cache, instantiated per use site (aggregated
price results, crawler raw search results) so there is a single expiry
policy. Expired entries read as misses and are replaced on the next
write to the same key; there is no background sweep.

ResultCache layers an optional durable key-value store underneath the
in-memory cache for aggregated results.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tcgprice.pricing import AggregatedPriceResult, CardQuery

if TYPE_CHECKING:
    from tcgprice.storage.kv_store import SqlKeyValueStore

logger = structlog.get_logger(__name__)

# Durable-store failures that degrade ResultCache to memory only
STORE_ERRORS = (SQLAlchemyError, OSError)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """Immutable cache record. Replaced, never mutated."""

    key: str
    value: V
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class TTLCache(Generic[V]):
    """
    Lock-protected TTL map.

    Usage:
        cache: TTLCache[list[CrawlerSearchResult]] = TTLCache(default_ttl=1800)
        cache.set("k", value)
        value, found = cache.get("k")
    """

    def __init__(
        self,
        default_ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> tuple[V | None, bool]:
        """Return (value, True) for a fresh entry, (None, False) otherwise."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not entry.is_fresh(self._clock()):
                return None, False
            return entry.value, True

    def set(self, key: str, value: V, ttl: float | None = None) -> None:
        """Store `value`, replacing any existing (possibly stale) entry."""
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                stored_at=self._clock(),
                ttl=self._default_ttl if ttl is None else ttl,
            )

    def invalidate(self, key: str | None = None) -> None:
        """Drop one key, or everything when `key` is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def make_cache_key(query: CardQuery, sources: Iterable[str]) -> str:
    """
    Deterministic key over card identity fields and the sorted source list.

    Examples:
        >>> make_cache_key(CardQuery(name="Pikachu"), ["mercari", "ebay"])
        'price|pikachu|||ebay,mercari'
    """
    parts = [
        query.name,
        query.series or "",
        query.card_number or "",
        query.game_type or "",
    ]
    identity = "|".join(p.strip().lower() for p in parts)
    source_part = ",".join(sorted({s.lower() for s in sources}))
    return f"price|{identity}|{source_part}"


class ResultCache:
    """
    Cache for AggregatedPriceResult values.

    Memory first, then the optional durable store. Writes go to both.
    Store errors are logged and otherwise ignored.
    """

    def __init__(
        self,
        ttl_seconds: float,
        store: SqlKeyValueStore | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._memory: TTLCache[AggregatedPriceResult] = TTLCache(ttl_seconds, clock=clock)
        self._store = store

    async def get(self, key: str) -> tuple[AggregatedPriceResult | None, bool]:
        value, found = self._memory.get(key)
        if found:
            return value, True

        if self._store is None:
            return None, False

        try:
            entry = await self._store.get_with_ttl(key)
        except STORE_ERRORS as e:
            self._log_store_failure("get", key, e)
            return None, False
        if entry is None:
            return None, False
        payload, remaining = entry

        try:
            value = AggregatedPriceResult.model_validate_json(payload)
        except ValueError as e:
            logger.warning("result_cache_payload_invalid", cache_key=key, error=str(e))
            await self._delete_from_store(key)
            return None, False

        # Memory copy expires with the durable row, not a fresh TTL
        self._memory.set(key, value, remaining)
        logger.debug("result_cache_store_hit", cache_key=key, ttl_remaining=round(remaining, 1))
        return value, True

    async def set(self, key: str, value: AggregatedPriceResult, ttl: float | None = None) -> None:
        effective_ttl = self._ttl if ttl is None else ttl
        self._memory.set(key, value, effective_ttl)
        if self._store is None:
            return
        try:
            await self._store.set(key, value.model_dump_json(), effective_ttl)
        except STORE_ERRORS as e:
            self._log_store_failure("set", key, e)

    async def invalidate(self, key: str | None = None) -> None:
        self._memory.invalidate(key)
        await self._delete_from_store(key)

    async def _delete_from_store(self, key: str | None) -> None:
        if self._store is None:
            return
        try:
            await self._store.delete(key)
        except STORE_ERRORS as e:
            self._log_store_failure("delete", key, e)

    @staticmethod
    def _log_store_failure(operation: str, key: str | None, error: Exception) -> None:
        # The durable layer is optional; memory keeps serving
        logger.warning(
            "result_cache_store_failed",
            operation=operation,
            cache_key=key or "*",
            error=str(error),
            error_type=type(error).__name__,
        )

    def __len__(self) -> int:
        return len(self._memory)
