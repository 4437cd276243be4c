"""
TCG Price Aggregator - Durable Key-Value Store

Minimal get/set/delete store on SQLAlchemy async sessions. Optional:
the pricing core runs entirely in memory when it isn't configured.

Usage:
    store = SqlKeyValueStore(session_factory)
    await store.create_schema(engine)
    await store.set("k", '{"a": 1}', ttl_seconds=1800)
    payload = await store.get("k")
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from tcgprice.models.base import Base
from tcgprice.models.cache_entry import PriceCacheEntry

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on round-trip
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlKeyValueStore:
    """String payloads keyed by string, with per-row TTL."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @staticmethod
    async def create_schema(engine: AsyncEngine) -> None:
        """Create the cache table if missing (tests and local sqlite use)."""
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def get(self, key: str) -> str | None:
        """Return the payload, or None if absent or expired."""
        entry = await self.get_with_ttl(key)
        return entry[0] if entry is not None else None

    async def get_with_ttl(self, key: str) -> tuple[str, float] | None:
        """Return (payload, seconds of TTL left), or None if absent or expired."""
        async with self._session_factory() as session:
            row = await session.get(PriceCacheEntry, key)
            if row is None:
                return None

            age = (self._clock() - _as_utc(row.stored_at)).total_seconds()
            if age >= row.ttl_seconds:
                logger.debug("kv_store_entry_expired", cache_key=key, age_seconds=int(age))
                return None
            return row.payload, row.ttl_seconds - age

    async def set(self, key: str, payload: str, ttl_seconds: float) -> None:
        """Insert or replace the row for `key`."""
        async with self._session_factory() as session:
            await session.merge(
                PriceCacheEntry(
                    key=key,
                    payload=payload,
                    stored_at=self._clock(),
                    ttl_seconds=float(ttl_seconds),
                )
            )
            await session.commit()

        logger.debug("kv_store_entry_written", cache_key=key, ttl_seconds=ttl_seconds)

    async def delete(self, key: str | None = None) -> None:
        """Delete one key, or every row when `key` is None."""
        async with self._session_factory() as session:
            stmt: Any = delete(PriceCacheEntry)
            if key is not None:
                stmt = stmt.where(PriceCacheEntry.key == key)
            await session.execute(stmt)
            await session.commit()
