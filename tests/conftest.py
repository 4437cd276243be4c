"""
TCG Price Aggregator - Shared pytest Fixtures & Configuration

Provides common fixtures for all test modules:
- In-memory aiosqlite session factory for the durable cache, and a
  store that always fails
- Fake clock / sleep so TTL and rate-gate tests don't wait
- Sample HTML for the crawler tests
- Async test support via pytest-asyncio
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import tcgprice.pipeline.ebay as ebay_module
from tcgprice.storage.kv_store import SqlKeyValueStore


@pytest.fixture(autouse=True)
def reset_ebay_token_cache() -> None:
    """eBay's OAuth token is cached at module level; isolate every test."""
    ebay_module.reset_token_cache()


# ---------------------------------------------------------------------------
# Time fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Awaitable sleep that records requested delays and advances a FakeClock."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.calls: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep(fake_clock: FakeClock) -> RecordingSleep:
    return RecordingSleep(fake_clock)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over a fresh in-memory SQLite database.

    StaticPool keeps one connection so every session sees the same database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )
    await SqlKeyValueStore.create_schema(engine)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def utc_now() -> datetime:
    return datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class BrokenStore:
    """Durable store whose every call fails like an unreachable database."""

    def __init__(self) -> None:
        self.calls: list[str] = []

    async def get_with_ttl(self, key: str) -> tuple[str, float] | None:
        self.calls.append("get_with_ttl")
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    async def set(self, key: str, payload: str, ttl_seconds: float) -> None:
        self.calls.append("set")
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    async def delete(self, key: str | None = None) -> None:
        self.calls.append("delete")
        raise OSError("disk I/O error")


@pytest.fixture
def broken_store() -> BrokenStore:
    return BrokenStore()


# ---------------------------------------------------------------------------
# HTML fixtures
# ---------------------------------------------------------------------------


SNKRDUNK_SEARCH_HTML = """
<html><body>
<div class="item">
  <h3 class="title">ピカチュウ 基本セット</h3>
  <span class="price">¥1,500</span>
  <img src="https://cdn.snkrdunk.com/image1.jpg" alt="ピカチュウ" />
  <a href="/item/123">商品リンク</a>
</div>
<div class="item">
  <h3 class="title">ピカチュウ レア</h3>
  <span class="price">¥2,500</span>
  <img src="https://cdn.snkrdunk.com/image2.jpg" alt="ピカチュウレア" />
  <a href="/item/124">商品リンク</a>
</div>
</body></html>
"""

SNKRDUNK_DETAIL_HTML = """
<span class="condition">新品</span>
<div class="description">ピカチュウのカードです</div>
<span class="seller">テスト売家</span>
<span class="size">M</span>
"""

MERCARI_SEARCH_HTML = """
<ul>
<li data-testid="item-cell">
  <a href="/item/m111"><img src="https://static.mercdn.net/m111.jpg" alt="ピカチュウ サムネイル">
  <span data-testid="thumbnail-item-name">ピカチュウ 025/025 &amp; 美品</span>
  <span class="merPrice__abc"><span class="currency">¥</span><span class="number">3,000</span></span>
  </a>
</li>
<li data-testid="item-cell">
  <a href="/item/m112"><img src="https://static.mercdn.net/m112.jpg" alt="ピカチュウ">
  <span data-testid="thumbnail-item-name">ピカチュウ プロモ</span>
  <span class="merPrice">¥5,000</span>
  </a>
</li>
</ul>
"""


@pytest.fixture
def snkrdunk_search_html() -> str:
    return SNKRDUNK_SEARCH_HTML


@pytest.fixture
def snkrdunk_detail_html() -> str:
    return SNKRDUNK_DETAIL_HTML


@pytest.fixture
def mercari_search_html() -> str:
    return MERCARI_SEARCH_HTML
