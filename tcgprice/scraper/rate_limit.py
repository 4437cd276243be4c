"""
TCG Price Aggregator - Per-Source Rate Gate

One gate per crawler adapter instance. Each gate keeps a monotonic
"last request" stamp; wait() suspends until the crawl delay has elapsed
since that stamp, then re-stamps. The wait is serialized by a lock so
two concurrent callers can never share the same elapsed window.
Different gates never block each other.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class RateGate:
    """
    Minimum-interval gate for one scraped source.

    Usage:
        gate = RateGate("mercari", min_interval_ms=2000)
        await gate.wait()
        response = await client.get(url)
    """

    def __init__(
        self,
        source: str,
        min_interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.min_interval_ms = min_interval_ms
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None
        self._lock = asyncio.Lock()

    @property
    def last_request_at(self) -> float | None:
        """Monotonic timestamp of the last request let through, if any."""
        return self._last_request

    def now(self) -> float:
        """Current reading of the gate's clock."""
        return self._clock()

    def pending_wait(self) -> float:
        """Seconds the next wait() would sleep if called now (ignores the lock)."""
        if self._last_request is None:
            return 0.0
        remaining = self.min_interval_ms / 1000 - (self._clock() - self._last_request)
        return max(remaining, 0.0)

    def set_interval(self, min_interval_ms: int) -> None:
        """Adopt a new delay, e.g. once robots.txt has been read."""
        self.min_interval_ms = min_interval_ms

    async def wait(self) -> float:
        """
        Block until a request may be issued, then stamp the clock.

        Returns:
            Seconds actually waited.
        """
        async with self._lock:
            waited = 0.0
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                remaining = self.min_interval_ms / 1000 - elapsed
                if remaining > 0:
                    logger.debug(
                        "rate_gate_waiting",
                        source=self.source,
                        wait_seconds=round(remaining, 3),
                    )
                    await self._sleep(remaining)
                    waited = remaining
            self._last_request = self._clock()
            return waited
