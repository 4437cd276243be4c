"""
TCG Price Aggregator - Durable Cache Entry Model

Backs the in-memory result cache across process restarts. Rows are
replaced wholesale on write; an expired row reads as missing.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import FLOAT, TIMESTAMP, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tcgprice.models.base import Base


class PriceCacheEntry(Base):
    """
    One cached value keyed by the deterministic cache key.

    payload holds the JSON-serialized AggregatedPriceResult.
    """

    __tablename__ = "price_cache_entries"

    key: Mapped[str] = mapped_column(
        String, primary_key=True, comment="make_cache_key() output"
    )
    payload: Mapped[str] = mapped_column(
        Text, nullable=False, comment="JSON-serialized cached value"
    )
    stored_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
        comment="When the value was written",
    )
    ttl_seconds: Mapped[float] = mapped_column(
        FLOAT, nullable=False, comment="Lifetime of the entry in seconds"
    )

    def __repr__(self) -> str:
        return f"<PriceCacheEntry key={self.key!r} ttl={self.ttl_seconds}>"
