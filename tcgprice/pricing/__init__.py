"""TCG Price Aggregator - Pricing Core Models"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tcgprice.config import ObservationSource


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CardQuery(BaseModel):
    """Identity of the card to price, as supplied by the recognition layer."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Card name, e.g. 'Pikachu VMAX'")
    series: str | None = Field(default=None, description="Set / series name")
    card_number: str | None = Field(default=None, description="Collector number, e.g. '025/025'")
    game_type: str | None = Field(default=None, description="'pokemon', 'yugioh', 'one-piece', 'magic'")


class PriceObservation(BaseModel):
    """One platform's price statistics. Exactly one per successful platform."""

    platform: str
    average: Decimal
    median: Decimal
    min: Decimal
    max: Decimal
    currency: str = "USD"
    source: ObservationSource = ObservationSource.API
    observed_at: datetime = Field(default_factory=_utcnow)
    total_results: int = 0

    @model_validator(mode="after")
    def _check_range(self) -> PriceObservation:
        if self.min > self.max:
            raise ValueError(f"min {self.min} exceeds max {self.max}")
        return self

    @property
    def is_fallback(self) -> bool:
        return self.source == ObservationSource.FALLBACK


class AggregatedPriceResult(BaseModel):
    """Final cross-platform answer returned to the caller."""

    average: Decimal
    median: Decimal
    min: Decimal
    max: Decimal
    currency: str
    platforms: dict[str, PriceObservation] = Field(default_factory=dict)
    platforms_used: list[str] = Field(default_factory=list)
    total_results: int = 0
    generated_at: datetime = Field(default_factory=_utcnow)
    cache_key: str | None = None

    @property
    def has_fallback(self) -> bool:
        """True if any contributing platform is a synthetic fallback."""
        return any(obs.is_fallback for obs in self.platforms.values())


class PriceQueryOptions(BaseModel):
    """Per-request knobs for get_card_prices()."""

    sources: list[str] | None = None        # None -> all active sources
    use_cache: bool = True
    max_retries: int = Field(default=3, ge=1)
    timeout_ms: int = Field(default=30000, gt=0)
