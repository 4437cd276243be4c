"""
TCG Price Aggregator - JustTCG Adapter

Fetches card prices from the JustTCG API via RapidAPI. Every search
result with a USD price contributes one point.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from pydantic import BaseModel, Field, field_validator

from tcgprice.config import ObservationSource, settings
from tcgprice.errors import NotFound
from tcgprice.pipeline.base import BaseAPIAdapter
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import compute_price_stats

# ---------------------------------------------------------------------------
# RapidAPI Configuration
# ---------------------------------------------------------------------------
RAPIDAPI_HOST = "justtcg.p.rapidapi.com"
RAPIDAPI_BASE_URL = f"https://{RAPIDAPI_HOST}"

# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


class JustTCGPriceData(BaseModel):
    """Price data for a single card from JustTCG."""

    card_id: str = Field(..., description="Card identifier")
    name: str = Field(default="", description="Card name")
    set_name: str = Field(default="", description="Set name")
    price_usd: Decimal | None = Field(default=None, description="TCGPlayer price in USD")
    condition: str | None = Field(default=None, description="Card condition if available")

    @field_validator("price_usd", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        """Safely convert price values to Decimal. Never use float for money."""
        if v is None or v == "" or v == "N/A":
            return None
        try:
            return Decimal(str(v))
        except (InvalidOperation, ValueError):
            return None


class JustTCGSearchResponse(BaseModel):
    """Top-level response from JustTCG search endpoint."""

    results: list[JustTCGPriceData] = Field(default_factory=list)
    total: int = Field(default=0)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class JustTCGAdapter(BaseAPIAdapter):
    platform = "justtcg"
    currency = "USD"

    def __init__(self, client: httpx.AsyncClient | None = None, api_key: str | None = None) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.JUSTTCG_API_KEY

    def is_active(self) -> bool:
        return bool(self._api_key)

    async def fetch_card_prices(self, query: CardQuery, timeout: float) -> list[JustTCGPriceData]:
        search_term = " ".join(p for p in (query.name, query.series) if p)
        self.logger.info("justtcg_fetch_card", card_name=search_term)

        data = await self._request(
            "GET",
            f"{RAPIDAPI_BASE_URL}/search",
            timeout,
            params={"q": search_term},
            headers={
                "X-RapidAPI-Key": self._api_key,
                "X-RapidAPI-Host": RAPIDAPI_HOST,
            },
        )
        response = JustTCGSearchResponse.model_validate(data)

        self.logger.info(
            "justtcg_fetch_card_complete",
            card_name=search_term,
            results_count=len(response.results),
        )
        return response.results

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        results = await self.fetch_card_prices(query, timeout)
        stats = compute_price_stats(r.price_usd for r in results)
        if stats is None:
            raise NotFound(self.platform, f"no USD prices for {query.name!r}")
        return self._observation(stats, ObservationSource.API)
