"""
TCG Price Aggregator - PriceCharting Adapter

Single-product lookup. PriceCharting reports prices as integer cents;
the ungraded ("loose") price is the point, with the graded price as a
second point when present.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from tcgprice.config import ObservationSource, settings
from tcgprice.errors import NotFound, UpstreamError
from tcgprice.pipeline.base import BaseAPIAdapter
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import compute_price_stats

PRICE_FIELDS = ("loose-price", "graded-price")


def cents_to_dollars(value: Any) -> Decimal | None:
    """
    Examples:
        >>> cents_to_dollars(4550)
        Decimal('45.50')
    """
    if value is None or value == "":
        return None
    try:
        return (Decimal(str(value)) / 100).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError):
        return None


class PriceChartingAdapter(BaseAPIAdapter):
    platform = "pricecharting"
    currency = "USD"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.PRICECHARTING_API_KEY
        self._base_url = (base_url or settings.PRICECHARTING_BASE_URL).rstrip("/")

    def is_active(self) -> bool:
        return bool(self._api_key)

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        search_term = " ".join(p for p in (query.name, query.card_number) if p)
        data = await self._request(
            "GET",
            f"{self._base_url}/product",
            timeout,
            params={"t": self._api_key, "q": search_term},
        )
        if data.get("status") == "error":
            message = data.get("error-message", "unknown error")
            if "no such product" in message.lower():
                raise NotFound(self.platform, message)
            raise UpstreamError(self.platform, message)

        stats = compute_price_stats(cents_to_dollars(data.get(f)) for f in PRICE_FIELDS)
        if stats is None:
            raise NotFound(self.platform, f"no price for {search_term!r}")
        return self._observation(stats, ObservationSource.API)
