"""
TCG Price Aggregator - TCGplayer Catalog & Pricing Adapter

Two calls per card: a catalog search to find the best-name product,
then a pricing lookup for that product id. Every returned price row
contributes one point (low, else mid, else high).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field, field_validator

from tcgprice.config import ObservationSource, settings
from tcgprice.errors import NotFound
from tcgprice.pipeline.base import BaseAPIAdapter
from tcgprice.pipeline.matching import best_match
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import compute_price_stats


# ---------------------------------------------------------------------------
# Pydantic Response Models
# ---------------------------------------------------------------------------


def _to_decimal(v: Any) -> Decimal | None:
    if v is None or v == "":
        return None
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        return None


class TCGPlayerProduct(BaseModel):
    productId: int
    name: str = ""
    cleanName: str = ""


class TCGPlayerPriceRow(BaseModel):
    productId: int | None = None
    lowPrice: Decimal | None = None
    midPrice: Decimal | None = None
    highPrice: Decimal | None = None
    marketPrice: Decimal | None = None
    subTypeName: str | None = None

    @field_validator("lowPrice", "midPrice", "highPrice", "marketPrice", mode="before")
    @classmethod
    def parse_decimal(cls, v: Any) -> Decimal | None:
        return _to_decimal(v)

    @property
    def point(self) -> Decimal | None:
        for value in (self.lowPrice, self.midPrice, self.highPrice):
            if value is not None and value > 0:
                return value
        return None


class TCGPlayerSearchResponse(BaseModel):
    results: list[TCGPlayerProduct] = Field(default_factory=list)


class TCGPlayerPriceResponse(BaseModel):
    results: list[TCGPlayerPriceRow] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class TCGPlayerAdapter(BaseAPIAdapter):
    """TCGplayer catalog/pricing API (bearer token)."""

    platform = "tcgplayer"
    currency = "USD"

    def __init__(self, client: Any = None, api_key: str | None = None, base_url: str | None = None) -> None:
        super().__init__(client)
        self._api_key = api_key if api_key is not None else settings.TCGPLAYER_API_KEY
        self._base_url = (base_url or settings.TCGPLAYER_BASE_URL).rstrip("/")

    def is_active(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", "Accept": "application/json"}

    async def find_product(self, query: CardQuery, timeout: float) -> TCGPlayerProduct:
        data = await self._request(
            "GET",
            f"{self._base_url}/catalog/products",
            timeout,
            params={"productName": query.name, "limit": 10},
            headers=self._headers(),
        )
        products = TCGPlayerSearchResponse.model_validate(data).results
        product = best_match(products, query, lambda p: p.cleanName or p.name)
        if product is None:
            raise NotFound(self.platform, f"no catalog product for {query.name!r}")
        return product

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        product = await self.find_product(query, timeout)
        self.logger.info("tcgplayer_product_matched", product_id=product.productId, name=product.name)

        data = await self._request(
            "GET",
            f"{self._base_url}/pricing/product/{product.productId}",
            timeout,
            headers=self._headers(),
        )
        rows = TCGPlayerPriceResponse.model_validate(data).results
        stats = compute_price_stats(row.point for row in rows)
        if stats is None:
            raise NotFound(self.platform, f"no prices for product {product.productId}")

        return self._observation(stats, ObservationSource.API)
