"""
TCG Price Aggregator - Cardmarket Adapter

Product lookup via /products/find scoped to a Cardmarket game id. Each
matched product's priceGuide.SELL is one price point, in EUR.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from tcgprice.config import ObservationSource, settings
from tcgprice.errors import NotFound
from tcgprice.pipeline.base import BaseAPIAdapter
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import compute_price_stats

# Cardmarket idGame values
GAME_IDS: dict[str, int] = {
    "yugioh": 1,
    "magic": 2,
    "pokemon": 3,
    "one-piece": 4,
}
DEFAULT_GAME_ID = 3


def game_id_for(game_type: str | None) -> int:
    return GAME_IDS.get((game_type or "").lower(), DEFAULT_GAME_ID)


def _sell_price(product: dict[str, Any]) -> Decimal | None:
    value = (product.get("priceGuide") or {}).get("SELL")
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        return None


class CardmarketAdapter(BaseAPIAdapter):
    """Cardmarket API v2 (app token), prices in EUR."""

    platform = "cardmarket"
    currency = "EUR"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        app_token: str | None = None,
        base_url: str | None = None,
    ) -> None:
        super().__init__(client)
        self._app_token = app_token if app_token is not None else settings.CARDMARKET_APP_TOKEN
        self._base_url = (base_url or settings.CARDMARKET_BASE_URL).rstrip("/")

    def is_active(self) -> bool:
        return bool(self._app_token)

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        data = await self._request(
            "GET",
            f"{self._base_url}/products/find",
            timeout,
            params={
                "search": query.name,
                "exact": "false",
                "idGame": game_id_for(query.game_type),
                "idLanguage": 1,
            },
            headers={
                "Authorization": f"Bearer {self._app_token}",
                "Accept": "application/json",
            },
        )
        products = data.get("product") or []
        stats = compute_price_stats(_sell_price(p) for p in products)
        if stats is None:
            raise NotFound(self.platform, f"no priced products for {query.name!r}")
        return self._observation(stats, ObservationSource.API)
