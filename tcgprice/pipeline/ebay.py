"""
TCG Price Aggregator - eBay Browse API Adapter

Fetches US fixed-price listing prices from the eBay Browse API and
reduces them to one PriceObservation.

Authentication: OAuth2 Client Credentials flow, token cached with expiry.
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from tcgprice.config import ObservationSource, settings
from tcgprice.errors import NotFound, UpstreamError
from tcgprice.pipeline.base import BaseAPIAdapter
from tcgprice.pricing import CardQuery, PriceObservation
from tcgprice.pricing.stats import compute_price_stats

# ---------------------------------------------------------------------------
# Module-level token cache, shared by every adapter instance
# ---------------------------------------------------------------------------
_TOKEN_CACHE: dict[str, Any] = {
    "access_token": None,
    "expires_at": datetime.min.replace(tzinfo=timezone.utc),
}


def reset_token_cache() -> None:
    _TOKEN_CACHE["access_token"] = None
    _TOKEN_CACHE["expires_at"] = datetime.min.replace(tzinfo=timezone.utc)


def _price_value(item: dict[str, Any]) -> Decimal | None:
    value = (item.get("price") or {}).get("value")
    if value is None:
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError):
        return None


class EbayAdapter(BaseAPIAdapter):
    """
    eBay Browse API item-summary search.

    Token is cached in a module-level dict until expiry (typically 2 hours).

    Usage:
        async with EbayAdapter() as ebay:
            observation = await ebay.fetch(CardQuery(name="Charizard ex"), 15.0)
    """

    platform = "ebay"
    currency = "USD"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        app_id: str | None = None,
        cert_id: str | None = None,
        limit: int = 20,
    ) -> None:
        super().__init__(client)
        self._app_id = app_id if app_id is not None else settings.EBAY_APP_ID
        self._cert_id = cert_id if cert_id is not None else settings.EBAY_CERT_ID
        self._limit = limit

    def is_active(self) -> bool:
        return bool(self._app_id and self._cert_id)

    async def _get_access_token(self, timeout: float) -> str:
        """
        OAuth2 Client Credentials flow using EBAY_APP_ID + EBAY_CERT_ID.

        Caches token until expiry (with 60-second safety margin) to avoid
        hammering the auth endpoint.

        Raises:
            UpstreamError: Token endpoint failed or returned no token.
        """
        now = datetime.now(timezone.utc)
        if _TOKEN_CACHE["access_token"] and now < _TOKEN_CACHE["expires_at"]:
            return str(_TOKEN_CACHE["access_token"])

        # Basic auth: base64(APP_ID:CERT_ID)
        credentials = f"{self._app_id}:{self._cert_id}"
        encoded = base64.b64encode(credentials.encode()).decode()

        data = await self._request(
            "POST",
            settings.EBAY_OAUTH_URL,
            timeout,
            headers={
                "Authorization": f"Basic {encoded}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            data={
                "grant_type": "client_credentials",
                "scope": "https://api.ebay.com/oauth/api_scope",
            },
        )

        token = data.get("access_token", "")
        if not token:
            raise UpstreamError(self.platform, "OAuth response had no access_token")
        expires_in = int(data.get("expires_in", 7200))

        # Cache with 60-second safety margin before real expiry
        _TOKEN_CACHE["access_token"] = token
        _TOKEN_CACHE["expires_at"] = now + timedelta(seconds=expires_in - 60)

        self.logger.info("ebay_token_refreshed", expires_in=expires_in)
        return token

    async def search_listings(self, query: CardQuery, timeout: float) -> list[dict[str, Any]]:
        """
        GET /item_summary/search?q=...&filter=buyingOptions:{FIXED_PRICE}

        Returns the raw itemSummaries list (possibly empty).
        """
        token = await self._get_access_token(timeout)
        search_term = " ".join(p for p in (query.name, query.card_number) if p)

        data = await self._request(
            "GET",
            f"{settings.EBAY_BROWSE_URL}/item_summary/search",
            timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "X-EBAY-C-MARKETPLACE-ID": settings.EBAY_MARKETPLACE_ID,
            },
            params={
                "q": search_term,
                "filter": "buyingOptions:{FIXED_PRICE}",
                "limit": str(self._limit),
            },
        )
        items = data.get("itemSummaries") or []
        self.logger.info("ebay_search_complete", search_term=search_term, result_count=len(items))
        return items

    async def fetch(self, query: CardQuery, timeout: float) -> PriceObservation:
        items = await self.search_listings(query, timeout)
        stats = compute_price_stats(_price_value(item) for item in items)
        if stats is None:
            raise NotFound(self.platform, f"no priced listings for {query.name!r}")
        return self._observation(stats, ObservationSource.API)
