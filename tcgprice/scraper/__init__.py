"""TCG Price Aggregator - Scraper Layer"""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel


class CrawlerSearchResult(BaseModel):
    """One listing scraped from a marketplace search page."""
    title: str
    price: Decimal
    currency: str
    image_url: str = ""
    image_alt: str = ""
    item_url: str = ""
    platform: str
    condition: str | None = None
    seller: str | None = None
    description: str | None = None


class ItemDetail(BaseModel):
    """Fields lifted from an item detail page. Empty string when absent."""
    condition: str = ""
    description: str = ""
    seller: str = ""
    size: str = ""
