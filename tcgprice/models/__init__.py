"""Durable cache models."""

from tcgprice.models.base import Base
from tcgprice.models.cache_entry import PriceCacheEntry

__all__ = ["Base", "PriceCacheEntry"]
