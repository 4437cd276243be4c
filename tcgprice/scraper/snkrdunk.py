"""
TCG Price Aggregator - SNKRDUNK Crawler

snkrdunk.com search results render each listing as a
<div class="item"> block with title, yen price, thumbnail and a relative
item link. Item pages carry condition / description / seller / size.
"""

from __future__ import annotations

import re

from tcgprice.config import settings
from tcgprice.scraper.crawler import BaseCrawlerAdapter
from tcgprice.scraper.extractor import PatternExtractor


class SnkrdunkExtractor(PatternExtractor):
    platform = "snkrdunk"
    base_url = settings.SNKRDUNK_BASE_URL
    currency = "JPY"

    item_start = re.compile(r"<div[^>]*\bclass=\"item\"[^>]*>")
    title_pattern = re.compile(r"<h3[^>]*\bclass=\"title\"[^>]*>(.*?)</h3>", re.S)
    price_pattern = re.compile(r"<span[^>]*\bclass=\"price\"[^>]*>(.*?)</span>", re.S)

    detail_patterns = {
        "condition": re.compile(r"<span[^>]*\bclass=\"condition\"[^>]*>(.*?)</span>", re.S),
        "description": re.compile(r"<div[^>]*\bclass=\"description\"[^>]*>(.*?)</div>", re.S),
        "seller": re.compile(r"<span[^>]*\bclass=\"seller\"[^>]*>(.*?)</span>", re.S),
        "size": re.compile(r"<span[^>]*\bclass=\"size\"[^>]*>(.*?)</span>", re.S),
    }


class SnkrdunkAdapter(BaseCrawlerAdapter):
    """Crawler for snkrdunk.com."""

    platform = "snkrdunk"
    currency = "JPY"
    base_url = settings.SNKRDUNK_BASE_URL
    search_path = "/search"
    search_param = "keyword"
    extractor_class = SnkrdunkExtractor
