"""
TCG Price Aggregator - Mercari Japan Crawler

jp.mercari.com search results mark each listing with
data-testid="item-cell"; the name and price sit in testid-tagged spans.
Search is sorted newest first so the range reflects current asking prices.
"""

from __future__ import annotations

import re

from tcgprice.config import settings
from tcgprice.scraper.crawler import BaseCrawlerAdapter
from tcgprice.scraper.extractor import PatternExtractor


class MercariExtractor(PatternExtractor):
    platform = "mercari"
    base_url = settings.MERCARI_BASE_URL
    currency = "JPY"

    item_start = re.compile(r"<li[^>]*\bdata-testid=\"item-cell\"[^>]*>")
    title_pattern = re.compile(
        r"<span[^>]*\bdata-testid=\"thumbnail-item-name\"[^>]*>(.*?)</span>", re.S
    )
    # Price text may be split over nested spans: <span>¥</span><span>1,500</span>
    price_pattern = re.compile(
        r"<span[^>]*\bclass=\"[^\"]*merPrice[^\"]*\"[^>]*>((?:<span[^>]*>[^<]*</span>|[^<])*)", re.S
    )

    detail_patterns = {
        "condition": re.compile(r"<span[^>]*\bdata-testid=\"商品の状態\"[^>]*>(.*?)</span>", re.S),
        "description": re.compile(r"<pre[^>]*\bdata-testid=\"description\"[^>]*>(.*?)</pre>", re.S),
        "seller": re.compile(r"<p[^>]*\bdata-testid=\"seller-name\"[^>]*>(.*?)</p>", re.S),
    }


class MercariAdapter(BaseCrawlerAdapter):
    """Crawler for jp.mercari.com."""

    platform = "mercari"
    currency = "JPY"
    base_url = settings.MERCARI_BASE_URL
    search_path = "/search"
    search_param = "keyword"
    search_params = {"sort": "created_time", "order": "desc"}
    extractor_class = MercariExtractor
