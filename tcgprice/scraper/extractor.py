"""
TCG Price Aggregator - Listing / Detail Extraction

Pattern-based extraction of listings from search-result pages and of
condition / description / seller from item pages. No DOM parsing: each
site supplies regex markers for its repeated item container and the
fields inside it.

This layer is fragile to upstream markup changes by nature. Non-matching
or malformed HTML yields zero listings or an empty ItemDetail, never an
exception, so extraction problems can't destabilize the aggregation.
"""

from __future__ import annotations

import html as html_lib
import re
from decimal import Decimal, InvalidOperation
from typing import ClassVar, Protocol
from urllib.parse import urljoin

import structlog

from tcgprice.scraper import CrawlerSearchResult, ItemDetail

logger = structlog.get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

# Currency glyph followed by an integer amount with optional thousands separators
PRICE_TOKEN_RE = re.compile(r"[¥￥$€]\s*([\d][\d,]*)")


def clean_html(fragment: str | None) -> str:
    """Strip tags, decode entities, collapse whitespace."""
    if not fragment:
        return ""
    text = _TAG_RE.sub("", fragment)
    text = html_lib.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def parse_price_token(text: str | None) -> Decimal | None:
    """
    Parse the first glyph-prefixed price, e.g. '¥1,500' -> Decimal('1500').

    Returns None when no token is present.
    """
    if not text:
        return None
    match = PRICE_TOKEN_RE.search(text)
    if not match:
        return None
    try:
        return Decimal(int(match.group(1).replace(",", "")))
    except (InvalidOperation, ValueError):
        return None


class Extractor(Protocol):
    """Per-site extraction contract. Swappable for a real HTML parser."""

    def extract_listings(self, html: str, max_results: int) -> list[CrawlerSearchResult]: ...

    def extract_detail(self, html: str) -> ItemDetail: ...


class PatternExtractor:
    """
    Regex-marker extractor. Subclasses set the class-level patterns.

    Every field pattern has one capture group. Listings without a
    non-empty title or a strictly positive price are discarded and do
    not count toward max_results.
    """

    platform: ClassVar[str] = ""
    base_url: ClassVar[str] = ""
    currency: ClassVar[str] = "JPY"

    item_start: ClassVar[re.Pattern[str]]
    title_pattern: ClassVar[re.Pattern[str]]
    price_pattern: ClassVar[re.Pattern[str]]
    image_src_pattern: ClassVar[re.Pattern[str]] = re.compile(r"<img[^>]*?\bsrc=\"([^\"]*)\"", re.S)
    image_alt_pattern: ClassVar[re.Pattern[str]] = re.compile(r"<img[^>]*?\balt=\"([^\"]*)\"", re.S)
    link_pattern: ClassVar[re.Pattern[str]] = re.compile(r"<a[^>]*?\bhref=\"([^\"]*)\"", re.S)

    detail_patterns: ClassVar[dict[str, re.Pattern[str]]] = {}

    def __init__(self, base_url: str | None = None) -> None:
        self._base_url = base_url or self.base_url

    # -----------------------------------------------------------------------
    # Listings
    # -----------------------------------------------------------------------

    def extract_listings(self, html: str, max_results: int) -> list[CrawlerSearchResult]:
        if not html or max_results <= 0:
            return []

        try:
            results: list[CrawlerSearchResult] = []
            for block in self._split_items(html):
                item = self._parse_item(block)
                if item is None:
                    continue
                results.append(item)
                if len(results) >= max_results:
                    break
            return results
        except Exception as e:
            logger.warning(
                "extractor_listings_failed",
                platform=self.platform,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    def _split_items(self, html: str) -> list[str]:
        starts = [m.start() for m in self.item_start.finditer(html)]
        return [
            html[start: starts[i + 1] if i + 1 < len(starts) else len(html)]
            for i, start in enumerate(starts)
        ]

    def _first(self, pattern: re.Pattern[str], block: str) -> str:
        match = pattern.search(block)
        return match.group(1) if match else ""

    def _parse_item(self, block: str) -> CrawlerSearchResult | None:
        title = clean_html(self._first(self.title_pattern, block))
        price = parse_price_token(clean_html(self._first(self.price_pattern, block)))

        if not title or price is None or price <= 0:
            return None

        href = html_lib.unescape(self._first(self.link_pattern, block))
        return CrawlerSearchResult(
            title=title,
            price=price,
            currency=self.currency,
            image_url=html_lib.unescape(self._first(self.image_src_pattern, block)),
            image_alt=clean_html(self._first(self.image_alt_pattern, block)),
            item_url=urljoin(self._base_url, href) if href else "",
            platform=self.platform,
        )

    # -----------------------------------------------------------------------
    # Detail page
    # -----------------------------------------------------------------------

    def extract_detail(self, html: str) -> ItemDetail:
        if not html:
            return ItemDetail()
        try:
            fields = {
                name: clean_html(self._first(pattern, html))
                for name, pattern in self.detail_patterns.items()
            }
            return ItemDetail(**fields)
        except Exception as e:
            logger.warning(
                "extractor_detail_failed",
                platform=self.platform,
                error=str(e),
                error_type=type(e).__name__,
            )
            return ItemDetail()
