"""Registry of price source adapters, keyed by source id."""

from __future__ import annotations

from collections.abc import Iterable

import httpx
import structlog

from tcgprice.pipeline.base import PriceAdapter
from tcgprice.pipeline.cardmarket import CardmarketAdapter
from tcgprice.pipeline.ebay import EbayAdapter
from tcgprice.pipeline.justtcg import JustTCGAdapter
from tcgprice.pipeline.pricecharting import PriceChartingAdapter
from tcgprice.pipeline.tcgplayer import TCGPlayerAdapter
from tcgprice.scraper.mercari import MercariAdapter
from tcgprice.scraper.snkrdunk import SnkrdunkAdapter

logger = structlog.get_logger(__name__)

ADAPTER_REGISTRY: dict[str, type[PriceAdapter]] = {
    "tcgplayer": TCGPlayerAdapter,
    "ebay": EbayAdapter,
    "cardmarket": CardmarketAdapter,
    "pricecharting": PriceChartingAdapter,
    "justtcg": JustTCGAdapter,
    "mercari": MercariAdapter,
    "snkrdunk": SnkrdunkAdapter,
}


def register_adapter(source: str, adapter_class: type[PriceAdapter]) -> None:
    """Add or replace a source. The class must subclass PriceAdapter."""
    if not issubclass(adapter_class, PriceAdapter):
        raise ValueError(f"Adapter class must inherit from PriceAdapter: {adapter_class}")
    ADAPTER_REGISTRY[source] = adapter_class
    logger.info("adapter_registered", source=source, kind=adapter_class.kind.value)


def build_adapters(
    sources: Iterable[str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, PriceAdapter]:
    """
    Instantiate one adapter per registered source.

    Args:
        sources: Subset of source ids; None builds every registered source.
        client: Optional shared HTTP client. Adapters do not close an
            injected client.

    Raises:
        ValueError: An unknown source id was requested.
    """
    wanted = list(ADAPTER_REGISTRY) if sources is None else list(sources)
    unknown = [s for s in wanted if s not in ADAPTER_REGISTRY]
    if unknown:
        raise ValueError(f"Unknown price sources: {', '.join(unknown)}")

    adapters = {source: ADAPTER_REGISTRY[source](client=client) for source in wanted}
    logger.info(
        "adapters_built",
        sources=wanted,
        active=[s for s, a in adapters.items() if a.is_active()],
    )
    return adapters
