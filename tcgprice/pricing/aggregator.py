"""
TCG Price Aggregator - Cross-Platform Aggregation

Platforms are weighted equally: the overall average is the mean of the
per-platform averages, not a mean over every raw listing. The overall
range is the widest range any platform reported.
"""

from __future__ import annotations

from collections.abc import Sequence

import structlog

from tcgprice.config import settings
from tcgprice.errors import NoData
from tcgprice.pricing import AggregatedPriceResult, PriceObservation
from tcgprice.pricing.stats import mean_of, median_of, to_cents
from tcgprice.utils.forex import convert

logger = structlog.get_logger(__name__)


def aggregate(
    observations: Sequence[PriceObservation],
    currency: str | None = None,
) -> AggregatedPriceResult:
    """
    Combine per-platform observations into one summary.

    Args:
        observations: One observation per contributing platform.
        currency: Target currency (defaults to settings.DEFAULT_CURRENCY).

    Returns:
        AggregatedPriceResult whose platforms_used lists exactly the
        platforms in `observations`, in order.

    Raises:
        NoData: If `observations` is empty.
    """
    if not observations:
        raise NoData()

    target = currency or settings.DEFAULT_CURRENCY

    averages = []
    mins = []
    maxes = []
    for obs in observations:
        averages.append(convert(obs.average, obs.currency, target))
        mins.append(convert(obs.min, obs.currency, target))
        maxes.append(convert(obs.max, obs.currency, target))

    result = AggregatedPriceResult(
        average=to_cents(mean_of(averages)),
        median=to_cents(median_of(averages)),
        min=min(mins),
        max=max(maxes),
        currency=target,
        platforms={obs.platform: obs for obs in observations},
        platforms_used=[obs.platform for obs in observations],
        total_results=len(observations),
    )

    logger.info(
        "prices_aggregated",
        platforms=result.platforms_used,
        average=str(result.average),
        median=str(result.median),
        min=str(result.min),
        max=str(result.max),
        currency=target,
        fallback_included=result.has_fallback,
    )
    return result
