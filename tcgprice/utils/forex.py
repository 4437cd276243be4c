"""
TCG Price Aggregator - Currency Normalization

Crawled Japanese marketplaces quote JPY, Cardmarket quotes EUR and the
US APIs quote USD. Before per-platform prices are combined they are
brought into one currency through USD cross rates taken from settings.

All money values use Decimal, never float.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog

from tcgprice.config import settings

logger = structlog.get_logger(__name__)


class UnsupportedCurrency(ValueError):
    """No USD cross rate is configured for this currency."""


def usd_rate(currency: str) -> Decimal:
    """
    Value of one unit of `currency` in USD.

    Raises:
        UnsupportedCurrency: If no rate is configured.
    """
    code = currency.upper()
    rates = {
        "USD": Decimal("1"),
        "EUR": settings.EUR_USD_RATE,
        "JPY": settings.JPY_USD_RATE,
    }
    if code not in rates:
        raise UnsupportedCurrency(f"no USD rate configured for {currency!r}")
    return rates[code]


def convert(amount: Decimal, from_currency: str, to_currency: str) -> Decimal:
    """
    Convert `amount` between currencies, rounded half up to cents.

    Examples:
        >>> convert(Decimal("100"), "EUR", "USD")
        Decimal('108.00')
    """
    if amount < Decimal("0"):
        raise ValueError(f"amount must be non-negative, got {amount}")

    if from_currency.upper() == to_currency.upper():
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    rate = usd_rate(from_currency) / usd_rate(to_currency)
    result = (amount * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    logger.debug(
        "forex_convert",
        amount=str(amount),
        from_currency=from_currency,
        to_currency=to_currency,
        rate=str(rate),
        result=str(result),
    )
    return result
