"""
TCG Price Aggregator - Currency Normalization Tests

Cross-rate conversion through USD, rounded half up to cents.
All money values use Decimal for financial accuracy (no float rounding).
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest

import tcgprice.utils.forex as forex_module
from tcgprice.utils.forex import UnsupportedCurrency, convert, usd_rate


class TestConvert:
    def test_same_currency_only_rounds(self) -> None:
        assert convert(Decimal("12.345"), "USD", "USD") == Decimal("12.35")

    def test_eur_to_usd_uses_configured_rate(self) -> None:
        with patch.object(forex_module.settings, "EUR_USD_RATE", Decimal("1.08")):
            assert convert(Decimal("100"), "EUR", "USD") == Decimal("108.00")

    def test_jpy_to_usd(self) -> None:
        """¥1,500 at 0.0067 → $10.05."""
        with patch.object(forex_module.settings, "JPY_USD_RATE", Decimal("0.0067")):
            assert convert(Decimal("1500"), "JPY", "USD") == Decimal("10.05")

    def test_cross_rate_eur_to_jpy(self) -> None:
        with patch.object(forex_module.settings, "EUR_USD_RATE", Decimal("1.00")), \
             patch.object(forex_module.settings, "JPY_USD_RATE", Decimal("0.01")):
            assert convert(Decimal("1"), "EUR", "JPY") == Decimal("100.00")

    def test_currency_codes_case_insensitive(self) -> None:
        assert convert(Decimal("5"), "usd", "USD") == Decimal("5.00")

    def test_negative_amount_rejected(self) -> None:
        with pytest.raises(ValueError):
            convert(Decimal("-1"), "USD", "EUR")

    def test_unknown_currency_raises(self) -> None:
        with pytest.raises(UnsupportedCurrency):
            convert(Decimal("1"), "GBP", "USD")


def test_usd_rate_of_usd_is_one() -> None:
    assert usd_rate("USD") == Decimal("1")
