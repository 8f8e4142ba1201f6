"""
Tests for the currency registry.

- Codes are validated at the domain boundary and normalized to upper case.
- Rounding precision comes from the currency, never a fixed constant.
"""

from decimal import ROUND_HALF_UP, Decimal

import pytest

from pos_kernel.domain.currency import CurrencyRegistry
from pos_kernel.domain.values import Currency


class TestCurrencyRegistry:

    def test_known_codes(self):
        for code in ["BDT", "INR", "USD", "EUR", "JPY"]:
            assert CurrencyRegistry.is_valid(code)
            assert CurrencyRegistry.validate(code) == code

    def test_normalization(self):
        assert CurrencyRegistry.validate(" bdt ") == "BDT"

    @pytest.mark.parametrize("code", ["", "BD", "BDTT", "XYZ", None])
    def test_invalid_codes(self, code):
        with pytest.raises(ValueError):
            CurrencyRegistry.validate(code)

    def test_precision(self):
        assert CurrencyRegistry.get_decimal_places("BDT") == 2
        assert CurrencyRegistry.get_decimal_places("JPY") == 0
        assert CurrencyRegistry.get_minor_unit("OMR") == Decimal("0.001")

    def test_minor_unit_quantizes_to_precision(self):
        bdt = CurrencyRegistry.get_info("BDT").minor_unit
        jpy = CurrencyRegistry.get_info("JPY").minor_unit

        assert str(Decimal("12.345").quantize(bdt, rounding=ROUND_HALF_UP)) == "12.35"
        assert str(Decimal("7").quantize(bdt)) == "7.00"
        assert str(Decimal("12.6").quantize(jpy, rounding=ROUND_HALF_UP)) == "13"


class TestCurrencyValue:

    def test_symbol(self):
        assert Currency("BDT").symbol == "৳"

    def test_equality_after_normalization(self):
        assert Currency("bdt") == Currency("BDT")

    def test_invalid(self):
        with pytest.raises(ValueError):
            Currency("ZZZ")
