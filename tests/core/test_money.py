"""Tests for fixed-point money helpers."""

from decimal import Decimal

import pytest

from core.exceptions import ValidationError
from core.money import ZERO, format_money, quantize_money, sum_money, to_decimal


class TestToDecimal:

    def test_accepts_string_and_int(self):
        assert to_decimal("12.50") == Decimal("12.50")
        assert to_decimal(7) == Decimal("7")

    def test_rejects_float(self):
        """Floats already carry binary rounding error."""
        with pytest.raises(ValidationError, match="float"):
            to_decimal(0.1)

    def test_rejects_bool(self):
        with pytest.raises(ValidationError):
            to_decimal(True)

    @pytest.mark.parametrize("raw", ["abc", "", "NaN", "Infinity"])
    def test_rejects_non_numbers(self, raw):
        with pytest.raises(ValidationError):
            to_decimal(raw)


class TestQuantizeMoney:

    def test_rounds_half_up(self):
        assert quantize_money("2.345") == Decimal("2.35")
        assert quantize_money("2.344") == Decimal("2.34")

    def test_rounds_negative_half_away_from_zero(self):
        assert quantize_money("-2.345") == Decimal("-2.35")

    def test_pads_to_two_places(self):
        assert str(quantize_money(5)) == "5.00"


class TestSumMoney:

    def test_sum_is_exact(self):
        """0.1 + 0.2 is exactly 0.3 in Decimal."""
        assert sum_money(["0.1", "0.2"]) == Decimal("0.3")

    def test_empty_is_zero(self):
        assert sum_money([]) == ZERO


def test_format_money():
    assert format_money(Decimal("1234.5")) == "1234.50"
