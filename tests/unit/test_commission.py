"""Tests for commission arithmetic."""

from decimal import Decimal

import pytest

from referral_ledger.ledger.commission import calculate_commission, to_money
from referral_ledger.ledger.errors import InvalidInputError


class TestCalculateCommission:
    """Commission = purchase * rate / 100, rounded half-up to cents."""

    def test_ten_percent_of_hundred(self):
        assert calculate_commission(Decimal("100"), Decimal("10")) == Decimal("10.00")

    def test_result_has_two_decimal_places(self):
        result = calculate_commission(Decimal("200"), Decimal("10"))
        assert result == Decimal("20.00")
        assert result.as_tuple().exponent == -2

    @pytest.mark.parametrize(
        "amount,rate,expected",
        [
            (Decimal("0.05"), Decimal("10"), Decimal("0.01")),  # 0.005 rounds up
            (Decimal("19.99"), Decimal("15"), Decimal("3.00")),  # 2.9985
            (Decimal("49.99"), Decimal("10"), Decimal("5.00")),  # 4.999
            (Decimal("33.33"), Decimal("12.5"), Decimal("4.17")),  # 4.16625
            (Decimal("0"), Decimal("10"), Decimal("0.00")),
        ],
    )
    def test_half_up_rounding(self, amount, rate, expected):
        assert calculate_commission(amount, rate) == expected

    def test_deterministic(self):
        results = {calculate_commission(Decimal("123.45"), Decimal("7.5")) for _ in range(10)}
        assert results == {Decimal("9.26")}

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_commission(Decimal("-1"), Decimal("10"))

    def test_rate_above_hundred_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_commission(Decimal("100"), Decimal("100.01"))


class TestToMoney:

    def test_quantizes_strings(self):
        assert to_money("12.345") == Decimal("12.35")

    def test_rejects_float(self):
        with pytest.raises(TypeError):
            to_money(0.1)
