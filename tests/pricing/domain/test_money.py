"""Tests for decimal coercion, the rounding policy and the Money value object."""

from decimal import Decimal

import pytest
from protean.exceptions import ValidationError

from pricing.shared.money import Money, round_currency, round_money, to_decimal


class TestToDecimal:
    def test_none_is_zero(self):
        assert to_decimal(None) == Decimal("0")

    def test_float_avoids_binary_round_trip(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_string_and_int(self):
        assert to_decimal("19.99") == Decimal("19.99")
        assert to_decimal(5) == Decimal("5")


class TestRounding:
    def test_round_money_keeps_four_places(self):
        assert round_money(Decimal("1.23456")) == Decimal("1.2346")

    def test_ties_round_half_up(self):
        assert round_money(Decimal("1.00005")) == Decimal("1.0001")

    def test_negative_ties_round_away_from_zero(self):
        assert round_money(Decimal("-1.00005")) == Decimal("-1.0001")

    def test_round_currency_keeps_two_places(self):
        assert round_currency(Decimal("2.345")) == Decimal("2.35")
        assert str(round_currency(75)) == "75.00"


class TestMoney:
    def test_of_rounds_amount(self):
        money = Money.of(Decimal("10.123456"), "USD")
        assert money.amount == Decimal("10.1235")
        assert money.currency == "USD"

    def test_add_and_subtract(self):
        total = Money.of(100).subtract(Money.of(10)).add(Money.of("5.99"))
        assert total.amount == Decimal("95.99")

    def test_multiply(self):
        assert Money.of("19.99").multiply(3).amount == Decimal("59.97")

    def test_minimum(self):
        assert Money.of(5).minimum(Money.of(7)).amount == Decimal("5")

    def test_zero(self):
        assert Money.zero("EUR").is_zero()

    def test_currency_mismatch_rejected(self):
        with pytest.raises(ValidationError) as exc:
            Money.of(1, "USD").add(Money.of(1, "EUR"))
        assert "currency" in exc.value.messages

    def test_unknown_currency_rejected(self):
        with pytest.raises(ValidationError):
            Money.of(1, "XXX")

    def test_str_shows_two_places(self):
        assert str(Money.of("3.5", "GBP")) == "3.50 GBP"
