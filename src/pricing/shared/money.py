"""Money value object and the rounding policy shared by every engine.

All monetary arithmetic uses ``decimal.Decimal``. Amounts are kept at four
fractional digits and rounded half away from zero (``ROUND_HALF_UP`` on
``Decimal`` rounds ties away from zero for negative values too).
"""

from decimal import ROUND_HALF_UP, Decimal

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Decimal as DecimalField
from protean.fields import String

from pricing.domain import pricing

MONEY_PLACES = Decimal("0.0001")
CURRENCY_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

VALID_CURRENCIES = frozenset(
    {
        "USD",
        "EUR",
        "GBP",
        "JPY",
        "CAD",
        "AUD",
        "CHF",
        "CNY",
        "INR",
        "MXN",
        "BRL",
        "KRW",
        "SGD",
        "HKD",
        "NOK",
        "SEK",
        "DKK",
        "NZD",
        "ZAR",
        "TWD",
    }
)


def to_decimal(value) -> Decimal:
    """Coerce ``value`` to ``Decimal`` without a binary float round-trip."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(str(value))


def round_money(value) -> Decimal:
    """Round to the 4-digit storage precision."""
    return to_decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def round_currency(value) -> Decimal:
    """Round to 2 digits for display."""
    return to_decimal(value).quantize(CURRENCY_PLACES, rounding=ROUND_HALF_UP)


@pricing.value_object
class Money:
    """Value object representing a monetary amount with currency."""

    amount: DecimalField(required=True)
    currency: String(max_length=3, default="USD")

    @invariant.post
    def currency_must_be_valid_iso_4217(self):
        if self.currency not in VALID_CURRENCIES:
            raise ValidationError({"currency": [f"Unsupported currency: {self.currency}"]})

    @classmethod
    def of(cls, amount, currency="USD") -> "Money":
        return cls(amount=round_money(amount), currency=currency)

    @classmethod
    def zero(cls, currency="USD") -> "Money":
        return cls(amount=round_money(ZERO), currency=currency)

    def _check_currency(self, other: "Money") -> None:
        if other.currency != self.currency:
            raise ValidationError(
                {"currency": [f"Currency mismatch: {self.currency} and {other.currency} cannot be combined"]}
            )

    def add(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money.of(self.amount + other.amount, self.currency)

    def subtract(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money.of(self.amount - other.amount, self.currency)

    def multiply(self, factor) -> "Money":
        return Money.of(self.amount * to_decimal(factor), self.currency)

    def minimum(self, other: "Money") -> "Money":
        self._check_currency(other)
        return self if self.amount <= other.amount else other

    def is_zero(self) -> bool:
        return self.amount == ZERO

    def __str__(self) -> str:
        return f"{round_currency(self.amount)} {self.currency}"
