"""Tax rate aggregate: the rate a zone charges for one tax category."""

from datetime import datetime
from decimal import Decimal as D
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Decimal, Identifier, Integer, String

from pricing.domain import pricing
from pricing.shared.money import HUNDRED, ZERO, to_decimal
from pricing.shared.timestamps import as_utc, within
from pricing.tax.events import TaxRateCreated, TaxRateToggled


class TaxRateType(Enum):
    PERCENTAGE = "Percentage"
    FLAT = "Flat"


@pricing.aggregate
class TaxRate:
    zone_id = Identifier(required=True)
    category_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    rate_type = String(choices=TaxRateType, default=TaxRateType.PERCENTAGE.value)
    rate = Decimal(default=0)
    flat_amount = Decimal()
    is_compound = Boolean(default=False)
    priority = Integer(default=0)  # Lower numbers apply first
    sort_order = Integer(default=0)
    tax_shipping = Boolean(default=False)
    minimum_amount = Decimal()  # No tax below this taxable amount
    maximum_amount = Decimal()  # Taxable base is capped here
    maximum_tax = Decimal()  # Computed tax is capped here
    jurisdiction_type = String(max_length=50)
    jurisdiction_name = String(max_length=200)
    effective_from = DateTime()
    effective_to = DateTime()
    is_active = Boolean(default=True)

    @invariant.post
    def rate_must_be_within_bounds(self):
        rate = to_decimal(self.rate)
        if rate < ZERO:
            raise ValidationError({"rate": ["Tax rate cannot be negative"]})
        if self.rate_type == TaxRateType.PERCENTAGE.value and rate > HUNDRED:
            raise ValidationError({"rate": ["Percentage tax rate cannot exceed 100"]})
        if self.flat_amount is not None and to_decimal(self.flat_amount) < ZERO:
            raise ValidationError({"flat_amount": ["Flat tax amount cannot be negative"]})

    @invariant.post
    def effective_window_must_be_ordered(self):
        if self.effective_from and self.effective_to and as_utc(self.effective_from) > as_utc(self.effective_to):
            raise ValidationError({"effective_to": ["Effective to date must be after effective from date"]})

    @classmethod
    def create(cls, zone_id, category_id, name, rate=0, rate_type=TaxRateType.PERCENTAGE.value, **settings):
        tax_rate = cls(
            zone_id=zone_id,
            category_id=category_id,
            name=name,
            rate=to_decimal(rate),
            rate_type=rate_type,
            **settings,
        )
        tax_rate.raise_(
            TaxRateCreated(
                rate_id=str(tax_rate.id),
                zone_id=str(zone_id),
                category_id=str(category_id),
                rate=to_decimal(tax_rate.rate),
                rate_type=tax_rate.rate_type,
            )
        )
        return tax_rate

    def toggle(self):
        self.is_active = not self.is_active
        self.raise_(TaxRateToggled(rate_id=str(self.id), is_active=self.is_active))

    def is_currently_effective(self, now: datetime) -> bool:
        return within(now, self.effective_from, self.effective_to)

    def calculate_tax(self, taxable_amount: D, previous_tax: D = ZERO) -> D:
        """Tax for ``taxable_amount``, unrounded.

        Order: minimum threshold, base cap, compound base, rate, tax cap.
        """
        taxable_amount = to_decimal(taxable_amount)
        if self.minimum_amount is not None and taxable_amount < to_decimal(self.minimum_amount):
            return ZERO

        base = taxable_amount
        if self.maximum_amount is not None and base > to_decimal(self.maximum_amount):
            base = to_decimal(self.maximum_amount)

        if self.is_compound:
            base += to_decimal(previous_tax)

        if self.rate_type == TaxRateType.PERCENTAGE.value:
            tax = base * to_decimal(self.rate) / HUNDRED
        else:
            tax = to_decimal(self.flat_amount)

        if self.maximum_tax is not None and tax > to_decimal(self.maximum_tax):
            tax = to_decimal(self.maximum_tax)

        return tax
