"""Shipping method aggregate: how a carrier service prices a shipment."""

from decimal import Decimal as D
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Decimal, Integer, String, Text

from pricing.domain import pricing
from pricing.shared.money import HUNDRED, ZERO, to_decimal
from pricing.shipping.events import (
    ShippingMethodActivated,
    ShippingMethodCreated,
    ShippingMethodDeactivated,
)


class CalculationType(Enum):
    FLAT_RATE = "FlatRate"
    WEIGHT_BASED = "WeightBased"
    PRICE_BASED = "PriceBased"
    PER_ITEM = "PerItem"
    FREE_SHIPPING = "FreeShipping"


COST_FIELDS = (
    "flat_rate",
    "weight_base_rate",
    "weight_per_unit_rate",
    "price_percentage",
    "per_item_rate",
    "handling_fee",
    "minimum_cost",
    "maximum_cost",
    "free_shipping_threshold",
)

RESTRICTION_FIELDS = ("min_weight", "max_weight", "min_order_amount", "max_order_amount")


def _optional(value) -> D | None:
    return None if value is None else to_decimal(value)


def check_ranges(record, *pairs):
    """Raise when a configured minimum exceeds its maximum."""
    errors = {}
    for low, high in pairs:
        low_value, high_value = _optional(getattr(record, low)), _optional(getattr(record, high))
        if low_value is not None and high_value is not None and low_value > high_value:
            errors[high] = [f"{high} must be greater than or equal to {low}"]
    if errors:
        raise ValidationError(errors)


def within_limits(value: D, minimum, maximum) -> bool:
    if minimum is not None and value < to_decimal(minimum):
        return False
    if maximum is not None and value > to_decimal(maximum):
        return False
    return True


@pricing.aggregate
class ShippingMethod:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    calculation_type = String(choices=CalculationType, default=CalculationType.FLAT_RATE.value)
    carrier = String(max_length=100)
    sort_order = Integer(default=0)
    is_active = Boolean(default=True)

    # Formula defaults, overridable per zone by ShippingRate
    flat_rate = Decimal()
    weight_base_rate = Decimal()
    weight_per_unit_rate = Decimal()
    weight_unit = String(max_length=10, default="kg")
    price_percentage = Decimal()
    per_item_rate = Decimal()
    handling_fee = Decimal()
    minimum_cost = Decimal()
    maximum_cost = Decimal()
    free_shipping_threshold = Decimal()

    # Eligibility
    min_weight = Decimal()
    max_weight = Decimal()
    min_order_amount = Decimal()
    max_order_amount = Decimal()

    estimated_days_min = Integer(min_value=0)
    estimated_days_max = Integer(min_value=0)
    delivery_estimate_text = String(max_length=100)

    @invariant.post
    def costs_must_not_be_negative(self):
        errors = {
            field_name: ["Cannot be negative"]
            for field_name in COST_FIELDS + RESTRICTION_FIELDS
            if getattr(self, field_name) is not None and to_decimal(getattr(self, field_name)) < ZERO
        }
        if errors:
            raise ValidationError(errors)

    @invariant.post
    def price_percentage_must_be_a_percentage(self):
        if self.price_percentage is not None and to_decimal(self.price_percentage) > HUNDRED:
            raise ValidationError({"price_percentage": ["Price percentage must be between 0 and 100"]})

    @invariant.post
    def limits_must_be_ordered(self):
        check_ranges(
            self,
            ("min_weight", "max_weight"),
            ("min_order_amount", "max_order_amount"),
            ("minimum_cost", "maximum_cost"),
            ("estimated_days_min", "estimated_days_max"),
        )

    @classmethod
    def create(cls, code, name, calculation_type=CalculationType.FLAT_RATE.value, **settings):
        method = cls(code=code.strip().upper(), name=name, calculation_type=calculation_type, **settings)
        method.raise_(
            ShippingMethodCreated(
                method_id=str(method.id),
                code=method.code,
                name=method.name,
                calculation_type=method.calculation_type,
            )
        )
        return method

    def activate(self):
        if self.is_active:
            return
        self.is_active = True
        self.raise_(ShippingMethodActivated(method_id=str(self.id)))

    def deactivate(self):
        if not self.is_active:
            return
        self.is_active = False
        self.raise_(ShippingMethodDeactivated(method_id=str(self.id)))

    @property
    def display_name(self) -> str:
        if self.delivery_estimate_text:
            return f"{self.name} ({self.delivery_estimate_text})"
        return self.name

    def meets_restrictions(self, order_total: D, weight: D) -> bool:
        return within_limits(weight, self.min_weight, self.max_weight) and within_limits(
            order_total, self.min_order_amount, self.max_order_amount
        )
