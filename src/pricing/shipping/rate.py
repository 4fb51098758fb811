"""Shipping rate aggregate: a method's price inside one zone."""

from decimal import Decimal as D

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, Decimal, Identifier, Integer

from pricing.domain import pricing
from pricing.shared.money import ZERO, to_decimal
from pricing.shipping.events import ShippingRateCreated
from pricing.shipping.method import check_ranges, within_limits

OVERRIDE_FIELDS = (
    "flat_rate",
    "weight_base_rate",
    "weight_per_unit_rate",
    "price_percentage",
    "per_item_rate",
    "handling_fee",
    "free_shipping_threshold",
)


@pricing.aggregate
class ShippingRate:
    zone_id = Identifier(required=True)
    method_id = Identifier(required=True)
    is_active = Boolean(default=True)
    sort_order = Integer(default=0)

    # Overrides; None falls back to the method's value
    flat_rate = Decimal()
    weight_base_rate = Decimal()
    weight_per_unit_rate = Decimal()
    price_percentage = Decimal()
    per_item_rate = Decimal()
    handling_fee = Decimal()
    free_shipping_threshold = Decimal()

    min_weight = Decimal()
    max_weight = Decimal()
    min_order_amount = Decimal()
    max_order_amount = Decimal()

    estimated_days_min = Integer(min_value=0)
    estimated_days_max = Integer(min_value=0)

    @invariant.post
    def overrides_must_not_be_negative(self):
        errors = {
            field_name: ["Cannot be negative"]
            for field_name in OVERRIDE_FIELDS
            if getattr(self, field_name) is not None and to_decimal(getattr(self, field_name)) < ZERO
        }
        if errors:
            raise ValidationError(errors)

    @invariant.post
    def thresholds_must_be_ordered(self):
        check_ranges(self, ("min_weight", "max_weight"), ("min_order_amount", "max_order_amount"))

    @classmethod
    def create(cls, zone_id, method_id, **settings):
        rate = cls(zone_id=zone_id, method_id=method_id, **settings)
        rate.raise_(ShippingRateCreated(rate_id=str(rate.id), zone_id=str(zone_id), method_id=str(method_id)))
        return rate

    def meets_requirements(self, order_total: D, weight: D) -> bool:
        return within_limits(weight, self.min_weight, self.max_weight) and within_limits(
            order_total, self.min_order_amount, self.max_order_amount
        )

    def value_for(self, method, field_name: str) -> D | None:
        """The rate's override for ``field_name``, else the method's default."""
        value = getattr(self, field_name)
        if value is None:
            value = getattr(method, field_name)
        return None if value is None else to_decimal(value)

    def delivery_estimate(self, method) -> str | None:
        low = self.estimated_days_min if self.estimated_days_min is not None else method.estimated_days_min
        high = self.estimated_days_max if self.estimated_days_max is not None else method.estimated_days_max
        if low is not None and high is not None:
            if low == high:
                return f"{low} business day{'' if low == 1 else 's'}"
            return f"{low}-{high} business days"
        if low is not None:
            return f"{low}+ business days"
        if high is not None:
            return f"Up to {high} business days"
        return method.delivery_estimate_text
