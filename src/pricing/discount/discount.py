"""Discount aggregate: coupons and automatic promotions.

A discount with a ``code`` is a coupon the customer has to enter; one without
a code is evaluated automatically against every cart. The aggregate is
configuration: the pricing engines only read it. ``usage_count`` changes only
through ``record_usage`` after a checkout completes.
"""

import json
from datetime import datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Decimal, Integer, String, Text

from pricing.discount.events import (
    DiscountActivated,
    DiscountCreated,
    DiscountDeactivated,
    DiscountUpdated,
    DiscountUsageRecorded,
)
from pricing.domain import pricing
from pricing.shared.money import HUNDRED, ZERO, round_money, to_decimal
from pricing.shared.timestamps import as_utc, utc_now
from pricing.shared.zones import dump_list, load_list


class DiscountType(Enum):
    PERCENTAGE = "Percentage"
    FIXED_AMOUNT = "FixedAmount"
    FREE_SHIPPING = "FreeShipping"
    BUY_X_GET_Y = "BuyXGetY"


class DiscountScope(Enum):
    CART = "Cart"
    ITEM = "Item"


# Fields an admin may change after creation
EDITABLE_FIELDS = (
    "name",
    "description",
    "value",
    "scope",
    "applicable_product_ids",
    "applicable_category_ids",
    "minimum_order_amount",
    "max_discount_amount",
    "minimum_quantity",
    "maximum_quantity",
    "start_date",
    "end_date",
    "total_usage_limit",
    "per_customer_limit",
    "priority",
)


def normalize_code(code):
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


@pricing.aggregate
class Discount:
    code = String(max_length=50)  # None for automatic discounts
    name = String(required=True, max_length=200)
    description = Text()
    discount_type = String(required=True, choices=DiscountType)
    value = Decimal(default=0, min_value=0)
    scope = String(choices=DiscountScope, default=DiscountScope.CART.value)
    applicable_product_ids = Text()  # JSON array of product ids
    applicable_category_ids = Text()  # JSON array of category ids
    minimum_order_amount = Decimal(min_value=0)
    max_discount_amount = Decimal(min_value=0)
    minimum_quantity = Integer(min_value=1)  # BuyXGetY: buy quantity
    maximum_quantity = Integer(min_value=1)  # BuyXGetY: get quantity
    start_date = DateTime()
    end_date = DateTime()
    total_usage_limit = Integer(min_value=0)
    usage_count = Integer(default=0, min_value=0)
    per_customer_limit = Integer(min_value=0)
    priority = Integer(default=0)
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def name_must_not_be_blank(self):
        if not self.name or not self.name.strip():
            raise ValidationError({"name": ["Discount name is required"]})

    @invariant.post
    def value_must_fit_discount_type(self):
        value = to_decimal(self.value)
        if self.discount_type == DiscountType.PERCENTAGE.value and not (ZERO < value <= HUNDRED):
            raise ValidationError({"value": ["Percentage discount must be between 0 and 100"]})
        if self.discount_type == DiscountType.FIXED_AMOUNT.value and value <= ZERO:
            raise ValidationError({"value": ["Fixed amount discount must be greater than 0"]})

    @invariant.post
    def start_date_must_precede_end_date(self):
        if self.start_date and self.end_date and as_utc(self.start_date) > as_utc(self.end_date):
            raise ValidationError({"end_date": ["End date must be after start date"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        name,
        discount_type,
        value=0,
        code=None,
        applicable_product_ids=None,
        applicable_category_ids=None,
        **settings,
    ):
        now = utc_now()
        discount = cls(
            name=name,
            code=normalize_code(code),
            discount_type=discount_type,
            value=to_decimal(value),
            applicable_product_ids=dump_list(applicable_product_ids),
            applicable_category_ids=dump_list(applicable_category_ids),
            usage_count=0,
            is_active=settings.pop("is_active", True),
            created_at=now,
            updated_at=now,
            **settings,
        )
        discount.raise_(
            DiscountCreated(
                discount_id=str(discount.id),
                name=discount.name,
                code=discount.code,
                discount_type=discount.discount_type,
                value=to_decimal(discount.value),
            )
        )
        return discount

    # -------------------------------------------------------------------
    # Administration
    # -------------------------------------------------------------------
    def update(self, **changes):
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError({"discount": [f"Fields cannot be changed: {', '.join(sorted(unknown))}"]})

        for field_name, value in changes.items():
            if field_name in ("applicable_product_ids", "applicable_category_ids"):
                value = dump_list(value)
            setattr(self, field_name, value)

        self.updated_at = utc_now()
        self.raise_(
            DiscountUpdated(
                discount_id=str(self.id),
                changed_fields=json.dumps(sorted(changes)),
            )
        )

    def activate(self):
        if self.is_active:
            return
        self.is_active = True
        self.updated_at = utc_now()
        self.raise_(DiscountActivated(discount_id=str(self.id)))

    def deactivate(self, reason="Deactivated"):
        if not self.is_active:
            return
        self.is_active = False
        self.updated_at = utc_now()
        self.raise_(DiscountDeactivated(discount_id=str(self.id), reason=reason))

    def record_usage(self, order_id, customer_id=None, amount=ZERO):
        self.usage_count = (self.usage_count or 0) + 1
        self.updated_at = utc_now()
        self.raise_(
            DiscountUsageRecorded(
                discount_id=str(self.id),
                order_id=str(order_id),
                customer_id=str(customer_id) if customer_id else None,
                amount=round_money(amount),
                usage_count=self.usage_count,
            )
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_coupon(self) -> bool:
        return bool(self.code)

    @property
    def product_ids(self) -> frozenset:
        return frozenset(load_list(self.applicable_product_ids))

    @property
    def category_ids(self) -> frozenset:
        return frozenset(load_list(self.applicable_category_ids))

    @property
    def has_restrictions(self) -> bool:
        return bool(self.product_ids or self.category_ids)

    @property
    def is_usage_limit_reached(self) -> bool:
        return self.total_usage_limit is not None and (self.usage_count or 0) >= self.total_usage_limit

    @property
    def remaining_uses(self):
        if self.total_usage_limit is None:
            return None
        return max(self.total_usage_limit - (self.usage_count or 0), 0)

    def has_started(self, now: datetime) -> bool:
        return self.start_date is None or as_utc(self.start_date) <= as_utc(now)

    def is_expired(self, now: datetime) -> bool:
        return self.end_date is not None and as_utc(self.end_date) < as_utc(now)

    def is_currently_valid(self, now: datetime) -> bool:
        return bool(self.is_active) and self.has_started(now) and not self.is_expired(now) and not self.is_usage_limit_reached

    def applies_to(self, line) -> bool:
        """Whether a cart line falls under the product/category restriction."""
        if not self.has_restrictions:
            return True
        if str(line.product_id) in self.product_ids:
            return True
        return any(str(category_id) in self.category_ids for category_id in line.category_ids)
