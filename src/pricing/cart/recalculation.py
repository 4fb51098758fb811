"""Cart recalculation: one pass through shipping, discounts and tax.

``price_cart`` is the pure pipeline over a ``CartSnapshot`` and configuration
snapshots. The strict order is subtotal, shipping, discounts, tax, grand
total. Shipping is finalized first so a FreeShipping discount sees the real
shipping cost.

``recalculate`` is the persistence-facing wrapper used by cart command
handlers: it loads configuration, runs ``price_cart`` and writes the result
back onto the cart aggregate.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

import structlog
from protean.utils.globals import current_domain

from pricing.discount.discount import Discount
from pricing.discount.engine import (
    CouponValidation,
    DiscountCalculation,
    calculate_cart_discounts,
    validate_coupon,
)
from pricing.discount.usage import DiscountUsage
from pricing.shared.money import ZERO, Money
from pricing.shared.snapshot import CartSnapshot
from pricing.shared.timestamps import utc_now
from pricing.shipping.engine import (
    AvailableShippingMethod,
    ShipmentRequest,
    ShippingConfiguration,
    ShippingCostResult,
    calculate_shipping_cost,
    get_shipping_options,
)
from pricing.shipping.repository import load_shipping_configuration
from pricing.tax.engine import TaxableItem, TaxBreakdown, TaxConfiguration, calculate_order_tax
from pricing.tax.repository import load_tax_configuration

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CartTotals:
    currency: str
    subtotal: Decimal = ZERO
    discount_total: Decimal = ZERO
    shipping_total: Decimal = ZERO
    shipping_tax: Decimal = ZERO
    tax_total: Decimal = ZERO
    grand_total: Decimal = ZERO
    applied_discounts: tuple[DiscountCalculation, ...] = ()
    tax_breakdown: tuple[TaxBreakdown, ...] = ()
    line_discounts: dict[str, Decimal] = field(default_factory=dict)
    line_taxes: dict[str, Decimal] = field(default_factory=dict)
    shipping_result: ShippingCostResult | None = None
    coupon_validation: CouponValidation | None = None

    @property
    def coupon_dropped(self) -> bool:
        return self.coupon_validation is not None and not self.coupon_validation.is_valid

    def to_payload(self) -> dict:
        return {
            "currency": self.currency,
            "subtotal": str(self.subtotal),
            "discount_total": str(self.discount_total),
            "shipping_total": str(self.shipping_total),
            "shipping_tax": str(self.shipping_tax),
            "tax_total": str(self.tax_total),
            "grand_total": str(self.grand_total),
            "applied_discounts": [c.to_payload() for c in self.applied_discounts],
            "tax_breakdown": [b.to_payload() for b in self.tax_breakdown],
            "lines": [
                {
                    "line_id": line_id,
                    "discount_amount": str(self.line_discounts.get(line_id, ZERO)),
                    "tax_amount": str(self.line_taxes.get(line_id, ZERO)),
                }
                for line_id in self.line_discounts
            ],
        }


def shipment_for(snapshot: CartSnapshot) -> ShipmentRequest:
    return ShipmentRequest(
        address=snapshot.shipping_address,
        order_total=snapshot.subtotal,
        weight=snapshot.total_weight,
        item_count=snapshot.item_count,
    )


def _price_shipping(snapshot: CartSnapshot, config: ShippingConfiguration) -> ShippingCostResult | None:
    if not snapshot.shipping_method_id or snapshot.shipping_address is None:
        return None

    result = calculate_shipping_cost(config, snapshot.shipping_method_id, shipment_for(snapshot))
    if not result.success:
        logger.warning(
            "Shipping could not be priced, charging zero",
            cart_id=snapshot.cart_id,
            shipping_method_id=snapshot.shipping_method_id,
            reason=result.failure.value,
        )
    return result


def price_cart(
    snapshot: CartSnapshot,
    automatic_discounts: Iterable[Discount] = (),
    coupon: Discount | None = None,
    coupon_usage_count: int = 0,
    shipping: ShippingConfiguration | None = None,
    tax: TaxConfiguration | None = None,
    now: datetime | None = None,
) -> CartTotals:
    """Compute every total of ``snapshot`` without touching storage.

    ``coupon`` is the discount found for ``snapshot.coupon_code`` (None when
    the code is unknown). A coupon that no longer validates is left out of
    the calculation and reported in ``coupon_validation``.
    """
    now = now or utc_now()
    shipping = shipping or ShippingConfiguration()
    tax = tax or TaxConfiguration()

    # 1. Subtotal
    subtotal = snapshot.subtotal

    # 2. Shipping
    shipping_result = _price_shipping(snapshot, shipping)
    shipping_total = shipping_result.cost if shipping_result is not None and shipping_result.success else ZERO
    snapshot = snapshot.with_shipping_total(shipping_total)

    # 3. Discounts
    coupon_validation = None
    if snapshot.coupon_code:
        coupon_validation = validate_coupon(coupon, snapshot, now, coupon_usage_count)
        if not coupon_validation.is_valid:
            logger.info(
                "Coupon no longer valid, excluded from totals",
                cart_id=snapshot.cart_id,
                coupon_code=snapshot.coupon_code,
                reason=coupon_validation.error.value,
            )
    valid_coupon = coupon_validation.discount if coupon_validation and coupon_validation.is_valid else None

    discounts = calculate_cart_discounts(snapshot, automatic_discounts, valid_coupon, now)
    line_discounts = discounts.line_discounts(snapshot.lines)
    snapshot = snapshot.with_line_discounts(line_discounts)

    # 4. Tax
    order_tax = calculate_order_tax(
        tax,
        snapshot.tax_address,
        [
            TaxableItem(item_id=line.id, amount=line.line_total - line.discount_amount, tax_class=line.tax_class)
            for line in snapshot.lines
        ],
        shipping_amount=shipping_total,
        is_tax_exempt=snapshot.is_tax_exempt,
        exemption_number=snapshot.tax_exemption_number,
        now=now,
    )

    # 5. Grand total
    currency = snapshot.currency
    grand_total = (
        Money.of(subtotal, currency)
        .subtract(Money.of(discounts.total_discount, currency))
        .add(Money.of(shipping_total, currency))
        .add(Money.of(order_tax.total_tax, currency))
    )

    return CartTotals(
        currency=currency,
        subtotal=subtotal,
        discount_total=discounts.total_discount,
        shipping_total=shipping_total,
        shipping_tax=order_tax.shipping_tax,
        tax_total=order_tax.total_tax,
        grand_total=grand_total.amount,
        applied_discounts=discounts.applied_discounts,
        tax_breakdown=order_tax.jurisdiction_breakdown,
        line_discounts=line_discounts,
        line_taxes={line.id: order_tax.tax_for(line.id) for line in snapshot.lines},
        shipping_result=shipping_result,
        coupon_validation=coupon_validation,
    )


def coupon_usage_count(discount: Discount | None, customer_id: str | None) -> int:
    if discount is None or not customer_id:
        return 0
    return current_domain.repository_for(DiscountUsage).count_for_customer(discount.id, customer_id)


def recalculate(cart, now: datetime | None = None) -> CartTotals:
    """Price ``cart`` against the stored configuration and write the totals back."""
    snapshot = cart.snapshot()
    discount_repo = current_domain.repository_for(Discount)
    coupon = discount_repo.find_by_code(snapshot.coupon_code) if snapshot.coupon_code else None

    totals = price_cart(
        snapshot,
        automatic_discounts=discount_repo.active_automatic(),
        coupon=coupon,
        coupon_usage_count=coupon_usage_count(coupon, snapshot.customer_id),
        shipping=load_shipping_configuration(),
        tax=load_tax_configuration(),
        now=now,
    )
    cart.apply_totals(totals)

    logger.info(
        "Cart recalculated",
        cart_id=str(cart.id),
        subtotal=str(totals.subtotal),
        discount_total=str(totals.discount_total),
        shipping_total=str(totals.shipping_total),
        tax_total=str(totals.tax_total),
        grand_total=str(totals.grand_total),
    )
    return totals


def shipping_options_for(cart) -> list[AvailableShippingMethod]:
    """Methods available for the cart's shipping address, priced for its current contents."""
    snapshot = cart.snapshot()
    if snapshot.shipping_address is None:
        return []
    return get_shipping_options(load_shipping_configuration(), shipment_for(snapshot))
