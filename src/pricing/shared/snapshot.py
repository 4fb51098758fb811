"""Immutable cart snapshots handed to the pricing engines.

The engines never see the mutable cart aggregate. The orchestrator reads the
cart once into a ``CartSnapshot`` and every calculation in a pass works off
that copy.
"""

from dataclasses import dataclass, replace
from decimal import Decimal

from pricing.shared.money import ZERO, round_money


@dataclass(frozen=True)
class LineSnapshot:
    id: str
    product_id: str
    unit_price: Decimal
    quantity: int
    variant_id: str | None = None
    category_ids: tuple[str, ...] = ()
    tax_class: str | None = None
    weight: Decimal = ZERO
    discount_amount: Decimal = ZERO

    @property
    def line_total(self) -> Decimal:
        return round_money(self.unit_price * self.quantity)

    @property
    def total_weight(self) -> Decimal:
        return (self.weight or ZERO) * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    lines: tuple[LineSnapshot, ...] = ()
    currency: str = "USD"
    cart_id: str | None = None
    customer_id: str | None = None
    coupon_code: str | None = None
    shipping_address: object | None = None
    billing_address: object | None = None
    shipping_method_id: str | None = None
    shipping_total: Decimal = ZERO
    is_tax_exempt: bool = False
    tax_exemption_number: str | None = None

    @property
    def subtotal(self) -> Decimal:
        return round_money(sum((line.line_total for line in self.lines), ZERO))

    @property
    def total_weight(self) -> Decimal:
        return sum((line.total_weight for line in self.lines), ZERO)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def tax_address(self):
        return self.shipping_address or self.billing_address

    def with_shipping_total(self, shipping_total: Decimal) -> "CartSnapshot":
        return replace(self, shipping_total=round_money(shipping_total))

    def with_line_discounts(self, allocations: dict[str, Decimal]) -> "CartSnapshot":
        lines = tuple(
            replace(line, discount_amount=round_money(allocations.get(line.id, ZERO))) for line in self.lines
        )
        return replace(self, lines=lines)
