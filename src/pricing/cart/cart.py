"""Cart aggregate: the lines a customer is buying and their computed totals.

Customers own the lines (price, quantity, addresses, coupon); the pricing
pipeline owns the computed fields (``discount_total``, ``shipping_total``,
``tax_total``, ``grand_total`` and the per-line ``discount_amount`` /
``tax_amount``), written back in one step by ``apply_totals``.
"""

import json
from datetime import UTC, datetime

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Decimal,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from pricing.cart.events import (
    CartAddressChanged,
    CartCreated,
    CartLineAdded,
    CartLineRemoved,
    CartLineUpdated,
    CartRecalculated,
    CouponApplied,
    CouponRemoved,
    ShippingMethodSelected,
    TaxExemptionChanged,
)
from pricing.discount.discount import normalize_code
from pricing.domain import pricing
from pricing.shared.address import Address
from pricing.shared.money import ZERO, round_money, to_decimal
from pricing.shared.snapshot import CartSnapshot, LineSnapshot
from pricing.shared.zones import dump_list, load_list


@pricing.entity(part_of="Cart")
class CartLine:
    product_id = Identifier(required=True)
    variant_id = Identifier()
    name = String(max_length=255)
    sku = String(max_length=100)
    unit_price = Decimal(required=True, min_value=0)
    quantity = Integer(required=True, min_value=1)
    line_total = Decimal(default=0)
    category_ids = Text()  # JSON array
    tax_class = String(max_length=50)
    weight = Decimal(default=0, min_value=0)  # Per unit
    discount_amount = Decimal(default=0)
    tax_amount = Decimal(default=0)
    added_at = DateTime()

    def refresh_total(self):
        self.line_total = round_money(to_decimal(self.unit_price) * self.quantity)


@pricing.aggregate
class Cart:
    customer_id = Identifier()  # Nullable for guest carts
    session_id = String(max_length=255)
    currency = String(max_length=3, default="USD")
    lines = HasMany(CartLine)
    coupon_code = String(max_length=50)
    shipping_address = ValueObject(Address)
    billing_address = ValueObject(Address)
    selected_shipping_method_id = Identifier()
    shipping_method_name = String(max_length=200)
    is_tax_exempt = Boolean(default=False)
    tax_exemption_number = String(max_length=100)

    # Computed by the pricing pipeline
    subtotal = Decimal(default=0)
    discount_total = Decimal(default=0)
    shipping_total = Decimal(default=0)
    shipping_tax = Decimal(default=0)
    tax_total = Decimal(default=0)
    grand_total = Decimal(default=0)
    applied_discounts = Text()  # JSON array of discount calculations
    tax_breakdown = Text()  # JSON array of jurisdiction amounts

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def line_totals_must_match_price_and_quantity(self):
        for line in self.lines:
            if to_decimal(line.line_total) != round_money(to_decimal(line.unit_price) * line.quantity):
                raise ValidationError({"lines": [f"Line {line.id} total does not match unit price x quantity"]})

    @invariant.post
    def discount_cannot_exceed_subtotal(self):
        if to_decimal(self.discount_total) > to_decimal(self.subtotal):
            raise ValidationError({"discount_total": ["Discount total cannot exceed subtotal"]})

    @invariant.post
    def grand_total_must_balance(self):
        expected = (
            to_decimal(self.subtotal)
            - to_decimal(self.discount_total)
            + to_decimal(self.shipping_total)
            + to_decimal(self.tax_total)
        )
        if round_money(expected) != round_money(self.grand_total):
            raise ValidationError(
                {"grand_total": ["Grand total must equal subtotal - discounts + shipping + tax"]}
            )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, customer_id=None, session_id=None, currency="USD"):
        now = datetime.now(UTC)
        cart = cls(
            customer_id=customer_id,
            session_id=session_id,
            currency=currency,
            applied_discounts=json.dumps([]),
            tax_breakdown=json.dumps([]),
            created_at=now,
            updated_at=now,
        )
        cart.raise_(
            CartCreated(
                cart_id=str(cart.id),
                customer_id=customer_id,
                session_id=session_id,
                currency=cart.currency,
            )
        )
        return cart

    # -------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------
    def find_line(self, line_id):
        line = next((line for line in self.lines if str(line.id) == str(line_id)), None)
        if line is None:
            raise ValidationError({"line_id": ["Line not found in cart"]})
        return line

    def add_line(
        self,
        product_id,
        unit_price,
        quantity,
        variant_id=None,
        name=None,
        sku=None,
        category_ids=None,
        tax_class=None,
        weight=None,
    ):
        """Add a line, or increase the quantity of the line with the same product and variant."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        existing = next(
            (
                line
                for line in self.lines
                if str(line.product_id) == str(product_id) and str(line.variant_id or "") == str(variant_id or "")
            ),
            None,
        )

        now = datetime.now(UTC)
        with atomic_change(self):
            if existing is not None:
                existing.quantity += quantity
                existing.refresh_total()
                line = existing
            else:
                line = CartLine(
                    product_id=product_id,
                    variant_id=variant_id,
                    name=name,
                    sku=sku,
                    unit_price=to_decimal(unit_price),
                    quantity=quantity,
                    line_total=round_money(to_decimal(unit_price) * quantity),
                    category_ids=dump_list(category_ids),
                    tax_class=tax_class,
                    weight=to_decimal(weight),
                    added_at=now,
                )
                self.add_lines(line)
            self.updated_at = now

        self.raise_(
            CartLineAdded(
                cart_id=str(self.id),
                line_id=str(line.id),
                product_id=str(product_id),
                variant_id=str(variant_id) if variant_id else None,
                quantity=quantity,
                unit_price=to_decimal(line.unit_price),
            )
        )
        return str(line.id)

    def update_line(self, line_id, quantity):
        """Change a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_line(line_id)
            return

        line = self.find_line(line_id)
        previous_quantity = line.quantity
        with atomic_change(self):
            line.quantity = quantity
            line.refresh_total()
            self.updated_at = datetime.now(UTC)

        self.raise_(
            CartLineUpdated(
                cart_id=str(self.id),
                line_id=str(line.id),
                previous_quantity=previous_quantity,
                new_quantity=quantity,
            )
        )

    def remove_line(self, line_id):
        line = self.find_line(line_id)
        self.remove_lines(line)
        self.updated_at = datetime.now(UTC)
        self.raise_(CartLineRemoved(cart_id=str(self.id), line_id=str(line_id)))

    # -------------------------------------------------------------------
    # Coupon management
    # -------------------------------------------------------------------
    def apply_coupon(self, coupon_code):
        """Store a coupon code. Validation happens before this is called."""
        code = normalize_code(coupon_code)
        if not code:
            raise ValidationError({"coupon_code": ["Coupon code is required"]})
        self.coupon_code = code
        self.updated_at = datetime.now(UTC)
        self.raise_(CouponApplied(cart_id=str(self.id), coupon_code=code))

    def remove_coupon(self):
        if not self.coupon_code:
            return
        code = self.coupon_code
        self.coupon_code = None
        self.updated_at = datetime.now(UTC)
        self.raise_(CouponRemoved(cart_id=str(self.id), coupon_code=code))

    # -------------------------------------------------------------------
    # Addresses, shipping and tax status
    # -------------------------------------------------------------------
    def set_shipping_address(self, address: Address):
        self.shipping_address = address
        self.updated_at = datetime.now(UTC)
        self._address_changed("shipping", address)

    def set_billing_address(self, address: Address):
        self.billing_address = address
        self.updated_at = datetime.now(UTC)
        self._address_changed("billing", address)

    def _address_changed(self, address_type, address):
        self.raise_(
            CartAddressChanged(
                cart_id=str(self.id),
                address_type=address_type,
                country=address.country,
                state=address.state,
                postal_code=address.postal_code,
            )
        )

    def select_shipping_method(self, method_id, method_name=None):
        self.selected_shipping_method_id = method_id
        self.shipping_method_name = method_name
        self.updated_at = datetime.now(UTC)
        self.raise_(
            ShippingMethodSelected(
                cart_id=str(self.id),
                shipping_method_id=str(method_id),
                shipping_method_name=method_name,
            )
        )

    def set_tax_exemption(self, is_tax_exempt, tax_exemption_number=None):
        self.is_tax_exempt = is_tax_exempt
        self.tax_exemption_number = tax_exemption_number if is_tax_exempt else None
        self.updated_at = datetime.now(UTC)
        self.raise_(
            TaxExemptionChanged(
                cart_id=str(self.id),
                is_tax_exempt=is_tax_exempt,
                tax_exemption_number=self.tax_exemption_number,
            )
        )

    # -------------------------------------------------------------------
    # Pricing
    # -------------------------------------------------------------------
    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def applied_discount_entries(self) -> list[dict]:
        return json.loads(self.applied_discounts) if self.applied_discounts else []

    @property
    def tax_breakdown_entries(self) -> list[dict]:
        return json.loads(self.tax_breakdown) if self.tax_breakdown else []

    def snapshot(self) -> CartSnapshot:
        """Immutable copy of everything the pricing engines read."""
        return CartSnapshot(
            lines=tuple(
                LineSnapshot(
                    id=str(line.id),
                    product_id=str(line.product_id),
                    variant_id=str(line.variant_id) if line.variant_id else None,
                    unit_price=to_decimal(line.unit_price),
                    quantity=line.quantity,
                    category_ids=tuple(load_list(line.category_ids)),
                    tax_class=line.tax_class,
                    weight=to_decimal(line.weight),
                )
                for line in self.lines
            ),
            currency=self.currency,
            cart_id=str(self.id),
            customer_id=str(self.customer_id) if self.customer_id else None,
            coupon_code=self.coupon_code,
            shipping_address=self.shipping_address,
            billing_address=self.billing_address,
            shipping_method_id=str(self.selected_shipping_method_id) if self.selected_shipping_method_id else None,
            is_tax_exempt=bool(self.is_tax_exempt),
            tax_exemption_number=self.tax_exemption_number,
        )

    def apply_totals(self, totals):
        """Write a ``CartTotals`` result back onto the cart and its lines."""
        with atomic_change(self):
            for line in self.lines:
                line.discount_amount = totals.line_discounts.get(str(line.id), ZERO)
                line.tax_amount = totals.line_taxes.get(str(line.id), ZERO)
            self.subtotal = totals.subtotal
            self.discount_total = totals.discount_total
            self.shipping_total = totals.shipping_total
            self.shipping_tax = totals.shipping_tax
            self.tax_total = totals.tax_total
            self.grand_total = totals.grand_total
            self.applied_discounts = json.dumps([c.to_payload() for c in totals.applied_discounts])
            self.tax_breakdown = json.dumps([b.to_payload() for b in totals.tax_breakdown])
            self.updated_at = datetime.now(UTC)

        self.raise_(
            CartRecalculated(
                cart_id=str(self.id),
                currency=self.currency,
                subtotal=totals.subtotal,
                discount_total=totals.discount_total,
                shipping_total=totals.shipping_total,
                tax_total=totals.tax_total,
                grand_total=totals.grand_total,
            )
        )
