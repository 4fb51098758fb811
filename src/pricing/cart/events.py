"""Domain events for the Cart aggregate."""

from protean.fields import Boolean, Decimal, Identifier, Integer, String

from pricing.domain import pricing


@pricing.event(part_of="Cart")
class CartCreated:
    __version__ = 1

    cart_id = Identifier(required=True)
    customer_id = Identifier()
    session_id = String()
    currency = String(required=True)


@pricing.event(part_of="Cart")
class CartLineAdded:
    """A product was added to the cart, or its quantity was increased."""

    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    product_id = Identifier(required=True)
    variant_id = Identifier()
    quantity = Integer(required=True)
    unit_price = Decimal(required=True)


@pricing.event(part_of="Cart")
class CartLineUpdated:
    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)
    previous_quantity = Integer(required=True)
    new_quantity = Integer(required=True)


@pricing.event(part_of="Cart")
class CartLineRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    line_id = Identifier(required=True)


@pricing.event(part_of="Cart")
class CouponApplied:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@pricing.event(part_of="Cart")
class CouponRemoved:
    __version__ = 1

    cart_id = Identifier(required=True)
    coupon_code = String(required=True)


@pricing.event(part_of="Cart")
class CartAddressChanged:
    """A shipping or billing address was set on the cart."""

    __version__ = 1

    cart_id = Identifier(required=True)
    address_type = String(required=True)  # "shipping" or "billing"
    country = String(required=True)
    state = String()
    postal_code = String()


@pricing.event(part_of="Cart")
class ShippingMethodSelected:
    __version__ = 1

    cart_id = Identifier(required=True)
    shipping_method_id = Identifier(required=True)
    shipping_method_name = String()


@pricing.event(part_of="Cart")
class TaxExemptionChanged:
    __version__ = 1

    cart_id = Identifier(required=True)
    is_tax_exempt = Boolean(required=True)
    tax_exemption_number = String()


@pricing.event(part_of="Cart")
class CartRecalculated:
    """Totals were recomputed from the current lines and pricing configuration."""

    __version__ = 1

    cart_id = Identifier(required=True)
    currency = String(required=True)
    subtotal = Decimal(required=True)
    discount_total = Decimal(required=True)
    shipping_total = Decimal(required=True)
    tax_total = Decimal(required=True)
    grand_total = Decimal(required=True)
