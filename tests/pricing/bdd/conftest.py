"""Shared BDD fixtures and step definitions for the Pricing domain."""

from dataclasses import replace
from decimal import Decimal

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then, when

from pricing.cart.cart import Cart
from pricing.cart.events import (
    CartAddressChanged,
    CartLineAdded,
    CartLineRemoved,
    CartLineUpdated,
    CartRecalculated,
    CouponApplied,
    CouponRemoved,
    ShippingMethodSelected,
)
from pricing.cart.recalculation import price_cart
from pricing.discount.discount import Discount
from pricing.shipping.engine import ShippingConfiguration
from pricing.shipping.method import ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone
from pricing.tax.category import TaxCategory
from pricing.tax.engine import TaxConfiguration
from pricing.tax.rate import TaxRate
from pricing.tax.zone import TaxZone

# Map event name strings to classes for dynamic lookup in Then steps
_CART_EVENT_CLASSES = {
    "CartLineAdded": CartLineAdded,
    "CartLineUpdated": CartLineUpdated,
    "CartLineRemoved": CartLineRemoved,
    "CouponApplied": CouponApplied,
    "CouponRemoved": CouponRemoved,
    "CartAddressChanged": CartAddressChanged,
    "ShippingMethodSelected": ShippingMethodSelected,
    "CartRecalculated": CartRecalculated,
}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


@pytest.fixture()
def discounts():
    """Discounts known to the store: automatic ones and coupons by code."""
    return {"automatic": [], "coupons": {}}


@pytest.fixture()
def shipping_config():
    return ShippingConfiguration()


@pytest.fixture()
def tax_config():
    return TaxConfiguration()


# ---------------------------------------------------------------------------
# Given steps: cart
# ---------------------------------------------------------------------------
@given("an active cart", target_fixture="cart")
def active_cart():
    cart = Cart.create(customer_id="cust-001")
    cart._events.clear()
    return cart


@given(parsers.cfparse('the cart has a line for "{product_id}" at {price} x {qty:d}'), target_fixture="cart")
def cart_with_line(cart, product_id, price, qty):
    cart.add_line(product_id=product_id, unit_price=Decimal(price), quantity=qty)
    cart._events.clear()
    return cart


@given(parsers.cfparse('the cart ships to California by "{code}" shipping'), target_fixture="cart")
def cart_ships_to_california(cart, california, shipping_config, code):
    method = next(m for m in shipping_config.methods if m.code == code.upper())
    cart.set_shipping_address(california)
    cart.select_shipping_method(str(method.id), method.name)
    cart._events.clear()
    return cart


@given(parsers.cfparse('the cart is tax exempt with certificate "{number}"'), target_fixture="cart")
def tax_exempt_cart(cart, number):
    cart.set_tax_exemption(True, number)
    cart._events.clear()
    return cart


@given(parsers.cfparse('the coupon "{code}" is on the cart'), target_fixture="cart")
def cart_with_coupon(cart, code):
    cart.apply_coupon(code)
    cart._events.clear()
    return cart


# ---------------------------------------------------------------------------
# Given steps: configuration
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse('"{code}" shipping to the US costs {cost} and is free over {threshold}'),
    target_fixture="shipping_config",
)
def shipping_with_threshold(shipping_config, code, cost, threshold):
    return _add_method(shipping_config, code, flat_rate=Decimal(cost), free_shipping_threshold=Decimal(threshold))


@given(parsers.cfparse('"{code}" shipping to the US is a flat {cost}'), target_fixture="shipping_config")
def shipping_flat(shipping_config, code, cost):
    return _add_method(shipping_config, code, flat_rate=Decimal(cost))


def _add_method(config, code, **formula):
    zones = config.zones or (ShippingZone.create("domestic", "Domestic", countries=["US"]),)
    method = ShippingMethod.create(code, code.title(), **formula)
    rate = ShippingRate.create(str(zones[0].id), str(method.id))
    return replace(config, zones=zones, methods=(*config.methods, method), rates=(*config.rates, rate))


@given(parsers.cfparse("California charges {rate:d}% sales tax"), target_fixture="tax_config")
def california_sales_tax(rate):
    zone = TaxZone.create("us-ca", "California", states=["US-CA"])
    standard = TaxCategory.create("standard", "Standard")
    standard.mark_default()
    sales_tax = TaxRate.create(
        str(zone.id),
        str(standard.id),
        "CA Sales Tax",
        rate=rate,
        tax_shipping=True,
        jurisdiction_type="State",
        jurisdiction_name="California",
    )
    return TaxConfiguration(zones=(zone,), categories=(standard,), rates=(sales_tax,))


@given(parsers.cfparse('a coupon "{code}" takes {value:d}% off'))
def percentage_coupon(discounts, code, value):
    discounts["coupons"][code] = Discount.create(f"{value}% off", "Percentage", value=value, code=code)


@given(parsers.cfparse('a coupon "{code}" takes {value:d}% off orders of {minimum} or more'))
def percentage_coupon_with_minimum(discounts, code, value, minimum):
    discounts["coupons"][code] = Discount.create(
        f"{value}% off", "Percentage", value=value, code=code, minimum_order_amount=Decimal(minimum)
    )


@given(parsers.cfparse('a coupon "{code}" gives free shipping'))
def free_shipping_coupon(discounts, code):
    discounts["coupons"][code] = Discount.create("Free shipping", "FreeShipping", code=code)


@given(parsers.cfparse("every order gets {amount} off"))
def automatic_fixed_discount(discounts, amount):
    discounts["automatic"].append(Discount.create(f"{amount} off", "FixedAmount", value=Decimal(amount)))


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when("the cart is priced", target_fixture="totals")
def price_the_cart(cart, discounts, shipping_config, tax_config):
    """Price the cart the way recalculation does, then write the totals back."""
    snapshot = cart.snapshot()
    totals = price_cart(
        snapshot,
        automatic_discounts=discounts["automatic"],
        coupon=discounts["coupons"].get(snapshot.coupon_code),
        shipping=shipping_config,
        tax=tax_config,
    )
    cart.apply_totals(totals)
    return totals


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(
    parsers.re(r"the (?P<field>subtotal|discount total|shipping total|shipping tax|tax total|grand total) is (?P<amount>[\d.]+)")
)
def total_is(cart, field, amount):
    assert getattr(cart, field.replace(" ", "_")) == Decimal(amount)


@then("the cart action fails with a validation error")
def cart_action_fails(error):
    assert error["exc"] is not None, "Expected a validation error but none was raised"
    assert isinstance(error["exc"], ValidationError)


@then(parsers.cfparse("a {event_type} cart event is raised"))
def cart_event_raised(cart, event_type):
    event_cls = _CART_EVENT_CLASSES[event_type]
    assert any(
        isinstance(e, event_cls) for e in cart._events
    ), f"No {event_type} event found. Events: {[type(e).__name__ for e in cart._events]}"
