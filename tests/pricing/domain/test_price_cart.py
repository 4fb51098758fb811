"""End-to-end pricing of cart snapshots: shipping, discounts, tax and grand total."""

from dataclasses import replace
from decimal import Decimal

import pytest

from pricing.cart.quote import quote
from pricing.cart.recalculation import price_cart
from pricing.discount.discount import Discount
from pricing.discount.engine import CouponError
from pricing.shared.snapshot import CartSnapshot
from pricing.shipping.engine import ShippingConfiguration, ShippingFailure
from pricing.shipping.method import ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone
from pricing.tax.category import TaxCategory
from pricing.tax.engine import TaxConfiguration
from pricing.tax.rate import TaxRate
from pricing.tax.zone import TaxZone


@pytest.fixture()
def tax_config():
    zone = TaxZone.create("us-ca", "California", states=["US-CA"])
    standard = TaxCategory.create("standard", "Standard")
    standard.mark_default()
    rate = TaxRate.create(str(zone.id), str(standard.id), "CA Sales Tax", rate=10, tax_shipping=True)
    return TaxConfiguration(zones=(zone,), categories=(standard,), rates=(rate,))


@pytest.fixture()
def standard_shipping():
    return ShippingMethod.create(
        "standard", "Standard", flat_rate=Decimal("5.99"), free_shipping_threshold=Decimal("75")
    )


@pytest.fixture()
def shipping_config(standard_shipping):
    zone = ShippingZone.create("domestic", "Domestic", countries=["US"])
    rate = ShippingRate.create(str(zone.id), str(standard_shipping.id))
    return ShippingConfiguration(zones=(zone,), methods=(standard_shipping,), rates=(rate,))


@pytest.fixture()
def save10():
    return Discount.create("Save 10", "Percentage", value=10, code="SAVE10")


@pytest.fixture()
def snapshot(make_line, california, standard_shipping):
    return CartSnapshot(
        lines=(make_line("a", "10.00", 3), make_line("b", "20.00")),
        cart_id="cart-1",
        customer_id="cust-001",
        coupon_code="SAVE10",
        shipping_address=california,
        shipping_method_id=str(standard_shipping.id),
    )


class TestPriceCart:
    def test_full_pipeline(self, snapshot, save10, shipping_config, tax_config):
        totals = price_cart(snapshot, coupon=save10, shipping=shipping_config, tax=tax_config)

        assert totals.subtotal == Decimal("50")
        assert totals.shipping_total == Decimal("5.99")
        assert totals.discount_total == Decimal("5")
        assert totals.line_discounts == {"a": Decimal("3"), "b": Decimal("2")}
        assert totals.line_taxes == {"a": Decimal("2.7"), "b": Decimal("1.8")}
        assert totals.shipping_tax == Decimal("0.599")
        assert totals.tax_total == Decimal("5.099")
        assert totals.grand_total == Decimal("56.089")
        assert [c.code for c in totals.applied_discounts] == ["SAVE10"]
        assert not totals.coupon_dropped

    def test_grand_total_balances(self, snapshot, save10, shipping_config, tax_config):
        totals = price_cart(snapshot, coupon=save10, shipping=shipping_config, tax=tax_config)
        expected = totals.subtotal - totals.discount_total + totals.shipping_total + totals.tax_total
        assert totals.grand_total == expected

    def test_pricing_is_idempotent(self, snapshot, save10, shipping_config, tax_config):
        first = price_cart(snapshot, coupon=save10, shipping=shipping_config, tax=tax_config)
        second = price_cart(snapshot, coupon=save10, shipping=shipping_config, tax=tax_config)
        assert first.to_payload() == second.to_payload()

    def test_invalid_coupon_is_dropped(self, snapshot, shipping_config, tax_config):
        coupon = Discount.create("Big spender", "Percentage", value=10, code="SAVE10", minimum_order_amount=100)
        totals = price_cart(snapshot, coupon=coupon, shipping=shipping_config, tax=tax_config)

        assert totals.coupon_dropped
        assert totals.coupon_validation.error == CouponError.MINIMUM_NOT_MET
        assert totals.discount_total == 0
        assert totals.applied_discounts == ()

    def test_unknown_coupon_code_is_dropped(self, snapshot, shipping_config, tax_config):
        totals = price_cart(snapshot, coupon=None, shipping=shipping_config, tax=tax_config)
        assert totals.coupon_validation.error == CouponError.INVALID_CODE
        assert totals.discount_total == 0

    def test_free_shipping_coupon_sees_final_shipping(self, snapshot, shipping_config, tax_config):
        coupon = Discount.create("Ship free", "FreeShipping", code="SAVE10")
        totals = price_cart(snapshot, coupon=coupon, shipping=shipping_config, tax=tax_config)

        assert totals.shipping_total == Decimal("5.99")
        assert totals.discount_total == Decimal("5.99")
        assert set(totals.line_discounts.values()) == {Decimal("0")}

    def test_automatic_discount_and_coupon(self, snapshot, save10, shipping_config, tax_config):
        automatic = Discount.create("Five off", "FixedAmount", value=5)
        totals = price_cart(
            snapshot, automatic_discounts=[automatic], coupon=save10, shipping=shipping_config, tax=tax_config
        )
        assert [c.name for c in totals.applied_discounts] == ["Five off", "Save 10"]
        assert totals.discount_total == Decimal("10")

    def test_stacked_line_discounts_never_exceed_their_line(self, make_line, tax_config):
        snapshot = CartSnapshot(lines=(make_line("a", "10.00", product_id="prod-a"), make_line("b", "90.00")))
        automatic = [
            Discount.create("Eight off A", "FixedAmount", value=8, applicable_product_ids=["prod-a"], priority=1),
            Discount.create("Eight more off A", "FixedAmount", value=8, applicable_product_ids=["prod-a"], priority=2),
        ]
        totals = price_cart(snapshot, automatic_discounts=automatic, tax=tax_config)

        assert totals.line_discounts == {"a": Decimal("10"), "b": Decimal("0")}
        assert totals.discount_total == Decimal("10")
        assert totals.grand_total == Decimal("90")

    def test_free_shipping_threshold(self, make_line, california, standard_shipping, shipping_config, tax_config):
        snapshot = CartSnapshot(
            lines=(make_line("a", "80.00"),),
            shipping_address=california,
            shipping_method_id=str(standard_shipping.id),
        )
        totals = price_cart(snapshot, shipping=shipping_config, tax=tax_config)
        assert totals.shipping_total == 0
        assert totals.shipping_result.is_free
        assert totals.grand_total == Decimal("88")

    def test_no_shipping_method(self, snapshot, save10, shipping_config, tax_config):
        totals = price_cart(
            replace(snapshot, shipping_method_id=None), coupon=save10, shipping=shipping_config, tax=tax_config
        )
        assert totals.shipping_total == 0
        assert totals.shipping_result is None
        assert totals.shipping_tax == 0

    def test_unpriceable_shipping_charges_zero(self, snapshot, save10, shipping_config, tax_config):
        totals = price_cart(
            replace(snapshot, shipping_method_id="gone"), coupon=save10, shipping=shipping_config, tax=tax_config
        )
        assert totals.shipping_total == 0
        assert totals.shipping_result.failure == ShippingFailure.METHOD_NOT_FOUND

    def test_tax_exempt_cart(self, snapshot, save10, shipping_config, tax_config):
        totals = price_cart(
            replace(snapshot, is_tax_exempt=True), coupon=save10, shipping=shipping_config, tax=tax_config
        )
        assert totals.tax_total == 0
        assert totals.grand_total == Decimal("50.99")

    def test_empty_cart(self, tax_config):
        totals = price_cart(CartSnapshot(), tax=tax_config)
        assert totals.grand_total == 0
        assert totals.line_discounts == {}

    def test_payload(self, snapshot, save10, shipping_config, tax_config):
        payload = price_cart(snapshot, coupon=save10, shipping=shipping_config, tax=tax_config).to_payload()
        assert payload["grand_total"] == "56.0890"
        assert payload["lines"][0] == {"line_id": "a", "discount_amount": "3.0000", "tax_amount": "2.7000"}
        assert payload["applied_discounts"][0]["type"] == "Percentage"


def _document(**cart_overrides):
    cart = {
        "currency": "USD",
        "coupon_code": "save10",
        "shipping_address": {"country": "US", "state": "CA", "postal_code": "94105"},
        "shipping_method_id": "m-std",
        "lines": [
            {"id": "a", "product_id": "p-a", "unit_price": "10.00", "quantity": 3},
            {"id": "b", "product_id": "p-b", "unit_price": "20.00"},
        ],
    }
    cart.update(cart_overrides)
    return {
        "cart": cart,
        "discounts": [{"name": "Save 10", "code": "SAVE10", "discount_type": "Percentage", "value": "10"}],
        "tax": {
            "zones": [{"id": "z-ca", "code": "US-CA", "name": "California", "states": ["US-CA"]}],
            "categories": [{"id": "c-std", "code": "STANDARD", "name": "Standard", "is_default": True}],
            "rates": [
                {"zone_id": "z-ca", "category_id": "c-std", "name": "CA", "rate": "10", "tax_shipping": True}
            ],
        },
        "shipping": {
            "zones": [{"id": "s-us", "code": "US", "name": "United States", "countries": ["US"]}],
            "methods": [
                {
                    "id": "m-std",
                    "code": "STANDARD",
                    "name": "Standard",
                    "flat_rate": "5.99",
                    "free_shipping_threshold": "75",
                }
            ],
            "rates": [{"zone_id": "s-us", "method_id": "m-std"}],
        },
    }


class TestQuoteDocument:
    def test_quote(self):
        totals = quote(_document())
        assert totals.grand_total == Decimal("56.089")
        assert totals.discount_total == Decimal("5")

    def test_line_ids_default_to_position(self):
        document = _document(lines=[{"product_id": "p-a", "unit_price": "10.00", "quantity": 2}])
        totals = quote(document)
        assert list(totals.line_discounts) == ["1"]

    def test_coupon_usage_count_is_honoured(self):
        document = _document(customer_id="cust-001")
        document["discounts"][0]["per_customer_limit"] = 1
        document["coupon_usage_count"] = 1
        totals = quote(document)
        assert totals.coupon_validation.error == CouponError.CUSTOMER_USAGE_LIMIT
        assert totals.discount_total == 0

    def test_empty_document(self):
        totals = quote({})
        assert totals.grand_total == 0
