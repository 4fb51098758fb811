"""Price a cart described by a plain document, without any stored state.

The document carries the cart and every piece of configuration it is priced
against::

    {
      "cart": {"currency": "USD", "coupon_code": "SAVE10",
               "shipping_address": {"country": "US", "state": "CA"},
               "shipping_method_id": "m-1",
               "lines": [{"id": "a", "product_id": "p-1", "unit_price": "10.00", "quantity": 2}]},
      "discounts": [...],
      "coupon_usage_count": 0,
      "tax": {"categories": [...], "zones": [...], "rates": [...]},
      "shipping": {"zones": [...], "methods": [...], "rates": [...]}
    }

Configuration records use the aggregate field names; zone lists are plain
JSON arrays. Records referenced by id (zones, categories, methods) need an
explicit ``id``.
"""

from datetime import datetime

from pricing.cart.recalculation import CartTotals, price_cart
from pricing.discount.discount import Discount, normalize_code
from pricing.shared.address import Address
from pricing.shared.money import to_decimal
from pricing.shared.snapshot import CartSnapshot, LineSnapshot
from pricing.shared.zones import ZONE_LIST_FIELDS, dump_list
from pricing.shipping.engine import ShippingConfiguration
from pricing.shipping.method import ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone
from pricing.tax.category import TaxCategory
from pricing.tax.engine import TaxConfiguration
from pricing.tax.rate import TaxRate
from pricing.tax.zone import TaxZone

LIST_FIELDS = {*ZONE_LIST_FIELDS, "applicable_product_ids", "applicable_category_ids"}


def _build(cls, record: dict):
    values = {key: dump_list(value) if key in LIST_FIELDS else value for key, value in record.items()}
    return cls(**values)


def _address(data):
    return Address.build(**data) if data else None


def load_snapshot(data: dict) -> CartSnapshot:
    lines = tuple(
        LineSnapshot(
            id=str(line.get("id") or index),
            product_id=str(line["product_id"]),
            variant_id=line.get("variant_id"),
            unit_price=to_decimal(line["unit_price"]),
            quantity=int(line.get("quantity", 1)),
            category_ids=tuple(str(c) for c in line.get("category_ids") or ()),
            tax_class=line.get("tax_class"),
            weight=to_decimal(line.get("weight")),
        )
        for index, line in enumerate(data.get("lines", []), start=1)
    )
    return CartSnapshot(
        lines=lines,
        currency=data.get("currency", "USD"),
        cart_id=data.get("id"),
        customer_id=data.get("customer_id"),
        coupon_code=normalize_code(data.get("coupon_code")),
        shipping_address=_address(data.get("shipping_address")),
        billing_address=_address(data.get("billing_address")),
        shipping_method_id=data.get("shipping_method_id"),
        is_tax_exempt=bool(data.get("is_tax_exempt", False)),
        tax_exemption_number=data.get("tax_exemption_number"),
    )


def load_tax(data: dict) -> TaxConfiguration:
    return TaxConfiguration(
        zones=tuple(_build(TaxZone, r) for r in data.get("zones", [])),
        categories=tuple(_build(TaxCategory, r) for r in data.get("categories", [])),
        rates=tuple(_build(TaxRate, r) for r in data.get("rates", [])),
    )


def load_shipping(data: dict) -> ShippingConfiguration:
    return ShippingConfiguration(
        zones=tuple(_build(ShippingZone, r) for r in data.get("zones", [])),
        methods=tuple(_build(ShippingMethod, r) for r in data.get("methods", [])),
        rates=tuple(_build(ShippingRate, r) for r in data.get("rates", [])),
    )


def quote(document: dict, now: datetime | None = None) -> CartTotals:
    snapshot = load_snapshot(document.get("cart", {}))
    discounts = [_build(Discount, r) for r in document.get("discounts", [])]

    coupon = None
    if snapshot.coupon_code:
        coupon = next((d for d in discounts if normalize_code(d.code) == snapshot.coupon_code), None)

    return price_cart(
        snapshot,
        automatic_discounts=[d for d in discounts if not d.code],
        coupon=coupon,
        coupon_usage_count=int(document.get("coupon_usage_count", 0)),
        shipping=load_shipping(document.get("shipping", {})),
        tax=load_tax(document.get("tax", {})),
        now=now,
    )
