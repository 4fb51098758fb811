"""Tests for shipping zone resolution, cost formulas and option listing."""

from decimal import Decimal

import pytest
from protean.exceptions import ValidationError

from pricing.shared.address import Address
from pricing.shipping.engine import (
    ShipmentRequest,
    ShippingConfiguration,
    ShippingFailure,
    calculate_shipping_cost,
    can_ship_to,
    get_shipping_options,
    quote,
)
from pricing.shipping.matcher import zone_for_address
from pricing.shipping.method import ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone


@pytest.fixture()
def domestic():
    return ShippingZone.create("domestic", "Domestic", countries=["US"])


def _standard(**settings):
    values = {"flat_rate": Decimal("5.99"), "free_shipping_threshold": Decimal("75"), "estimated_days_min": 3}
    values.update(settings)
    values.setdefault("estimated_days_max", 5)
    return ShippingMethod.create("standard", "Standard", **values)


def _request(address, order_total=50, weight=0, item_count=1):
    return ShipmentRequest(
        address=address, order_total=Decimal(str(order_total)), weight=Decimal(str(weight)), item_count=item_count
    )


def _config(zone, *pairs):
    methods = tuple(method for method, _ in pairs)
    rates = tuple(ShippingRate.create(str(zone.id), str(method.id), **overrides) for method, overrides in pairs)
    return ShippingConfiguration(zones=(zone,), methods=methods, rates=rates)


class TestCostFormulas:
    def test_flat_rate_below_threshold(self, domestic, california):
        method = _standard()
        result = calculate_shipping_cost(_config(domestic, (method, {})), method.id, _request(california, 50))
        assert result.success
        assert result.cost == Decimal("5.99")
        assert not result.is_free
        assert result.delivery_estimate == "3-5 business days"
        assert result.method_name == "Standard"

    def test_flat_rate_over_threshold(self, domestic, california):
        method = _standard()
        result = calculate_shipping_cost(_config(domestic, (method, {})), method.id, _request(california, 80))
        assert result.cost == 0
        assert result.is_free
        assert result.free_shipping_reason == "Order qualifies for free shipping (over 75.00)"

    def test_weight_based(self, domestic, california):
        method = ShippingMethod.create(
            "ground",
            "Ground",
            calculation_type="WeightBased",
            weight_base_rate=Decimal("4"),
            weight_per_unit_rate=Decimal("1.50"),
        )
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california, weight=Decimal("2.5"))).cost == Decimal("7.75")

    def test_price_based(self, domestic, california):
        method = ShippingMethod.create("insured", "Insured", calculation_type="PriceBased", price_percentage=10)
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california, order_total=120)).cost == Decimal("12")

    def test_per_item(self, domestic, california):
        method = ShippingMethod.create("parcel", "Parcel", calculation_type="PerItem", per_item_rate=2)
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california, item_count=4)).cost == Decimal("8")

    def test_handling_fee(self, domestic, california):
        method = _standard(handling_fee=Decimal("1.01"))
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california)).cost == Decimal("7.00")

    def test_minimum_and_maximum_cost(self, domestic, california):
        method = ShippingMethod.create(
            "parcel",
            "Parcel",
            calculation_type="PerItem",
            per_item_rate=2,
            minimum_cost=5,
            maximum_cost=10,
        )
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california, item_count=1)).cost == Decimal("5")
        assert quote(rate, method, _request(california, item_count=20)).cost == Decimal("10")

    def test_rate_overrides_method(self, domestic, california):
        method = _standard()
        rate = ShippingRate.create(str(domestic.id), str(method.id), flat_rate=Decimal("9.99"))
        assert quote(rate, method, _request(california)).cost == Decimal("9.99")

    def test_rate_threshold_checked_before_method_threshold(self, domestic, california):
        method = _standard()
        rate = ShippingRate.create(str(domestic.id), str(method.id), free_shipping_threshold=Decimal("40"))
        priced = quote(rate, method, _request(california, 50))
        assert priced.is_free
        assert priced.free_shipping_reason == "Order qualifies for free shipping (over 40.00)"

    def test_free_shipping_method(self, domestic, california):
        method = ShippingMethod.create("free", "Free", calculation_type="FreeShipping")
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        priced = quote(rate, method, _request(california))
        assert priced.cost == 0
        assert priced.free_shipping_reason == "Free shipping method"

    def test_free_shipping_method_still_charges_handling(self, domestic, california):
        method = ShippingMethod.create("free", "Free", calculation_type="FreeShipping", handling_fee=Decimal("2"))
        result = calculate_shipping_cost(_config(domestic, (method, {})), method.id, _request(california))
        assert result.cost == Decimal("2")
        assert not result.is_free
        assert result.free_shipping_reason is None

    def test_free_shipping_method_respects_minimum_cost(self, domestic, california):
        method = ShippingMethod.create("free", "Free", calculation_type="FreeShipping", minimum_cost=3)
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert quote(rate, method, _request(california)).cost == Decimal("3")


class TestShippingFailures:
    def test_unknown_method(self, domestic, california):
        config = _config(domestic, (_standard(), {}))
        result = calculate_shipping_cost(config, "missing", _request(california))
        assert not result.success
        assert result.failure == ShippingFailure.METHOD_NOT_FOUND

    def test_inactive_method(self, domestic, california):
        method = _standard()
        method.deactivate()
        result = calculate_shipping_cost(_config(domestic, (method, {})), method.id, _request(california))
        assert result.failure == ShippingFailure.METHOD_INACTIVE

    def test_no_zone(self, domestic):
        method = _standard()
        result = calculate_shipping_cost(
            _config(domestic, (method, {})), method.id, _request(Address.build(country="JP"))
        )
        assert result.failure == ShippingFailure.NO_ZONE
        assert result.message == "Shipping is not available to this address."

    def test_no_rate(self, domestic, california):
        method = _standard()
        config = ShippingConfiguration(zones=(domestic,), methods=(method,), rates=())
        result = calculate_shipping_cost(config, method.id, _request(california))
        assert result.failure == ShippingFailure.NO_RATE

    def test_rate_requirements(self, domestic, california):
        method = _standard()
        config = _config(domestic, (method, {"max_weight": Decimal("10")}))
        result = calculate_shipping_cost(config, method.id, _request(california, weight=12))
        assert result.failure == ShippingFailure.REQUIREMENTS_NOT_MET

    def test_method_restrictions(self, domestic, california):
        method = _standard(min_order_amount=Decimal("100"))
        result = calculate_shipping_cost(_config(domestic, (method, {})), method.id, _request(california, 50))
        assert result.failure == ShippingFailure.REQUIREMENTS_NOT_MET


class TestShippingOptions:
    def test_sorted_by_sort_order_then_cost(self, domestic, california):
        express = ShippingMethod.create("express", "Express", flat_rate=Decimal("15"), sort_order=0)
        economy = ShippingMethod.create("economy", "Economy", flat_rate=Decimal("3"), sort_order=0)
        freight = ShippingMethod.create("freight", "Freight", flat_rate=Decimal("1"), sort_order=1)
        config = _config(domestic, (express, {}), (economy, {}), (freight, {}))

        options = get_shipping_options(config, _request(california))
        assert [o.method_code for o in options] == ["ECONOMY", "EXPRESS", "FREIGHT"]

    def test_ineligible_and_inactive_methods_are_hidden(self, domestic, california):
        heavy = _standard(min_weight=Decimal("20"))
        retired = ShippingMethod.create("retired", "Retired", flat_rate=1)
        retired.deactivate()
        open_ = ShippingMethod.create("open", "Open", flat_rate=2)
        config = _config(domestic, (heavy, {}), (retired, {}), (open_, {}))

        options = get_shipping_options(config, _request(california, weight=1))
        assert [o.method_code for o in options] == ["OPEN"]

    def test_no_options_without_zone(self, domestic):
        config = _config(domestic, (_standard(), {}))
        assert get_shipping_options(config, _request(Address.build(country="JP"))) == []

    def test_option_payload(self, domestic, california):
        config = _config(domestic, (_standard(carrier="UPS"), {}))
        payload = get_shipping_options(config, _request(california))[0].to_payload()
        assert payload["cost"] == "5.9900"
        assert payload["carrier"] == "UPS"
        assert payload["delivery_estimate"] == "3-5 business days"


class TestZoneResolution:
    def test_specific_zone_before_default(self, domestic, california):
        rest = ShippingZone.create("rest", "Rest of world", is_default=True)
        assert zone_for_address([rest, domestic], california) is domestic
        assert zone_for_address([rest, domestic], Address.build(country="JP")) is rest

    def test_first_match_by_sort_order(self, california):
        broad = ShippingZone.create("us", "US", sort_order=2, countries=["US"])
        west = ShippingZone.create("west", "West coast", sort_order=1, states=["US-CA", "US-OR"])
        assert zone_for_address([broad, west], california) is west

    def test_inactive_zone_is_skipped(self, domestic, california):
        domestic.update(is_active=False)
        assert zone_for_address([domestic], california) is None

    def test_can_ship_to(self, domestic, california):
        config = _config(domestic, (_standard(), {}))
        assert can_ship_to(config, california)
        assert not can_ship_to(config, Address.build(country="JP"))
        assert not can_ship_to(ShippingConfiguration(zones=(domestic,)), california)


class TestDeliveryEstimate:
    @pytest.mark.parametrize(
        "low, high, expected",
        [
            (3, 5, "3-5 business days"),
            (1, 1, "1 business day"),
            (2, 2, "2 business days"),
            (3, None, "3+ business days"),
            (None, 7, "Up to 7 business days"),
        ],
    )
    def test_ranges(self, domestic, low, high, expected):
        method = ShippingMethod.create("std", "Std", flat_rate=1, estimated_days_min=low, estimated_days_max=high)
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert rate.delivery_estimate(method) == expected

    def test_falls_back_to_method_text(self, domestic):
        method = ShippingMethod.create("std", "Std", flat_rate=1, delivery_estimate_text="Next week")
        rate = ShippingRate.create(str(domestic.id), str(method.id))
        assert rate.delivery_estimate(method) == "Next week"
        assert method.display_name == "Std (Next week)"

    def test_rate_days_override_method(self, domestic):
        method = _standard()
        rate = ShippingRate.create(str(domestic.id), str(method.id), estimated_days_min=1, estimated_days_max=2)
        assert rate.delivery_estimate(method) == "1-2 business days"


class TestMethodInvariants:
    def test_negative_cost(self):
        with pytest.raises(ValidationError):
            ShippingMethod.create("bad", "Bad", flat_rate=Decimal("-1"))

    def test_min_weight_above_max(self):
        with pytest.raises(ValidationError) as exc:
            ShippingMethod.create("bad", "Bad", min_weight=10, max_weight=5)
        assert "max_weight" in exc.value.messages
