"""Shipping rate engine.

Costs are computed from a ``ShippingConfiguration`` snapshot. Each
calculation type has its own evaluator; the rate's override values win over
the method's defaults. After the formula: handling fee, ``[minimum_cost,
maximum_cost]`` clamp, then the free-shipping threshold (rate first, then
method).
"""

from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from pricing.shared.money import HUNDRED, ZERO, round_currency, round_money, to_decimal
from pricing.shipping.matcher import zone_for_address
from pricing.shipping.method import CalculationType, ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone


class ShippingFailure(Enum):
    METHOD_NOT_FOUND = "METHOD_NOT_FOUND"
    METHOD_INACTIVE = "METHOD_INACTIVE"
    NO_ZONE = "NO_ZONE"
    NO_RATE = "NO_RATE"
    REQUIREMENTS_NOT_MET = "REQUIREMENTS_NOT_MET"


FAILURE_MESSAGES = {
    ShippingFailure.METHOD_NOT_FOUND: "Shipping method not found.",
    ShippingFailure.METHOD_INACTIVE: "Shipping method is not available.",
    ShippingFailure.NO_ZONE: "Shipping is not available to this address.",
    ShippingFailure.NO_RATE: "Shipping rate not available for this zone.",
    ShippingFailure.REQUIREMENTS_NOT_MET: "Order does not meet shipping requirements.",
}


@dataclass(frozen=True)
class ShipmentRequest:
    address: object | None
    order_total: Decimal = ZERO
    weight: Decimal = ZERO
    item_count: int = 0


@dataclass(frozen=True)
class ShippingQuote:
    cost: Decimal
    is_free: bool = False
    free_shipping_reason: str | None = None


@dataclass(frozen=True)
class AvailableShippingMethod:
    method_id: str
    method_code: str
    name: str
    cost: Decimal
    sort_order: int = 0
    description: str | None = None
    carrier: str | None = None
    delivery_estimate: str | None = None
    is_free: bool = False
    free_shipping_reason: str | None = None

    def to_payload(self) -> dict:
        return {
            "method_id": self.method_id,
            "method_code": self.method_code,
            "name": self.name,
            "description": self.description,
            "cost": str(self.cost),
            "carrier": self.carrier,
            "delivery_estimate": self.delivery_estimate,
            "is_free": self.is_free,
            "free_shipping_reason": self.free_shipping_reason,
        }


@dataclass(frozen=True)
class ShippingCostResult:
    success: bool
    cost: Decimal = ZERO
    is_free: bool = False
    free_shipping_reason: str | None = None
    delivery_estimate: str | None = None
    method_name: str | None = None
    failure: ShippingFailure | None = None
    message: str | None = None

    @classmethod
    def failed(cls, failure: ShippingFailure) -> "ShippingCostResult":
        return cls(success=False, failure=failure, message=FAILURE_MESSAGES[failure])


@dataclass(frozen=True)
class ShippingConfiguration:
    zones: tuple[ShippingZone, ...] = ()
    methods: tuple[ShippingMethod, ...] = ()
    rates: tuple[ShippingRate, ...] = ()

    def method(self, method_id) -> ShippingMethod | None:
        return next((m for m in self.methods if str(m.id) == str(method_id)), None)

    def rate(self, zone_id, method_id) -> ShippingRate | None:
        return next(
            (r for r in self.rates if str(r.zone_id) == str(zone_id) and str(r.method_id) == str(method_id)),
            None,
        )

    def active_rates(self, zone_id) -> list[tuple[ShippingRate, ShippingMethod]]:
        """Active rates of a zone paired with their active methods."""
        pairs = []
        for rate in self.rates:
            if str(rate.zone_id) != str(zone_id) or not rate.is_active:
                continue
            method = self.method(rate.method_id)
            if method is not None and method.is_active:
                pairs.append((rate, method))
        return pairs


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------
def _flat_rate(rate, method, request):
    return to_decimal(rate.value_for(method, "flat_rate"))


def _weight_based(rate, method, request):
    base = to_decimal(rate.value_for(method, "weight_base_rate"))
    per_unit = to_decimal(rate.value_for(method, "weight_per_unit_rate"))
    return base + per_unit * to_decimal(request.weight)


def _price_based(rate, method, request):
    percentage = to_decimal(rate.value_for(method, "price_percentage"))
    return to_decimal(request.order_total) * percentage / HUNDRED


def _per_item(rate, method, request):
    return to_decimal(rate.value_for(method, "per_item_rate")) * request.item_count


def _free(rate, method, request):
    return ZERO


EVALUATORS: dict[str, Callable[[ShippingRate, ShippingMethod, ShipmentRequest], Decimal]] = {
    CalculationType.FLAT_RATE.value: _flat_rate,
    CalculationType.WEIGHT_BASED.value: _weight_based,
    CalculationType.PRICE_BASED.value: _price_based,
    CalculationType.PER_ITEM.value: _per_item,
    CalculationType.FREE_SHIPPING.value: _free,
}


def quote(rate: ShippingRate, method: ShippingMethod, request: ShipmentRequest) -> ShippingQuote:
    """Price one rate for the shipment."""
    cost = EVALUATORS[method.calculation_type](rate, method, request)

    handling_fee = rate.value_for(method, "handling_fee")
    if handling_fee is not None:
        cost += handling_fee

    if method.minimum_cost is not None and cost < to_decimal(method.minimum_cost):
        cost = to_decimal(method.minimum_cost)
    if method.maximum_cost is not None and cost > to_decimal(method.maximum_cost):
        cost = to_decimal(method.maximum_cost)

    for threshold in (rate.free_shipping_threshold, method.free_shipping_threshold):
        if threshold is not None and to_decimal(request.order_total) >= to_decimal(threshold):
            return ShippingQuote(
                cost=ZERO,
                is_free=True,
                free_shipping_reason=f"Order qualifies for free shipping (over {round_currency(threshold)})",
            )

    cost = round_money(max(cost, ZERO))
    if cost == ZERO and method.calculation_type == CalculationType.FREE_SHIPPING.value:
        return ShippingQuote(cost=ZERO, is_free=True, free_shipping_reason="Free shipping method")
    return ShippingQuote(cost=cost, is_free=cost == ZERO)


def _eligible(rate: ShippingRate, method: ShippingMethod, request: ShipmentRequest) -> bool:
    order_total = to_decimal(request.order_total)
    weight = to_decimal(request.weight)
    return rate.meets_requirements(order_total, weight) and method.meets_restrictions(order_total, weight)


def get_shipping_options(config: ShippingConfiguration, request: ShipmentRequest) -> list[AvailableShippingMethod]:
    """Eligible methods for the destination, cheapest first within each sort order."""
    zone = zone_for_address(config.zones, request.address)
    if zone is None:
        return []

    options = []
    for rate, method in config.active_rates(zone.id):
        if not _eligible(rate, method, request):
            continue
        priced = quote(rate, method, request)
        options.append(
            AvailableShippingMethod(
                method_id=str(method.id),
                method_code=method.code,
                name=method.name,
                description=method.description,
                cost=priced.cost,
                sort_order=method.sort_order or 0,
                carrier=method.carrier,
                delivery_estimate=rate.delivery_estimate(method),
                is_free=priced.is_free,
                free_shipping_reason=priced.free_shipping_reason,
            )
        )
    return sorted(options, key=lambda o: (o.sort_order, o.cost))


def calculate_shipping_cost(config: ShippingConfiguration, method_id, request: ShipmentRequest) -> ShippingCostResult:
    method = config.method(method_id)
    if method is None:
        return ShippingCostResult.failed(ShippingFailure.METHOD_NOT_FOUND)
    if not method.is_active:
        return ShippingCostResult.failed(ShippingFailure.METHOD_INACTIVE)

    zone = zone_for_address(config.zones, request.address)
    if zone is None:
        return ShippingCostResult.failed(ShippingFailure.NO_ZONE)

    rate = config.rate(zone.id, method.id)
    if rate is None or not rate.is_active:
        return ShippingCostResult.failed(ShippingFailure.NO_RATE)

    if not _eligible(rate, method, request):
        return ShippingCostResult.failed(ShippingFailure.REQUIREMENTS_NOT_MET)

    priced = quote(rate, method, request)
    return ShippingCostResult(
        success=True,
        cost=priced.cost,
        is_free=priced.is_free,
        free_shipping_reason=priced.free_shipping_reason,
        delivery_estimate=rate.delivery_estimate(method),
        method_name=method.name,
    )


def can_ship_to(config: ShippingConfiguration, address) -> bool:
    zone = zone_for_address(config.zones, address)
    return zone is not None and bool(config.active_rates(zone.id))
