"""Shipping administration: zones, methods and per-zone rates."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, Decimal, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from pricing.domain import pricing
from pricing.shared.zones import ZONE_LIST_FIELDS
from pricing.shipping.method import CalculationType, ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone

logger = structlog.get_logger(__name__)


def _decode_lists(command) -> dict:
    lists = {}
    for field_name in ZONE_LIST_FIELDS:
        raw = getattr(command, field_name)
        if raw is not None:
            lists[field_name] = json.loads(raw) if isinstance(raw, str) else raw
    return lists


def _unset_other_defaults(keep_id):
    repo = current_domain.repository_for(ShippingZone)
    for zone in repo.defaults():
        if str(zone.id) != str(keep_id):
            zone.unset_default()
            repo.add(zone)


# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------
@pricing.command(part_of="ShippingZone")
class CreateShippingZone:
    """List fields are JSON arrays; states use ``CC-ST`` keys."""

    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    sort_order = Integer(default=0)
    is_default = Boolean(default=False)
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()


@pricing.command(part_of="ShippingZone")
class UpdateShippingZone:
    zone_id = Identifier(required=True)
    name = String(max_length=200)
    description = Text()
    sort_order = Integer()
    is_default = Boolean()
    is_active = Boolean()
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()


@pricing.command_handler(part_of=ShippingZone)
class ShippingZoneCommandHandler:
    @handle(CreateShippingZone)
    def create_zone(self, command):
        repo = current_domain.repository_for(ShippingZone)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": ["Shipping zone code already exists"]})

        zone = ShippingZone.create(
            code=command.code,
            name=command.name,
            description=command.description,
            sort_order=command.sort_order,
            is_default=command.is_default,
            **_decode_lists(command),
        )
        if zone.is_default:
            _unset_other_defaults(zone.id)
        repo.add(zone)

        logger.info("Shipping zone created", zone_id=str(zone.id), code=zone.code, is_default=zone.is_default)
        return str(zone.id)

    @handle(UpdateShippingZone)
    def update_zone(self, command):
        repo = current_domain.repository_for(ShippingZone)
        zone = repo.get(command.zone_id)
        zone.update(
            name=command.name,
            description=command.description,
            sort_order=command.sort_order,
            is_default=command.is_default,
            is_active=command.is_active,
            **_decode_lists(command),
        )
        if command.is_default:
            _unset_other_defaults(zone.id)
        repo.add(zone)


# ---------------------------------------------------------------------------
# Methods
# ---------------------------------------------------------------------------
@pricing.command(part_of="ShippingMethod")
class CreateShippingMethod:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    calculation_type = String(choices=CalculationType, default=CalculationType.FLAT_RATE.value)
    carrier = String(max_length=100)
    sort_order = Integer(default=0)
    flat_rate = Decimal()
    weight_base_rate = Decimal()
    weight_per_unit_rate = Decimal()
    weight_unit = String(max_length=10, default="kg")
    price_percentage = Decimal()
    per_item_rate = Decimal()
    handling_fee = Decimal()
    minimum_cost = Decimal()
    maximum_cost = Decimal()
    free_shipping_threshold = Decimal()
    min_weight = Decimal()
    max_weight = Decimal()
    min_order_amount = Decimal()
    max_order_amount = Decimal()
    estimated_days_min = Integer(min_value=0)
    estimated_days_max = Integer(min_value=0)
    delivery_estimate_text = String(max_length=100)


@pricing.command(part_of="ShippingMethod")
class ActivateShippingMethod:
    method_id = Identifier(required=True)


@pricing.command(part_of="ShippingMethod")
class DeactivateShippingMethod:
    method_id = Identifier(required=True)


METHOD_SETTINGS = (
    "description",
    "carrier",
    "sort_order",
    "flat_rate",
    "weight_base_rate",
    "weight_per_unit_rate",
    "weight_unit",
    "price_percentage",
    "per_item_rate",
    "handling_fee",
    "minimum_cost",
    "maximum_cost",
    "free_shipping_threshold",
    "min_weight",
    "max_weight",
    "min_order_amount",
    "max_order_amount",
    "estimated_days_min",
    "estimated_days_max",
    "delivery_estimate_text",
)

# Each formula needs its own parameter
REQUIRED_FORMULA_FIELD = {
    CalculationType.FLAT_RATE.value: "flat_rate",
    CalculationType.WEIGHT_BASED.value: "weight_per_unit_rate",
    CalculationType.PRICE_BASED.value: "price_percentage",
    CalculationType.PER_ITEM.value: "per_item_rate",
}


@pricing.command_handler(part_of=ShippingMethod)
class ShippingMethodCommandHandler:
    @handle(CreateShippingMethod)
    def create_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        if repo.find_by_code(command.code) is not None:
            raise ValidationError({"code": ["Shipping method code already exists"]})

        required = REQUIRED_FORMULA_FIELD.get(command.calculation_type)
        if required and getattr(command, required) is None:
            raise ValidationError({required: [f"Required for {command.calculation_type} shipping"]})

        method = ShippingMethod.create(
            code=command.code,
            name=command.name,
            calculation_type=command.calculation_type,
            **{field_name: getattr(command, field_name) for field_name in METHOD_SETTINGS},
        )
        repo.add(method)

        logger.info(
            "Shipping method created",
            method_id=str(method.id),
            code=method.code,
            calculation_type=method.calculation_type,
        )
        return str(method.id)

    @handle(ActivateShippingMethod)
    def activate_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        method = repo.get(command.method_id)
        method.activate()
        repo.add(method)

    @handle(DeactivateShippingMethod)
    def deactivate_method(self, command):
        repo = current_domain.repository_for(ShippingMethod)
        method = repo.get(command.method_id)
        method.deactivate()
        repo.add(method)


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------
@pricing.command(part_of="ShippingRate")
class CreateShippingRate:
    zone_id = Identifier(required=True)
    method_id = Identifier(required=True)
    sort_order = Integer(default=0)
    flat_rate = Decimal()
    weight_base_rate = Decimal()
    weight_per_unit_rate = Decimal()
    price_percentage = Decimal()
    per_item_rate = Decimal()
    handling_fee = Decimal()
    free_shipping_threshold = Decimal()
    min_weight = Decimal()
    max_weight = Decimal()
    min_order_amount = Decimal()
    max_order_amount = Decimal()
    estimated_days_min = Integer(min_value=0)
    estimated_days_max = Integer(min_value=0)


@pricing.command(part_of="ShippingRate")
class CreateShippingRatesForZone:
    """Attach every active method to a zone, using the methods' own pricing."""

    zone_id = Identifier(required=True)


RATE_SETTINGS = (
    "sort_order",
    "flat_rate",
    "weight_base_rate",
    "weight_per_unit_rate",
    "price_percentage",
    "per_item_rate",
    "handling_fee",
    "free_shipping_threshold",
    "min_weight",
    "max_weight",
    "min_order_amount",
    "max_order_amount",
    "estimated_days_min",
    "estimated_days_max",
)


@pricing.command_handler(part_of=ShippingRate)
class ShippingRateCommandHandler:
    @handle(CreateShippingRate)
    def create_rate(self, command):
        current_domain.repository_for(ShippingZone).get(command.zone_id)
        current_domain.repository_for(ShippingMethod).get(command.method_id)

        repo = current_domain.repository_for(ShippingRate)
        if repo.for_zone_and_method(command.zone_id, command.method_id) is not None:
            raise ValidationError({"method_id": ["A rate already exists for this zone and method"]})

        rate = ShippingRate.create(
            zone_id=command.zone_id,
            method_id=command.method_id,
            **{field_name: getattr(command, field_name) for field_name in RATE_SETTINGS},
        )
        repo.add(rate)

        logger.info("Shipping rate created", rate_id=str(rate.id), zone_id=str(rate.zone_id), method_id=str(rate.method_id))
        return str(rate.id)

    @handle(CreateShippingRatesForZone)
    def create_rates_for_zone(self, command):
        zone = current_domain.repository_for(ShippingZone).get(command.zone_id)
        repo = current_domain.repository_for(ShippingRate)

        rate_ids = []
        for method in current_domain.repository_for(ShippingMethod).active():
            if repo.for_zone_and_method(zone.id, method.id) is not None:
                continue
            rate = ShippingRate.create(zone_id=zone.id, method_id=method.id)
            repo.add(rate)
            rate_ids.append(str(rate.id))

        logger.info("Shipping rates created for zone", zone_id=str(zone.id), count=len(rate_ids))
        return rate_ids
