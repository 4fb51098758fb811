"""Domain events for shipping configuration aggregates."""

from protean.fields import Boolean, Identifier, String

from pricing.domain import pricing


@pricing.event(part_of="ShippingZone")
class ShippingZoneCreated:
    __version__ = 1

    zone_id = Identifier(required=True)
    code = String(required=True)
    name = String(required=True)
    is_default = Boolean(default=False)


@pricing.event(part_of="ShippingZone")
class ShippingZoneUpdated:
    __version__ = 1

    zone_id = Identifier(required=True)


@pricing.event(part_of="ShippingMethod")
class ShippingMethodCreated:
    """A shipping method was configured."""

    __version__ = 1

    method_id = Identifier(required=True)
    code = String(required=True)
    name = String(required=True)
    calculation_type = String(required=True)


@pricing.event(part_of="ShippingMethod")
class ShippingMethodActivated:
    __version__ = 1

    method_id = Identifier(required=True)


@pricing.event(part_of="ShippingMethod")
class ShippingMethodDeactivated:
    __version__ = 1

    method_id = Identifier(required=True)


@pricing.event(part_of="ShippingRate")
class ShippingRateCreated:
    __version__ = 1

    rate_id = Identifier(required=True)
    zone_id = Identifier(required=True)
    method_id = Identifier(required=True)
