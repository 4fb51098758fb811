"""Shipping zone resolution."""

from collections.abc import Iterable

from pricing.shipping.zone import ShippingZone


def zone_for_address(zones: Iterable[ShippingZone], address) -> ShippingZone | None:
    """First specific zone (by sort order) covering ``address``, else the default zone."""
    active = sorted((z for z in zones if z.is_active), key=lambda z: z.sort_order or 0)
    for zone in active:
        if not zone.is_default and zone.matches_address(address):
            return zone
    return next((z for z in active if z.is_default), None)
