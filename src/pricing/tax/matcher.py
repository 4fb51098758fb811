"""Tax zone and category resolution."""

from collections.abc import Iterable

from pricing.tax.category import TaxCategory
from pricing.tax.zone import TaxZone


def order_zones(zones: Iterable[TaxZone]) -> list[TaxZone]:
    """Active zones, highest priority first, then by sort order."""
    return sorted((z for z in zones if z.is_active), key=lambda z: (-(z.priority or 0), z.sort_order or 0))


def default_zone(zones: Iterable[TaxZone]) -> TaxZone | None:
    return next((z for z in zones if z.is_default and z.is_active), None)


def match_zones(zones: Iterable[TaxZone], address) -> list[TaxZone]:
    """Every zone whose inclusion lists cover ``address``, or the default zone when none does.

    Several zones may apply at once, e.g. country VAT plus a city surcharge. A
    default zone with its own lists matches like any other zone.
    """
    zones = list(zones)
    matched = [z for z in order_zones(zones) if z.rules.has_restrictions and z.matches_address(address)]
    if matched:
        return matched
    fallback = default_zone(zones)
    return [fallback] if fallback is not None else []


def match_category(categories: Iterable[TaxCategory], tax_class: str | None) -> TaxCategory | None:
    """Exact code match (case-insensitive), else the default category."""
    categories = [c for c in categories if c.is_active]
    if tax_class:
        code = tax_class.strip().upper()
        found = next((c for c in categories if c.code == code), None)
        if found is not None:
            return found
    return next((c for c in categories if c.is_default), None)
