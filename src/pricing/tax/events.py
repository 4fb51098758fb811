"""Domain events for tax configuration aggregates."""

from protean.fields import Boolean, Decimal, Identifier, String

from pricing.domain import pricing


@pricing.event(part_of="TaxCategory")
class TaxCategoryCreated:
    __version__ = 1

    category_id = Identifier(required=True)
    code = String(required=True)
    is_tax_exempt = Boolean(default=False)


@pricing.event(part_of="TaxCategory")
class DefaultTaxCategoryChanged:
    __version__ = 1

    category_id = Identifier(required=True)
    is_default = Boolean(required=True)


@pricing.event(part_of="TaxZone")
class TaxZoneCreated:
    __version__ = 1

    zone_id = Identifier(required=True)
    code = String(required=True)
    name = String(required=True)


@pricing.event(part_of="TaxZone")
class TaxZoneUpdated:
    __version__ = 1

    zone_id = Identifier(required=True)


@pricing.event(part_of="TaxZone")
class DefaultTaxZoneChanged:
    __version__ = 1

    zone_id = Identifier(required=True)
    is_default = Boolean(required=True)


@pricing.event(part_of="TaxRate")
class TaxRateCreated:
    """A rate was attached to a zone and category."""

    __version__ = 1

    rate_id = Identifier(required=True)
    zone_id = Identifier(required=True)
    category_id = Identifier(required=True)
    rate = Decimal(required=True)
    rate_type = String(required=True)


@pricing.event(part_of="TaxRate")
class TaxRateToggled:
    __version__ = 1

    rate_id = Identifier(required=True)
    is_active = Boolean(required=True)
