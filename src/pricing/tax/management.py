"""Tax administration: categories, zones and rates."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Decimal, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from pricing.domain import pricing
from pricing.shared.money import ZERO, to_decimal
from pricing.shared.zones import ZONE_LIST_FIELDS
from pricing.tax.category import TaxCategory
from pricing.tax.rate import TaxRate, TaxRateType
from pricing.tax.zone import TaxZone

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------
@pricing.command(part_of="TaxCategory")
class CreateTaxCategory:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    is_tax_exempt = Boolean(default=False)
    sort_order = Integer(default=0)
    is_default = Boolean(default=False)


@pricing.command(part_of="TaxCategory")
class SetDefaultTaxCategory:
    category_id = Identifier(required=True)


@pricing.command_handler(part_of=TaxCategory)
class TaxCategoryCommandHandler:
    @handle(CreateTaxCategory)
    def create_category(self, command):
        repo = current_domain.repository_for(TaxCategory)
        if repo.code_exists(command.code):
            raise ValidationError({"code": ["Tax category code already exists"]})

        category = TaxCategory.create(
            code=command.code,
            name=command.name,
            description=command.description,
            is_tax_exempt=command.is_tax_exempt,
            sort_order=command.sort_order,
        )
        if command.is_default:
            _clear_defaults(repo, category.id)
            category.mark_default()
        repo.add(category)

        logger.info("Tax category created", category_id=str(category.id), code=category.code)
        return str(category.id)

    @handle(SetDefaultTaxCategory)
    def set_default(self, command):
        repo = current_domain.repository_for(TaxCategory)
        category = repo.get(command.category_id)
        _clear_defaults(repo, category.id)
        category.mark_default()
        repo.add(category)


# ---------------------------------------------------------------------------
# Zones
# ---------------------------------------------------------------------------
@pricing.command(part_of="TaxZone")
class CreateTaxZone:
    """List fields are JSON arrays; states use ``CC-ST`` keys."""

    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    priority = Integer(default=0)
    sort_order = Integer(default=0)
    is_default = Boolean(default=False)
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()


@pricing.command(part_of="TaxZone")
class UpdateTaxZone:
    zone_id = Identifier(required=True)
    name = String(max_length=200)
    priority = Integer()
    sort_order = Integer()
    is_active = Boolean()
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()


@pricing.command(part_of="TaxZone")
class SetDefaultTaxZone:
    zone_id = Identifier(required=True)


def _decode_lists(command) -> dict:
    lists = {}
    for field_name in ZONE_LIST_FIELDS:
        raw = getattr(command, field_name)
        if raw is not None:
            lists[field_name] = json.loads(raw) if isinstance(raw, str) else raw
    return lists


def _clear_defaults(repo, keep_id):
    for existing in repo.defaults():
        if str(existing.id) != str(keep_id):
            existing.mark_default(False)
            repo.add(existing)


@pricing.command_handler(part_of=TaxZone)
class TaxZoneCommandHandler:
    @handle(CreateTaxZone)
    def create_zone(self, command):
        repo = current_domain.repository_for(TaxZone)
        if repo.code_exists(command.code):
            raise ValidationError({"code": ["Tax zone code already exists"]})

        zone = TaxZone.create(
            code=command.code,
            name=command.name,
            priority=command.priority,
            sort_order=command.sort_order,
            **_decode_lists(command),
        )
        if command.is_default:
            _clear_defaults(repo, zone.id)
            zone.mark_default()
        repo.add(zone)

        logger.info("Tax zone created", zone_id=str(zone.id), code=zone.code)
        return str(zone.id)

    @handle(UpdateTaxZone)
    def update_zone(self, command):
        repo = current_domain.repository_for(TaxZone)
        zone = repo.get(command.zone_id)
        zone.update(
            name=command.name,
            priority=command.priority,
            sort_order=command.sort_order,
            is_active=command.is_active,
            **_decode_lists(command),
        )
        repo.add(zone)

    @handle(SetDefaultTaxZone)
    def set_default(self, command):
        repo = current_domain.repository_for(TaxZone)
        zone = repo.get(command.zone_id)
        _clear_defaults(repo, zone.id)
        zone.mark_default()
        repo.add(zone)


# ---------------------------------------------------------------------------
# Rates
# ---------------------------------------------------------------------------
RATE_SETTINGS = (
    "flat_amount",
    "is_compound",
    "priority",
    "sort_order",
    "tax_shipping",
    "minimum_amount",
    "maximum_amount",
    "maximum_tax",
    "jurisdiction_type",
    "jurisdiction_name",
    "effective_from",
    "effective_to",
)


@pricing.command(part_of="TaxRate")
class CreateTaxRate:
    zone_id = Identifier(required=True)
    category_id = Identifier(required=True)
    name = String(required=True, max_length=200)
    rate_type = String(choices=TaxRateType, default=TaxRateType.PERCENTAGE.value)
    rate = Decimal(default=0)
    flat_amount = Decimal()
    is_compound = Boolean(default=False)
    priority = Integer(default=0)
    sort_order = Integer(default=0)
    tax_shipping = Boolean(default=False)
    minimum_amount = Decimal()
    maximum_amount = Decimal()
    maximum_tax = Decimal()
    jurisdiction_type = String(max_length=50)
    jurisdiction_name = String(max_length=200)
    effective_from = DateTime()
    effective_to = DateTime()


@pricing.command(part_of="TaxRate")
class ToggleTaxRate:
    rate_id = Identifier(required=True)


@pricing.command(part_of="TaxRate")
class CreateTaxRatesForZone:
    """One percentage rate per active category; exempt categories get 0%."""

    zone_id = Identifier(required=True)
    rate = Decimal(required=True, min_value=0, max_value=100)
    name = String(max_length=200)
    tax_shipping = Boolean(default=False)


@pricing.command_handler(part_of=TaxRate)
class TaxRateCommandHandler:
    @handle(CreateTaxRate)
    def create_rate(self, command):
        # Both ends must exist
        current_domain.repository_for(TaxZone).get(command.zone_id)
        current_domain.repository_for(TaxCategory).get(command.category_id)

        rate = TaxRate.create(
            zone_id=command.zone_id,
            category_id=command.category_id,
            name=command.name,
            rate=command.rate,
            rate_type=command.rate_type,
            **{field_name: getattr(command, field_name) for field_name in RATE_SETTINGS},
        )
        current_domain.repository_for(TaxRate).add(rate)

        logger.info(
            "Tax rate created",
            rate_id=str(rate.id),
            zone_id=str(rate.zone_id),
            category_id=str(rate.category_id),
            rate=str(rate.rate),
        )
        return str(rate.id)

    @handle(ToggleTaxRate)
    def toggle_rate(self, command):
        repo = current_domain.repository_for(TaxRate)
        rate = repo.get(command.rate_id)
        rate.toggle()
        repo.add(rate)

    @handle(CreateTaxRatesForZone)
    def create_rates_for_zone(self, command):
        zone = current_domain.repository_for(TaxZone).get(command.zone_id)
        categories = [c for c in current_domain.repository_for(TaxCategory).everything() if c.is_active]
        repo = current_domain.repository_for(TaxRate)

        rate_ids = []
        for category in categories:
            rate = TaxRate.create(
                zone_id=zone.id,
                category_id=category.id,
                name=f"{command.name or zone.name} - {category.name}",
                rate=ZERO if category.is_tax_exempt else to_decimal(command.rate),
                tax_shipping=command.tax_shipping,
            )
            repo.add(rate)
            rate_ids.append(str(rate.id))

        logger.info("Tax rates created for zone", zone_id=str(zone.id), count=len(rate_ids))
        return rate_ids
