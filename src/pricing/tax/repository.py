"""Repositories for tax configuration, and the snapshot loader used by the engine."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from pricing.domain import pricing
from pricing.tax.category import TaxCategory
from pricing.tax.engine import TaxConfiguration
from pricing.tax.rate import TaxRate
from pricing.tax.zone import TaxZone


@pricing.repository(part_of=TaxCategory)
class TaxCategoryRepository:
    def find_by_code(self, code: str) -> TaxCategory | None:
        try:
            return self.find_by(code=code.strip().upper())
        except ObjectNotFoundError:
            return None

    def code_exists(self, code: str) -> bool:
        return self.find_by_code(code) is not None

    def everything(self) -> list[TaxCategory]:
        return self.query.limit(None).all().items

    def defaults(self) -> list[TaxCategory]:
        return self.query.filter(is_default=True).limit(None).all().items


@pricing.repository(part_of=TaxZone)
class TaxZoneRepository:
    def find_by_code(self, code: str) -> TaxZone | None:
        try:
            return self.find_by(code=code.strip().upper())
        except ObjectNotFoundError:
            return None

    def code_exists(self, code: str) -> bool:
        return self.find_by_code(code) is not None

    def everything(self) -> list[TaxZone]:
        return self.query.limit(None).all().items

    def defaults(self) -> list[TaxZone]:
        return self.query.filter(is_default=True).limit(None).all().items


@pricing.repository(part_of=TaxRate)
class TaxRateRepository:
    def for_zone(self, zone_id: str) -> list[TaxRate]:
        return self.query.filter(zone_id=str(zone_id)).limit(None).all().items

    def everything(self) -> list[TaxRate]:
        return self.query.limit(None).all().items


def load_tax_configuration() -> TaxConfiguration:
    """Read the whole tax setup into an immutable snapshot for one calculation."""
    return TaxConfiguration(
        zones=tuple(current_domain.repository_for(TaxZone).everything()),
        categories=tuple(current_domain.repository_for(TaxCategory).everything()),
        rates=tuple(current_domain.repository_for(TaxRate).everything()),
    )
