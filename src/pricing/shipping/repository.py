"""Repositories for shipping configuration, and the snapshot loader used by the engine."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from pricing.domain import pricing
from pricing.shipping.engine import ShippingConfiguration
from pricing.shipping.method import ShippingMethod
from pricing.shipping.rate import ShippingRate
from pricing.shipping.zone import ShippingZone


@pricing.repository(part_of=ShippingZone)
class ShippingZoneRepository:
    def find_by_code(self, code: str) -> ShippingZone | None:
        try:
            return self.find_by(code=code.strip().upper())
        except ObjectNotFoundError:
            return None

    def everything(self) -> list[ShippingZone]:
        return self.query.limit(None).all().items

    def defaults(self) -> list[ShippingZone]:
        return self.query.filter(is_default=True).limit(None).all().items


@pricing.repository(part_of=ShippingMethod)
class ShippingMethodRepository:
    def find_by_code(self, code: str) -> ShippingMethod | None:
        try:
            return self.find_by(code=code.strip().upper())
        except ObjectNotFoundError:
            return None

    def everything(self) -> list[ShippingMethod]:
        return self.query.limit(None).all().items

    def active(self) -> list[ShippingMethod]:
        methods = self.query.filter(is_active=True).limit(None).all().items
        return sorted(methods, key=lambda m: (m.sort_order or 0, m.name))


@pricing.repository(part_of=ShippingRate)
class ShippingRateRepository:
    def for_zone_and_method(self, zone_id: str, method_id: str) -> ShippingRate | None:
        rates = self.query.filter(zone_id=str(zone_id), method_id=str(method_id)).all().items
        return rates[0] if rates else None

    def everything(self) -> list[ShippingRate]:
        return self.query.limit(None).all().items


def load_shipping_configuration() -> ShippingConfiguration:
    """Read the whole shipping setup into an immutable snapshot for one calculation."""
    return ShippingConfiguration(
        zones=tuple(current_domain.repository_for(ShippingZone).everything()),
        methods=tuple(current_domain.repository_for(ShippingMethod).everything()),
        rates=tuple(current_domain.repository_for(ShippingRate).everything()),
    )
