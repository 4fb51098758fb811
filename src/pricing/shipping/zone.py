"""Shipping zone aggregate: a delivery region defined by inclusion and exclusion lists."""

from protean.fields import Boolean, Integer, String, Text

from pricing.domain import pricing
from pricing.shared.zones import ZONE_LIST_FIELDS, ZoneRules, dump_list, rules_for
from pricing.shipping.events import ShippingZoneCreated, ShippingZoneUpdated


@pricing.aggregate
class ShippingZone:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    description = Text()
    sort_order = Integer(default=0)
    is_default = Boolean(default=False)
    is_active = Boolean(default=True)
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()

    @classmethod
    def create(cls, code, name, description=None, sort_order=0, is_default=False, **lists):
        zone = cls(
            code=code.strip().upper(),
            name=name,
            description=description,
            sort_order=sort_order,
            is_default=is_default,
            **{field_name: dump_list(lists.get(field_name)) for field_name in ZONE_LIST_FIELDS},
        )
        zone.raise_(
            ShippingZoneCreated(
                zone_id=str(zone.id),
                code=zone.code,
                name=zone.name,
                is_default=zone.is_default,
            )
        )
        return zone

    def update(self, name=None, description=None, sort_order=None, is_default=None, is_active=None, **lists):
        if name is not None:
            self.name = name
        if description is not None:
            self.description = description
        if sort_order is not None:
            self.sort_order = sort_order
        if is_default is not None:
            self.is_default = is_default
        if is_active is not None:
            self.is_active = is_active
        for field_name in ZONE_LIST_FIELDS:
            if lists.get(field_name) is not None:
                setattr(self, field_name, dump_list(lists[field_name]))
        self.raise_(ShippingZoneUpdated(zone_id=str(self.id)))

    def unset_default(self):
        self.is_default = False

    @property
    def rules(self) -> ZoneRules:
        return rules_for(self)

    def matches_address(self, address) -> bool:
        return self.rules.matches(address)
