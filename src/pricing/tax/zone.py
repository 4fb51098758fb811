"""Tax zone aggregate: a jurisdiction defined by inclusion and exclusion lists."""

from protean.fields import Boolean, Integer, String, Text

from pricing.domain import pricing
from pricing.shared.zones import ZONE_LIST_FIELDS, ZoneRules, dump_list, rules_for
from pricing.tax.events import DefaultTaxZoneChanged, TaxZoneCreated, TaxZoneUpdated


@pricing.aggregate
class TaxZone:
    code = String(required=True, max_length=50)
    name = String(required=True, max_length=200)
    priority = Integer(default=0)  # Higher priority zones are evaluated first
    sort_order = Integer(default=0)
    is_default = Boolean(default=False)
    is_active = Boolean(default=True)
    # JSON arrays; states are "CC-ST" keys
    countries = Text()
    states = Text()
    postal_code_patterns = Text()
    cities = Text()
    excluded_countries = Text()
    excluded_states = Text()
    excluded_postal_codes = Text()

    @classmethod
    def create(cls, code, name, priority=0, sort_order=0, **lists):
        zone = cls(
            code=code.strip().upper(),
            name=name,
            priority=priority,
            sort_order=sort_order,
            **{field_name: dump_list(lists.get(field_name)) for field_name in ZONE_LIST_FIELDS},
        )
        zone.raise_(TaxZoneCreated(zone_id=str(zone.id), code=zone.code, name=zone.name))
        return zone

    def update(self, name=None, priority=None, sort_order=None, is_active=None, **lists):
        if name is not None:
            self.name = name
        if priority is not None:
            self.priority = priority
        if sort_order is not None:
            self.sort_order = sort_order
        if is_active is not None:
            self.is_active = is_active
        for field_name in ZONE_LIST_FIELDS:
            if lists.get(field_name) is not None:
                setattr(self, field_name, dump_list(lists[field_name]))
        self.raise_(TaxZoneUpdated(zone_id=str(self.id)))

    def mark_default(self, is_default=True):
        if bool(self.is_default) == is_default:
            return
        self.is_default = is_default
        self.raise_(DefaultTaxZoneChanged(zone_id=str(self.id), is_default=is_default))

    @property
    def rules(self) -> ZoneRules:
        return rules_for(self)

    def matches_address(self, address) -> bool:
        return self.rules.matches(address)
