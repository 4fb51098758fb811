"""Geographic zone rules shared by tax zones and shipping zones.

A zone holds inclusion lists (countries, ``CC-ST`` state keys, postal code
patterns, cities) and exclusion lists (countries, state keys, exact postal
codes). Exclusions are checked first. A zone without any inclusion list only
matches when it is the default zone; otherwise one satisfied inclusion list is
enough.
"""

import json
from dataclasses import dataclass

ZONE_LIST_FIELDS = (
    "countries",
    "states",
    "postal_code_patterns",
    "cities",
    "excluded_countries",
    "excluded_states",
    "excluded_postal_codes",
)


def load_list(raw) -> list[str]:
    """Decode a JSON array stored in a Text field."""
    if not raw:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(v) for v in raw]
    return [str(v) for v in json.loads(raw)]


def dump_list(values) -> str:
    """Encode a list of codes for a Text field, dropping blanks and duplicates."""
    seen = []
    for value in values or []:
        value = str(value).strip()
        if value and value not in seen:
            seen.append(value)
    return json.dumps(seen)


def normalize_codes(values) -> list[str]:
    return [str(v).strip().upper() for v in values or [] if str(v).strip()]


def matches_postal_pattern(postal_code: str, pattern: str) -> bool:
    """Match a postal code against an exact code, ``90*`` prefix or ``10001-10099`` range."""
    if not pattern or not postal_code:
        return False

    if pattern.lower() == postal_code.lower():
        return True

    if pattern.endswith("*"):
        return postal_code.lower().startswith(pattern[:-1].lower())

    if "-" in pattern:
        parts = pattern.split("-")
        compact = postal_code.replace(" ", "").replace("-", "")
        if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit() and compact.isdigit():
            return int(parts[0]) <= int(compact) <= int(parts[1])

    return False


@dataclass(frozen=True)
class ZoneRules:
    is_default: bool = False
    countries: tuple[str, ...] = ()
    states: tuple[str, ...] = ()
    postal_code_patterns: tuple[str, ...] = ()
    cities: tuple[str, ...] = ()
    excluded_countries: tuple[str, ...] = ()
    excluded_states: tuple[str, ...] = ()
    excluded_postal_codes: tuple[str, ...] = ()

    @property
    def has_restrictions(self) -> bool:
        return bool(self.countries or self.states or self.postal_code_patterns or self.cities)

    def matches(self, address) -> bool:
        if address is None:
            return self.is_default

        country = (address.country or "").upper()
        state = (address.state or "").upper()
        postal_code = address.postal_code or ""
        city = address.city or ""
        state_key = f"{country}-{state}"

        if country and country in self.excluded_countries:
            return False
        if state and state_key in self.excluded_states:
            return False
        if postal_code and postal_code in self.excluded_postal_codes:
            return False

        if not self.has_restrictions:
            return self.is_default

        if country and country in self.countries:
            return True
        if state and state_key in self.states:
            return True
        if postal_code and any(matches_postal_pattern(postal_code, p) for p in self.postal_code_patterns):
            return True
        if city and city.lower() in (c.lower() for c in self.cities):
            return True

        return False


def rules_for(zone) -> ZoneRules:
    """Build the immutable matching rules of a tax or shipping zone aggregate."""
    return ZoneRules(
        is_default=bool(zone.is_default),
        countries=tuple(normalize_codes(load_list(zone.countries))),
        states=tuple(normalize_codes(load_list(zone.states))),
        postal_code_patterns=tuple(load_list(zone.postal_code_patterns)),
        cities=tuple(load_list(zone.cities)),
        excluded_countries=tuple(normalize_codes(load_list(zone.excluded_countries))),
        excluded_states=tuple(normalize_codes(load_list(zone.excluded_states))),
        excluded_postal_codes=tuple(load_list(zone.excluded_postal_codes)),
    )
