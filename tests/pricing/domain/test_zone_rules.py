"""Tests for geographic zone matching shared by tax and shipping zones."""

from pricing.shared.address import Address
from pricing.shared.zones import ZoneRules, dump_list, load_list, matches_postal_pattern


def _address(**overrides):
    values = {"country": "US", "state": "CA", "city": "Los Angeles", "postal_code": "90001"}
    values.update(overrides)
    return Address.build(**values)


class TestPostalPatterns:
    def test_exact_match_ignores_case(self):
        assert matches_postal_pattern("sw1a 1aa", "SW1A 1AA")

    def test_wildcard_prefix(self):
        assert matches_postal_pattern("90210", "90*")
        assert not matches_postal_pattern("10001", "90*")

    def test_numeric_range(self):
        assert matches_postal_pattern("10050", "10001-10099")
        assert not matches_postal_pattern("10100", "10001-10099")

    def test_non_numeric_range_does_not_match(self):
        assert not matches_postal_pattern("ABC", "10001-10099")

    def test_blank_values_never_match(self):
        assert not matches_postal_pattern("", "90*")
        assert not matches_postal_pattern("90001", "")


class TestZoneRules:
    def test_country_inclusion(self):
        assert ZoneRules(countries=("US",)).matches(_address())

    def test_state_key_inclusion(self):
        rules = ZoneRules(states=("US-CA",))
        assert rules.matches(_address())
        assert not rules.matches(_address(state="NY"))

    def test_any_inclusion_list_is_enough(self):
        rules = ZoneRules(states=("US-NY",), postal_code_patterns=("90*",))
        assert rules.matches(_address(state="CA", postal_code="90001"))

    def test_city_matching_ignores_case(self):
        assert ZoneRules(cities=("los angeles",)).matches(_address())

    def test_exclusions_win_over_inclusions(self):
        rules = ZoneRules(countries=("US",), excluded_states=("US-AK", "US-HI"))
        assert rules.matches(_address())
        assert not rules.matches(_address(state="HI", postal_code="96801"))

    def test_excluded_postal_code(self):
        rules = ZoneRules(countries=("US",), excluded_postal_codes=("90001",))
        assert not rules.matches(_address())

    def test_excluded_country(self):
        rules = ZoneRules(postal_code_patterns=("90*",), excluded_countries=("US",))
        assert not rules.matches(_address())

    def test_unrestricted_zone_only_matches_as_default(self):
        assert not ZoneRules().matches(_address())
        assert ZoneRules(is_default=True).matches(_address())

    def test_missing_address_only_matches_default(self):
        assert ZoneRules(is_default=True).matches(None)
        assert not ZoneRules(countries=("US",)).matches(None)

    def test_exclusions_apply_to_default_zone(self):
        assert not ZoneRules(is_default=True, excluded_countries=("US",)).matches(_address())


class TestListEncoding:
    def test_dump_drops_blanks_and_duplicates(self):
        assert load_list(dump_list(["US", " ", "US", "CA"])) == ["US", "CA"]

    def test_load_empty(self):
        assert load_list(None) == []
        assert load_list("") == []
