"""Address value object used for tax and shipping zone resolution."""

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import String

from pricing.domain import pricing


@pricing.value_object
class Address:
    line1 = String(max_length=255)
    line2 = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(required=True, max_length=2)

    @invariant.post
    def country_must_be_alpha_2(self):
        if self.country and (len(self.country) != 2 or not self.country.isalpha()):
            raise ValidationError({"country": ["Country must be an ISO 3166 alpha-2 code"]})

    @classmethod
    def build(cls, country, state=None, city=None, postal_code=None, line1=None, line2=None):
        """Build a normalized address (country and state upper-cased)."""
        return cls(
            line1=line1,
            line2=line2,
            city=city,
            state=state.upper() if state else None,
            postal_code=postal_code,
            country=country.upper() if country else country,
        )

    @property
    def state_key(self) -> str | None:
        """Country-qualified state key, e.g. ``US-CA``."""
        if not self.state:
            return None
        return f"{self.country}-{self.state}".upper()

    def to_payload(self) -> dict:
        return {
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
        }
