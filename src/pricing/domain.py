"""Pricing bounded context: discounts, tax, shipping and cart totals.

Computes the monetary state of a shopping cart from its line items and the
independently configured pricing rules. Configuration aggregates (discounts,
tax zones/rates, shipping zones/methods/rates) are managed through admin
commands; the cart is recalculated on every mutation.
"""

from protean.domain import Domain

from pricing.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
pricing = Domain(name="pricing")
