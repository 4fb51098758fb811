from decimal import Decimal

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def pricing_bed():
    from pricing.domain import pricing

    bed = DomainFixture(pricing)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(pricing_bed):
    with pricing_bed.domain_context() as domain:
        yield
        # Checkout sessions live in the cache, which the fixture does not reset
        for cache in domain.caches.values():
            cache.flush_all()


@pytest.fixture()
def make_line():
    """Factory for cart line snapshots."""
    from pricing.shared.snapshot import LineSnapshot

    def _make(line_id, unit_price, quantity=1, **overrides):
        values = {
            "id": line_id,
            "product_id": overrides.pop("product_id", f"prod-{line_id}"),
            "unit_price": Decimal(str(unit_price)),
            "quantity": quantity,
        }
        values.update(overrides)
        return LineSnapshot(**values)

    return _make


@pytest.fixture()
def california():
    from pricing.shared.address import Address

    return Address.build(country="US", state="CA", city="San Francisco", postal_code="94105")
