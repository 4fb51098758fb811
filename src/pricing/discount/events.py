"""Domain events for the Discount and DiscountUsage aggregates."""

from protean.fields import Decimal, Identifier, Integer, String, Text

from pricing.domain import pricing


@pricing.event(part_of="Discount")
class DiscountCreated:
    """A discount or coupon was configured."""

    __version__ = 1

    discount_id = Identifier(required=True)
    name = String(required=True)
    code = String()
    discount_type = String(required=True)
    value = Decimal(required=True)


@pricing.event(part_of="Discount")
class DiscountUpdated:
    """Discount settings were changed."""

    __version__ = 1

    discount_id = Identifier(required=True)
    changed_fields = Text(required=True)  # JSON array of field names


@pricing.event(part_of="Discount")
class DiscountActivated:
    __version__ = 1

    discount_id = Identifier(required=True)


@pricing.event(part_of="Discount")
class DiscountDeactivated:
    """A discount stopped applying, manually or because it expired or ran out of uses."""

    __version__ = 1

    discount_id = Identifier(required=True)
    reason = String(required=True)


@pricing.event(part_of="Discount")
class DiscountUsageRecorded:
    """A completed checkout consumed one use of a discount."""

    __version__ = 1

    discount_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier()
    amount = Decimal(required=True)
    usage_count = Integer(required=True)
