"""Discount usage tracking: invoked once per discount after a checkout completes.

Usage is never recorded while a cart is priced or a coupon is validated.
"""

import structlog
from protean import handle
from protean.fields import DateTime, Decimal, Identifier
from protean.utils.globals import current_domain

from pricing.discount.discount import Discount
from pricing.domain import pricing
from pricing.shared.money import round_money
from pricing.shared.timestamps import utc_now

logger = structlog.get_logger(__name__)


@pricing.aggregate
class DiscountUsage:
    discount_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier()
    amount = Decimal(required=True, min_value=0)
    used_at = DateTime()


@pricing.command(part_of="Discount")
class RecordDiscountUsage:
    """Record that an order consumed one use of a discount."""

    discount_id = Identifier(required=True)
    order_id = Identifier(required=True)
    customer_id = Identifier()
    amount = Decimal(required=True, min_value=0)


@pricing.command_handler(part_of=Discount)
class DiscountUsageHandler:
    @handle(RecordDiscountUsage)
    def record_usage(self, command):
        repo = current_domain.repository_for(Discount)
        discount = repo.get(command.discount_id)
        discount.record_usage(
            order_id=command.order_id,
            customer_id=command.customer_id,
            amount=command.amount,
        )
        repo.add(discount)

        usage = DiscountUsage(
            discount_id=str(discount.id),
            order_id=command.order_id,
            customer_id=command.customer_id,
            amount=round_money(command.amount),
            used_at=utc_now(),
        )
        current_domain.repository_for(DiscountUsage).add(usage)

        logger.info(
            "Recorded discount usage",
            discount_id=str(discount.id),
            order_id=str(command.order_id),
            usage_count=discount.usage_count,
        )
        return str(usage.id)
