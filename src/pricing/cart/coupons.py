"""Cart coupon management: commands and handler.

A coupon is validated against the current cart before it is stored; the
failure message is returned to the customer as a validation error.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from pricing.cart.cart import Cart
from pricing.cart.recalculation import coupon_usage_count, recalculate
from pricing.discount.discount import Discount
from pricing.discount.engine import validate_coupon
from pricing.domain import pricing

logger = structlog.get_logger(__name__)


@pricing.command(part_of="Cart")
class ApplyCoupon:
    cart_id = Identifier(required=True)
    coupon_code = String(required=True, max_length=50)


@pricing.command(part_of="Cart")
class RemoveCoupon:
    cart_id = Identifier(required=True)


@pricing.command_handler(part_of=Cart)
class CartCouponHandler:
    @handle(ApplyCoupon)
    def apply_coupon(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)

        snapshot = cart.snapshot()
        discount = current_domain.repository_for(Discount).find_by_code(command.coupon_code)
        validation = validate_coupon(
            discount,
            snapshot,
            customer_usage_count=coupon_usage_count(discount, snapshot.customer_id),
        )
        if not validation.is_valid:
            logger.info(
                "Coupon rejected",
                cart_id=str(cart.id),
                coupon_code=command.coupon_code,
                reason=validation.error.value,
            )
            raise ValidationError({"coupon_code": [validation.message]})

        cart.apply_coupon(discount.code)
        recalculate(cart)
        repo.add(cart)

    @handle(RemoveCoupon)
    def remove_coupon(self, command):
        repo = current_domain.repository_for(Cart)
        cart = repo.get(command.cart_id)
        cart.remove_coupon()
        recalculate(cart)
        repo.add(cart)
