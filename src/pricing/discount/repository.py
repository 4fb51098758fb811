"""Repositories for discount configuration and usage history."""

from protean.exceptions import ObjectNotFoundError

from pricing.discount.discount import Discount, normalize_code
from pricing.discount.usage import DiscountUsage
from pricing.domain import pricing


@pricing.repository(part_of=Discount)
class DiscountRepository:
    def find_by_code(self, code: str) -> Discount | None:
        """Find a discount by coupon code (case-insensitive), or None."""
        code = normalize_code(code)
        if not code:
            return None
        try:
            return self.find_by(code=code)
        except ObjectNotFoundError:
            return None

    def code_exists(self, code: str, exclude_id: str | None = None) -> bool:
        discount = self.find_by_code(code)
        return discount is not None and str(discount.id) != str(exclude_id)

    def active(self) -> list[Discount]:
        return self.query.filter(is_active=True).limit(None).all().items

    def active_automatic(self) -> list[Discount]:
        """Active discounts without a code, in ascending priority."""
        discounts = [d for d in self.active() if not d.code]
        return sorted(discounts, key=lambda d: d.priority or 0)


@pricing.repository(part_of=DiscountUsage)
class DiscountUsageRepository:
    def count_for_customer(self, discount_id: str, customer_id: str) -> int:
        return self.query.filter(discount_id=str(discount_id), customer_id=str(customer_id)).count()

    def for_discount(self, discount_id: str) -> list[DiscountUsage]:
        return self.query.filter(discount_id=str(discount_id)).limit(None).all().items
