"""Discount engine: coupon validation, per-type evaluation and cart aggregation.

Everything here is a pure function of a ``CartSnapshot`` and discount
configuration. Nothing is persisted and usage counts are never touched;
``RecordDiscountUsage`` does that after checkout.

Each ``DiscountType`` has its own evaluator in ``EVALUATORS``. Evaluators
return the raw amount together with its per-line allocations; the
``max_discount_amount`` clamp is applied afterwards and re-scales the
allocations so they keep summing to the reported amount.
"""

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pricing.discount.discount import Discount, DiscountType
from pricing.shared.money import HUNDRED, ZERO, round_currency, round_money, to_decimal
from pricing.shared.snapshot import CartSnapshot, LineSnapshot
from pricing.shared.timestamps import as_utc, utc_now


class CouponError(Enum):
    INVALID_CODE = "INVALID_CODE"
    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    CUSTOMER_USAGE_LIMIT = "CUSTOMER_USAGE_LIMIT"
    MINIMUM_NOT_MET = "MINIMUM_NOT_MET"
    NOT_APPLICABLE = "NOT_APPLICABLE"


COUPON_MESSAGES = {
    CouponError.INVALID_CODE: "Coupon code not found.",
    CouponError.INACTIVE: "This coupon is no longer active.",
    CouponError.NOT_STARTED: "This coupon is not yet valid.",
    CouponError.EXPIRED: "This coupon has expired.",
    CouponError.USAGE_LIMIT_REACHED: "This coupon has reached its usage limit.",
    CouponError.CUSTOMER_USAGE_LIMIT: "You have already used this coupon the maximum number of times.",
    CouponError.MINIMUM_NOT_MET: "Minimum order amount of {minimum} required.",
    CouponError.NOT_APPLICABLE: "This coupon is not applicable to your cart.",
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class CouponValidation:
    is_valid: bool
    discount: Discount | None = None
    error: CouponError | None = None
    message: str | None = None

    @classmethod
    def success(cls, discount: Discount) -> "CouponValidation":
        return cls(is_valid=True, discount=discount)

    @classmethod
    def failure(cls, error: CouponError, **params) -> "CouponValidation":
        return cls(is_valid=False, error=error, message=COUPON_MESSAGES[error].format(**params))


@dataclass(frozen=True)
class LineDiscountAllocation:
    line_id: str
    amount: Decimal


@dataclass(frozen=True)
class DiscountCalculation:
    discount_id: str
    name: str
    discount_type: DiscountType
    amount: Decimal
    line_allocations: tuple[LineDiscountAllocation, ...] = ()
    code: str | None = None

    @property
    def is_coupon(self) -> bool:
        return bool(self.code)

    @property
    def allocated_total(self) -> Decimal:
        return sum((a.amount for a in self.line_allocations), ZERO)

    def to_payload(self) -> dict:
        return {
            "discount_id": self.discount_id,
            "code": self.code,
            "name": self.name,
            "type": self.discount_type.value,
            "amount": str(self.amount),
            "is_coupon": self.is_coupon,
            "line_allocations": [{"line_id": a.line_id, "amount": str(a.amount)} for a in self.line_allocations],
        }


@dataclass(frozen=True)
class CartDiscountCalculation:
    subtotal: Decimal
    applied_discounts: tuple[DiscountCalculation, ...]
    total_discount: Decimal

    def line_discounts(self, lines: Iterable[LineSnapshot]) -> dict[str, Decimal]:
        return capped_line_discounts(self.applied_discounts, lines)


def capped_line_discounts(
    calculations: Iterable[DiscountCalculation], lines: Iterable[LineSnapshot]
) -> dict[str, Decimal]:
    """Sum every discount's allocation per line, capped at the line total."""
    totals: dict[str, Decimal] = {}
    for calculation in calculations:
        for allocation in calculation.line_allocations:
            totals[allocation.line_id] = totals.get(allocation.line_id, ZERO) + allocation.amount
    return {line.id: round_money(min(totals.get(line.id, ZERO), line.line_total)) for line in lines}


# ---------------------------------------------------------------------------
# Allocation helpers
# ---------------------------------------------------------------------------
def allocate_proportionally(amount: Decimal, lines: Sequence[LineSnapshot]) -> tuple[LineDiscountAllocation, ...]:
    """Split ``amount`` across ``lines`` by line total; the rounding remainder lands on the last line."""
    amount = round_money(amount)
    base = sum((line.line_total for line in lines), ZERO)
    if not lines or amount <= ZERO or base <= ZERO:
        return ()

    allocations = []
    allocated = ZERO
    for line in lines[:-1]:
        share = round_money(amount * line.line_total / base)
        allocations.append(LineDiscountAllocation(line_id=line.id, amount=share))
        allocated += share
    allocations.append(LineDiscountAllocation(line_id=lines[-1].id, amount=amount - allocated))
    return tuple(allocations)


def rescale_allocations(
    allocations: Sequence[LineDiscountAllocation], target: Decimal
) -> tuple[LineDiscountAllocation, ...]:
    """Scale allocations so they sum to ``target``; the remainder lands on the last allocation."""
    raw = sum((a.amount for a in allocations), ZERO)
    if not allocations or raw <= ZERO:
        return tuple(allocations)

    target = round_money(target)
    rescaled = []
    allocated = ZERO
    for allocation in allocations[:-1]:
        share = round_money(allocation.amount * target / raw)
        rescaled.append(LineDiscountAllocation(line_id=allocation.line_id, amount=share))
        allocated += share
    rescaled.append(LineDiscountAllocation(line_id=allocations[-1].line_id, amount=target - allocated))
    return tuple(rescaled)


def applicable_lines(discount: Discount, snapshot: CartSnapshot) -> list[LineSnapshot]:
    return [line for line in snapshot.lines if discount.applies_to(line)]


def is_applicable_to_cart(discount: Discount, snapshot: CartSnapshot) -> bool:
    """Unrestricted discounts apply to any cart; restricted ones need a matching line."""
    if not discount.has_restrictions:
        return True
    return bool(applicable_lines(discount, snapshot))


# ---------------------------------------------------------------------------
# Evaluators
# ---------------------------------------------------------------------------
Evaluation = tuple[Decimal, tuple[LineDiscountAllocation, ...]]


def _percentage(discount: Discount, snapshot: CartSnapshot) -> Evaluation:
    lines = applicable_lines(discount, snapshot)
    base = sum((line.line_total for line in lines), ZERO)
    amount = round_money(base * to_decimal(discount.value) / HUNDRED)
    return amount, allocate_proportionally(amount, lines)


def _fixed_amount(discount: Discount, snapshot: CartSnapshot) -> Evaluation:
    lines = applicable_lines(discount, snapshot)
    base = sum((line.line_total for line in lines), ZERO)
    amount = round_money(min(to_decimal(discount.value), base))
    return amount, allocate_proportionally(amount, lines)


def _free_shipping(discount: Discount, snapshot: CartSnapshot) -> Evaluation:
    # Shipping is finalized before discounts are evaluated
    return round_money(snapshot.shipping_total), ()


def _buy_x_get_y(discount: Discount, snapshot: CartSnapshot) -> Evaluation:
    buy_quantity = discount.minimum_quantity or 1
    get_quantity = discount.maximum_quantity or 1

    # Cheapest units are given away; sorted() is stable so ties keep cart order
    eligible = sorted(applicable_lines(discount, snapshot), key=lambda line: line.unit_price)
    total_quantity = sum(line.quantity for line in eligible)
    sets = total_quantity // (buy_quantity + get_quantity)
    remaining_free = sets * get_quantity

    allocations = []
    amount = ZERO
    for line in eligible:
        if remaining_free <= 0:
            break
        freed = min(line.quantity, remaining_free)
        line_amount = round_money(line.unit_price * freed)
        allocations.append(LineDiscountAllocation(line_id=line.id, amount=line_amount))
        amount += line_amount
        remaining_free -= freed

    return round_money(amount), tuple(allocations)


EVALUATORS: dict[DiscountType, Callable[[Discount, CartSnapshot], Evaluation]] = {
    DiscountType.PERCENTAGE: _percentage,
    DiscountType.FIXED_AMOUNT: _fixed_amount,
    DiscountType.FREE_SHIPPING: _free_shipping,
    DiscountType.BUY_X_GET_Y: _buy_x_get_y,
}


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------
def validate_coupon(
    discount: Discount | None,
    snapshot: CartSnapshot,
    now: datetime | None = None,
    customer_usage_count: int = 0,
) -> CouponValidation:
    """Run the coupon checks in order; the first failing check wins.

    ``customer_usage_count`` is how many times ``snapshot.customer_id`` has
    already used this discount. It is only consulted for known customers.
    """
    now = as_utc(now) or utc_now()

    if discount is None:
        return CouponValidation.failure(CouponError.INVALID_CODE)
    if not discount.is_active:
        return CouponValidation.failure(CouponError.INACTIVE)
    if not discount.has_started(now):
        return CouponValidation.failure(CouponError.NOT_STARTED)
    if discount.is_expired(now):
        return CouponValidation.failure(CouponError.EXPIRED)
    if discount.is_usage_limit_reached:
        return CouponValidation.failure(CouponError.USAGE_LIMIT_REACHED)
    if (
        snapshot.customer_id
        and discount.per_customer_limit is not None
        and customer_usage_count >= discount.per_customer_limit
    ):
        return CouponValidation.failure(CouponError.CUSTOMER_USAGE_LIMIT)
    if discount.minimum_order_amount is not None and snapshot.subtotal < to_decimal(discount.minimum_order_amount):
        return CouponValidation.failure(
            CouponError.MINIMUM_NOT_MET, minimum=round_currency(discount.minimum_order_amount)
        )
    if not is_applicable_to_cart(discount, snapshot):
        return CouponValidation.failure(CouponError.NOT_APPLICABLE)

    return CouponValidation.success(discount)


def calculate_discount(discount: Discount, snapshot: CartSnapshot) -> DiscountCalculation:
    discount_type = DiscountType(discount.discount_type)
    amount, allocations = EVALUATORS[discount_type](discount, snapshot)

    if discount.max_discount_amount is not None:
        cap = round_money(discount.max_discount_amount)
        if amount > cap:
            allocations = rescale_allocations(allocations, cap)
            amount = cap

    return DiscountCalculation(
        discount_id=str(discount.id),
        code=discount.code,
        name=discount.name,
        discount_type=discount_type,
        amount=round_money(amount),
        line_allocations=tuple(a for a in allocations if a.amount != ZERO),
    )


def is_automatically_applicable(discount: Discount, snapshot: CartSnapshot, now: datetime) -> bool:
    """Automatic discounts skip the coupon-only checks but honour dates, limits and minimums."""
    if discount.is_coupon or not discount.is_currently_valid(now):
        return False
    if discount.minimum_order_amount is not None and snapshot.subtotal < to_decimal(discount.minimum_order_amount):
        return False
    return is_applicable_to_cart(discount, snapshot)


def calculate_cart_discounts(
    snapshot: CartSnapshot,
    automatic_discounts: Iterable[Discount] = (),
    coupon: Discount | None = None,
    now: datetime | None = None,
) -> CartDiscountCalculation:
    """Evaluate applicable automatic discounts plus an already-validated coupon.

    The total is what the lines actually absorb once each line is capped at
    its line total, plus any amount not allocated to lines (free shipping),
    clamped to the subtotal. Individual discounts are not clamped.
    """
    now = as_utc(now) or utc_now()
    subtotal = snapshot.subtotal

    candidates = [d for d in automatic_discounts if is_automatically_applicable(d, snapshot, now)]
    candidates.sort(key=lambda d: d.priority or 0)
    if coupon is not None:
        candidates.append(coupon)

    applied = []
    for discount in candidates:
        calculation = calculate_discount(discount, snapshot)
        if calculation.amount > ZERO:
            applied.append(calculation)

    line_total = sum(capped_line_discounts(applied, snapshot.lines).values(), ZERO)
    unallocated = sum((c.amount - c.allocated_total for c in applied), ZERO)
    total = line_total + max(unallocated, ZERO)
    return CartDiscountCalculation(
        subtotal=subtotal,
        applied_discounts=tuple(applied),
        total_discount=round_money(min(total, subtotal)),
    )
