"""Tests for discount evaluation, allocation and cart-level aggregation."""

from datetime import timedelta
from decimal import Decimal

from pricing.discount.discount import Discount
from pricing.discount.engine import (
    allocate_proportionally,
    calculate_cart_discounts,
    calculate_discount,
    is_automatically_applicable,
)
from pricing.shared.snapshot import CartSnapshot
from pricing.shared.timestamps import utc_now


def _discount(discount_type="Percentage", value=10, **settings):
    return Discount.create(name=f"{discount_type} {value}", discount_type=discount_type, value=value, **settings)


class TestPercentage:
    def test_ten_percent_of_hundred(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 100),))
        calculation = calculate_discount(_discount(value=10), snapshot)
        assert calculation.amount == Decimal("10")
        assert calculation.allocated_total == calculation.amount

    def test_only_applicable_lines_form_the_base(self, make_line):
        snapshot = CartSnapshot(
            lines=(
                make_line("a", 40, category_ids=("shoes",)),
                make_line("b", 60),
            )
        )
        calculation = calculate_discount(_discount(value=50, applicable_category_ids=["shoes"]), snapshot)
        assert calculation.amount == Decimal("20")
        assert [a.line_id for a in calculation.line_allocations] == ["a"]

    def test_max_discount_clamps_and_rescales(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 60), make_line("b", 40)))
        calculation = calculate_discount(_discount(value=50, max_discount_amount=20), snapshot)
        assert calculation.amount == Decimal("20")
        assert calculation.allocated_total == Decimal("20")
        amounts = {a.line_id: a.amount for a in calculation.line_allocations}
        assert amounts == {"a": Decimal("12"), "b": Decimal("8")}


class TestFixedAmount:
    def test_restricted_to_one_line(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 30, product_id="prod-a"), make_line("b", 50)))
        calculation = calculate_discount(
            _discount("FixedAmount", 20, applicable_product_ids=["prod-a"]),
            snapshot,
        )
        assert calculation.amount == Decimal("20")
        assert [(a.line_id, a.amount) for a in calculation.line_allocations] == [("a", Decimal("20"))]

    def test_capped_at_applicable_base(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 30, product_id="prod-a"), make_line("b", 50)))
        calculation = calculate_discount(
            _discount("FixedAmount", 50, applicable_product_ids=["prod-a"]),
            snapshot,
        )
        assert calculation.amount == Decimal("30")

    def test_rounding_remainder_lands_on_last_line(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 10), make_line("b", 10), make_line("c", 10)))
        calculation = calculate_discount(_discount("FixedAmount", 10), snapshot)
        amounts = [a.amount for a in calculation.line_allocations]
        assert amounts == [Decimal("3.3333"), Decimal("3.3333"), Decimal("3.3334")]
        assert sum(amounts) == Decimal("10")


class TestBuyXGetY:
    def test_cheapest_unit_is_free(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 10, quantity=3), make_line("b", 20, quantity=1)))
        discount = _discount("BuyXGetY", 0, minimum_quantity=2, maximum_quantity=1)
        calculation = calculate_discount(discount, snapshot)
        assert calculation.amount == Decimal("10")
        assert [(a.line_id, a.amount) for a in calculation.line_allocations] == [("a", Decimal("10"))]

    def test_incomplete_set_gives_nothing(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 10, quantity=2),))
        discount = _discount("BuyXGetY", 0, minimum_quantity=2, maximum_quantity=1)
        assert calculate_discount(discount, snapshot).amount == Decimal("0")

    def test_free_units_span_lines(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 5, quantity=1), make_line("b", 8, quantity=5)))
        discount = _discount("BuyXGetY", 0, minimum_quantity=1, maximum_quantity=1)
        calculation = calculate_discount(discount, snapshot)
        # 6 units make 3 sets: the $5 unit and two $8 units are free
        assert calculation.amount == Decimal("21")


class TestFreeShipping:
    def test_amount_is_current_shipping_total(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 50),)).with_shipping_total(Decimal("5.99"))
        calculation = calculate_discount(_discount("FreeShipping", 0), snapshot)
        assert calculation.amount == Decimal("5.99")
        assert calculation.line_allocations == ()


class TestAllocation:
    def test_allocations_sum_to_amount(self, make_line):
        lines = (make_line("a", "19.99", quantity=3), make_line("b", "7.49"), make_line("c", "0.99", quantity=7))
        allocations = allocate_proportionally(Decimal("11.11"), lines)
        assert sum(a.amount for a in allocations) == Decimal("11.11")

    def test_nothing_to_allocate(self, make_line):
        assert allocate_proportionally(Decimal("0"), (make_line("a", 10),)) == ()
        assert allocate_proportionally(Decimal("5"), ()) == ()


class TestCartDiscounts:
    def test_total_clamped_to_subtotal(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 100),))
        first = _discount("FixedAmount", 80, priority=1)
        second = _discount("FixedAmount", 80, priority=2)
        result = calculate_cart_discounts(snapshot, [first, second])
        assert len(result.applied_discounts) == 2
        assert result.total_discount == Decimal("100")

    def test_coupon_is_evaluated_after_automatic_discounts(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 100),))
        automatic = _discount(value=5)
        coupon = _discount(value=10, code="save10")
        result = calculate_cart_discounts(snapshot, [automatic], coupon)
        assert [c.code for c in result.applied_discounts] == [None, "SAVE10"]
        assert result.total_discount == Decimal("15")

    def test_automatic_discount_needs_minimum(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 40),))
        discount = _discount(value=10, minimum_order_amount=50)
        assert calculate_cart_discounts(snapshot, [discount]).applied_discounts == ()

    def test_coded_discounts_are_never_automatic(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 40),))
        assert not is_automatically_applicable(_discount(code="SECRET"), snapshot, utc_now())

    def test_expired_automatic_discount_skipped(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 40),))
        now = utc_now()
        discount = _discount(start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
        assert calculate_cart_discounts(snapshot, [discount], now=now).total_discount == Decimal("0")

    def test_line_discounts_capped_at_line_total(self, make_line):
        snapshot = CartSnapshot(lines=(make_line("a", 10, product_id="prod-a"), make_line("b", 90)))
        first = _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=1)
        second = _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=2)
        result = calculate_cart_discounts(snapshot, [first, second])
        assert result.line_discounts(snapshot.lines) == {"a": Decimal("10"), "b": Decimal("0")}
        assert result.total_discount == Decimal("10")

    def test_line_discounts_sum_to_total_discount(self, make_line):
        snapshot = CartSnapshot(
            lines=(make_line("a", 10, product_id="prod-a"), make_line("b", "24.99"), make_line("c", "5.01"))
        )
        discounts = [
            _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=1),
            _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=2),
            _discount(value=15, priority=3),
        ]
        result = calculate_cart_discounts(snapshot, discounts)
        assert sum(result.line_discounts(snapshot.lines).values()) == result.total_discount

    def test_free_shipping_adds_to_what_the_lines_absorb(self, make_line):
        lines = (make_line("a", 10, product_id="prod-a"), make_line("b", 90))
        snapshot = CartSnapshot(lines=lines).with_shipping_total(Decimal("5"))
        discounts = [
            _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=1),
            _discount("FixedAmount", 8, applicable_product_ids=["prod-a"], priority=2),
            _discount("FreeShipping", 0, priority=3),
        ]
        result = calculate_cart_discounts(snapshot, discounts)
        assert result.line_discounts(snapshot.lines) == {"a": Decimal("10"), "b": Decimal("0")}
        assert result.total_discount == Decimal("15")
