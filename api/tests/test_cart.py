"""
Cart reservation math over an explicit CartContext.
"""
from decimal import Decimal

import pytest

from pos_inventory.cart import (
    CartContext, CartLine, aggregate_demand, check_demand, max_for_line, release, remaining_stock, reserve,
)
from pos_inventory.db_models import LineMode
from pos_inventory.errors import ValidationError

D = Decimal


@pytest.fixture
def ctx():
    # item 1: 5 pieces; item 2: two rolls (10.5 m + 5.25 m)
    return CartContext(
        stock={1: D("5"), 2: D("15.75")},
        modes={1: LineMode.EACH, 2: LineMode.METER},
        roll_remaining={20: D("10.5"), 21: D("5.25")},
    )


class TestReserve:

    def test_merges_same_item(self, ctx):
        assert reserve(ctx, CartLine(LineMode.EACH, 1, D("2"))) == 0
        assert reserve(ctx, CartLine(LineMode.EACH, 1, D("3"))) == 0
        assert ctx.lines[0].quantity == D("5")
        assert remaining_stock(ctx, 1) == 0

    def test_rejects_over_reservation(self, ctx):
        reserve(ctx, CartLine(LineMode.EACH, 1, D("4")))
        with pytest.raises(ValidationError, match="Insufficient stock for item 1"):
            reserve(ctx, CartLine(LineMode.EACH, 1, D("2")))
        assert ctx.lines[0].quantity == D("4")

    def test_no_merge_keeps_lines_apart(self, ctx):
        reserve(ctx, CartLine(LineMode.EACH, 1, D("2")), merge=False)
        reserve(ctx, CartLine(LineMode.EACH, 1, D("2")), merge=False)
        assert len(ctx.lines) == 2
        with pytest.raises(ValidationError):
            reserve(ctx, CartLine(LineMode.EACH, 1, D("2")), merge=False)

    def test_roll_limit(self, ctx):
        reserve(ctx, CartLine(LineMode.METER, 2, D("5"), roll_id=21))
        with pytest.raises(ValidationError, match="exceeds remaining"):
            reserve(ctx, CartLine(LineMode.METER, 2, D("0.5"), roll_id=21))
        # the other roll still has room
        reserve(ctx, CartLine(LineMode.METER, 2, D("10.5"), roll_id=20))

    def test_unknown_roll(self, ctx):
        with pytest.raises(ValidationError, match="does not belong"):
            reserve(ctx, CartLine(LineMode.METER, 2, D("1"), roll_id=99))

    def test_mode_mismatch(self, ctx):
        with pytest.raises(ValidationError, match="sold by EACH"):
            reserve(ctx, CartLine(LineMode.METER, 1, D("1")))

    def test_non_positive_quantity(self, ctx):
        with pytest.raises(ValidationError):
            reserve(ctx, CartLine(LineMode.EACH, 1, D("0")))


class TestLimitsAndRelease:

    def test_max_for_line_excludes_itself(self, ctx):
        reserve(ctx, CartLine(LineMode.EACH, 1, D("2")), merge=False)
        reserve(ctx, CartLine(LineMode.EACH, 1, D("1")), merge=False)
        assert max_for_line(ctx, 0) == D("4")
        assert max_for_line(ctx, 1) == D("3")

    def test_max_for_roll_line(self, ctx):
        reserve(ctx, CartLine(LineMode.METER, 2, D("12")))
        reserve(ctx, CartLine(LineMode.METER, 2, D("1"), roll_id=21))
        # item has 15.75 - 12 = 3.75 left for the roll line, roll 21 has 5.25
        assert max_for_line(ctx, 1) == D("3.75")

    def test_partial_and_full_release(self, ctx):
        i = reserve(ctx, CartLine(LineMode.EACH, 1, D("4")))
        release(ctx, i, D("1"))
        assert ctx.lines[i].quantity == D("3")
        release(ctx, i)
        assert ctx.lines == []
        assert remaining_stock(ctx, 1) == D("5")

    def test_release_bad_index(self, ctx):
        with pytest.raises(ValidationError):
            release(ctx, 3)

    def test_aggregate_demand(self):
        lines = [
            CartLine(LineMode.METER, 2, D("1.5"), roll_id=20),
            CartLine(LineMode.METER, 2, D("2")),
            CartLine(LineMode.EACH, 1, D("3")),
        ]
        demand = aggregate_demand(lines)
        assert demand[(2, None)] == D("3.5")
        assert demand[(2, 20)] == D("1.5")
        assert demand[(1, None)] == D("3")

    def test_check_demand_sums_lines(self, ctx):
        fits = [CartLine(LineMode.EACH, 1, D("2")), CartLine(LineMode.EACH, 1, D("3"))]
        check_demand(ctx, fits)
        with pytest.raises(ValidationError, match="requested 6 in total"):
            check_demand(ctx, fits + [CartLine(LineMode.EACH, 1, D("1"))])

    def test_check_demand_per_roll(self, ctx):
        cuts = [CartLine(LineMode.METER, 2, D("3"), roll_id=21), CartLine(LineMode.METER, 2, D("2.5"), roll_id=21)]
        with pytest.raises(ValidationError, match="exceeds remaining 5.25 m on roll 21"):
            check_demand(ctx, cuts)
        # a roll the cart does not know is left to reserve()
        check_demand(ctx, [CartLine(LineMode.METER, 2, D("1"), roll_id=99)])
