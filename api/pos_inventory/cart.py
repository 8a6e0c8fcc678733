# pos_inventory/cart.py
"""
Cart reservation arithmetic.

A ``CartContext`` is the explicit, session-scoped state of one checkout: the
stock figures the cart was opened against and the lines reserved so far.
All functions here are pure over that object, so the same math serves the
checkout screen (advisory) and the sale processor (re-checked against
persisted stock before anything is written).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from pos_inventory.db_models import LineMode
from pos_inventory.errors import ValidationError

ZERO = Decimal("0")


@dataclass
class CartLine:
    mode: LineMode
    item_id: int
    # pieces for EACH, meters for METER
    quantity: Decimal
    roll_id: Optional[int] = None


@dataclass
class CartContext:
    # item_id -> pieces (EACH) or total meters left on rolls (METER)
    stock: Dict[int, Decimal] = field(default_factory=dict)
    modes: Dict[int, LineMode] = field(default_factory=dict)
    roll_remaining: Dict[int, Decimal] = field(default_factory=dict)
    lines: List[CartLine] = field(default_factory=list)


def reserved_in_cart(ctx: CartContext, item_id: int, roll_id: Optional[int] = None,
                     exclude_index: Optional[int] = None) -> Decimal:
    total = ZERO
    for i, line in enumerate(ctx.lines):
        if i == exclude_index or line.item_id != item_id:
            continue
        if roll_id is not None and line.roll_id != roll_id:
            continue
        total += line.quantity
    return total


def remaining_stock(ctx: CartContext, item_id: int, roll_id: Optional[int] = None,
                    exclude_index: Optional[int] = None) -> Decimal:
    if roll_id is not None:
        available = ctx.roll_remaining.get(roll_id, ZERO)
    else:
        available = ctx.stock.get(item_id, ZERO)
    return available - reserved_in_cart(ctx, item_id, roll_id, exclude_index)


def max_for_line(ctx: CartContext, index: int) -> Decimal:
    """Largest quantity line ``index`` could hold given every other line in the cart."""
    line = ctx.lines[index]
    limit = remaining_stock(ctx, line.item_id, exclude_index=index)
    if line.roll_id is not None:
        limit = min(limit, remaining_stock(ctx, line.item_id, line.roll_id, exclude_index=index))
    return max(limit, ZERO)


def _check_fits(ctx: CartContext, line: CartLine, exclude_index: Optional[int] = None) -> None:
    if line.item_id not in ctx.stock:
        raise ValidationError(f"Item {line.item_id} is not known to this cart")
    expected = ctx.modes.get(line.item_id)
    if expected is not None and expected != line.mode:
        raise ValidationError(f"Item {line.item_id} is sold by {expected.value}, not {line.mode.value}")
    if line.quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")

    left = remaining_stock(ctx, line.item_id, exclude_index=exclude_index)
    if line.quantity > left:
        raise ValidationError(
            f"Insufficient stock for item {line.item_id}: requested {line.quantity}, available {max(left, ZERO)}"
        )
    if line.roll_id is not None:
        if line.roll_id not in ctx.roll_remaining:
            raise ValidationError(f"Roll {line.roll_id} does not belong to item {line.item_id}")
        on_roll = remaining_stock(ctx, line.item_id, line.roll_id, exclude_index=exclude_index)
        if line.quantity > on_roll:
            raise ValidationError(
                f"Cut of {line.quantity} m exceeds remaining {max(on_roll, ZERO)} m on roll {line.roll_id}"
            )


def reserve(ctx: CartContext, line: CartLine, merge: bool = True) -> int:
    """Add ``line`` to the cart (merging into a matching line) and return its index."""
    if merge:
        for i, existing in enumerate(ctx.lines):
            if (existing.mode, existing.item_id, existing.roll_id) == (line.mode, line.item_id, line.roll_id):
                merged = CartLine(line.mode, line.item_id, existing.quantity + line.quantity, line.roll_id)
                _check_fits(ctx, merged, exclude_index=i)
                ctx.lines[i] = merged
                return i
    _check_fits(ctx, line)
    ctx.lines.append(line)
    return len(ctx.lines) - 1


def release(ctx: CartContext, index: int, quantity: Optional[Decimal] = None) -> None:
    """Drop line ``index`` or reduce it by ``quantity``."""
    if index < 0 or index >= len(ctx.lines):
        raise ValidationError(f"No cart line at position {index}")
    line = ctx.lines[index]
    if quantity is None or quantity >= line.quantity:
        del ctx.lines[index]
        return
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero")
    ctx.lines[index] = CartLine(line.mode, line.item_id, line.quantity - quantity, line.roll_id)


def aggregate_demand(lines: Iterable[CartLine]) -> Dict[Tuple[int, Optional[int]], Decimal]:
    """Total demand per (item, roll); roll is None for item-level demand."""
    out: Dict[Tuple[int, Optional[int]], Decimal] = {}
    for line in lines:
        out[(line.item_id, None)] = out.get((line.item_id, None), ZERO) + line.quantity
        if line.roll_id is not None:
            out[(line.item_id, line.roll_id)] = out.get((line.item_id, line.roll_id), ZERO) + line.quantity
    return out


def check_demand(ctx: CartContext, lines: Iterable[CartLine]) -> None:
    """Reject a cart whose combined demand per item or roll exceeds the stock it was opened against."""
    for (item_id, roll_id), wanted in aggregate_demand(lines).items():
        if roll_id is None:
            available = ctx.stock.get(item_id, ZERO)
            if wanted > available:
                raise ValidationError(
                    f"Insufficient stock for item {item_id}: requested {wanted} in total, available {max(available, ZERO)}"
                )
        elif roll_id in ctx.roll_remaining and wanted > ctx.roll_remaining[roll_id]:
            raise ValidationError(
                f"Cut of {wanted} m in total exceeds remaining {ctx.roll_remaining[roll_id]} m on roll {roll_id}"
            )
