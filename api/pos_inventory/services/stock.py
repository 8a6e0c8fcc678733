# pos_inventory/services/stock.py
"""
Stock ledger primitives.

``Item.stock`` and ``Roll.remaining_m`` are only ever changed through
conditional UPDATEs that re-check the persisted value, so two concurrent
sales cannot both pass a check that only one of them fits.
"""
from __future__ import annotations
import logging
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.db_models import Item, Roll, InventoryUnit, InventoryUnitStatus, METER_UNIT
from pos_inventory.db_models_ext import TransactionItem, RestockRoll, TransactionItemUnit
from pos_inventory.errors import ValidationError, NotFoundError
from pos_inventory.utils import to_decimal, quantize_meters, quantize_money, quantize_pieces

log = logging.getLogger(__name__)

ZERO = Decimal("0")


class StockLedgerService:
    """Item stock counters and roll remainders."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_item(self, item_id: int, lock: bool = False) -> Item:
        stmt = select(Item).where(Item.id == item_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        return item

    async def get_roll(self, roll_id: int, lock: bool = False) -> Roll:
        stmt = select(Roll).where(Roll.id == roll_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        roll = result.scalar_one_or_none()
        if roll is None:
            raise NotFoundError(f"Roll {roll_id} not found")
        return roll

    async def current_stock(self, item_id: int) -> Decimal:
        # column select bypasses the identity map, so this is the persisted value
        value = await self.db.scalar(select(Item.stock).where(Item.id == item_id))
        return to_decimal(value)

    async def roll_remaining(self, roll_id: int) -> Decimal:
        value = await self.db.scalar(select(Roll.remaining_m).where(Roll.id == roll_id))
        return to_decimal(value)

    async def meter_stock(self, item_id: int) -> Decimal:
        """Meters left across all of the item's rolls."""
        value = await self.db.scalar(
            select(func.coalesce(func.sum(Roll.remaining_m), 0)).where(Roll.item_id == item_id)
        )
        return quantize_meters(value)

    async def roll_remainders(self, item_id: int) -> List[Tuple[int, Decimal]]:
        """Persisted ``(roll_id, remaining_m)`` for every roll of the item, oldest first."""
        result = await self.db.execute(
            select(Roll.id, Roll.remaining_m).where(Roll.item_id == item_id).order_by(Roll.id)
        )
        return [(rid, to_decimal(rem)) for rid, rem in result.all()]

    async def list_rolls(self, item_id: int, only_remaining: bool = False) -> List[Roll]:
        stmt = select(Roll).where(Roll.item_id == item_id).order_by(Roll.id)
        if only_remaining:
            stmt = stmt.where(Roll.remaining_m > 0)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # =========================================================================
    # Item stock counter
    # =========================================================================

    async def _quantize_delta(self, item_id: int, delta) -> Decimal:
        item = await self.get_item(item_id)
        qty = quantize_meters(delta) if item.is_meter else quantize_pieces(delta)
        if qty <= 0:
            raise ValidationError(f"Stock change must be positive, got {delta}")
        return qty

    async def increment(self, item_id: int, delta) -> Decimal:
        qty = await self._quantize_delta(item_id, delta)
        await self.db.execute(
            update(Item)
            .where(Item.id == item_id)
            .values(stock=Item.stock + qty)
            .execution_options(synchronize_session=False)
        )
        return await self.current_stock(item_id)

    async def decrement(self, item_id: int, delta) -> Decimal:
        qty = await self._quantize_delta(item_id, delta)
        result = await self.db.execute(
            update(Item)
            .where(Item.id == item_id, Item.stock >= qty)
            .values(stock=Item.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            available = await self.current_stock(item_id)
            log.warning("decrement refused: item=%s requested=%s available=%s", item_id, qty, available)
            raise ValidationError(
                f"Insufficient stock for item {item_id}: requested {qty}, available {available}"
            )
        return await self.current_stock(item_id)

    # =========================================================================
    # Rolls
    # =========================================================================

    async def cut_roll(self, roll_id: int, length, item_id: Optional[int] = None) -> Decimal:
        """Take ``length`` meters off a roll; returns what is left on it."""
        roll = await self.get_roll(roll_id)
        if item_id is not None and roll.item_id != item_id:
            raise ValidationError(f"Roll {roll_id} does not belong to item {item_id}")
        length = quantize_meters(length)
        if length <= 0:
            raise ValidationError("Cut length must be greater than zero")

        result = await self.db.execute(
            update(Roll)
            .where(Roll.id == roll_id, Roll.remaining_m >= length)
            .values(remaining_m=Roll.remaining_m - length)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            left = await self.roll_remaining(roll_id)
            raise ValidationError(f"Cut of {length} m exceeds remaining {left} m on roll {roll_id}")
        return await self.roll_remaining(roll_id)

    async def restore_roll(self, roll_id: int, length) -> Decimal:
        """Put meters back on a roll, never past its original length."""
        length = quantize_meters(length)
        result = await self.db.execute(
            update(Roll)
            .where(Roll.id == roll_id, Roll.remaining_m + length <= Roll.length_m)
            .values(remaining_m=Roll.remaining_m + length)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ValidationError(f"Cannot restore {length} m to roll {roll_id}: exceeds its length")
        return await self.roll_remaining(roll_id)

    async def consume_meters(self, item_id: int, length) -> List[Tuple[int, Decimal]]:
        """
        Consume ``length`` meters from the item's rolls, oldest roll first.

        Returns the cuts as ``[(roll_id, meters), ...]``. Nothing is cut when the
        rolls together hold less than requested.
        """
        length = quantize_meters(length)
        if length <= 0:
            raise ValidationError("Length must be greater than zero")

        result = await self.db.execute(
            select(Roll.id, Roll.remaining_m)
            .where(Roll.item_id == item_id, Roll.remaining_m > 0)
            .order_by(Roll.id)
            .with_for_update()
        )
        rolls = [(rid, to_decimal(rem)) for rid, rem in result.all()]
        available = sum((rem for _, rem in rolls), ZERO)
        if available < length:
            raise ValidationError(
                f"Insufficient stock for item {item_id}: requested {length} m, available {quantize_meters(available)} m"
            )

        cuts: List[Tuple[int, Decimal]] = []
        left = length
        for roll_id, remaining in rolls:
            if left <= 0:
                break
            take = quantize_meters(min(remaining, left))
            if take <= 0:
                continue
            await self.cut_roll(roll_id, take)
            cuts.append((roll_id, take))
            left -= take
        return cuts

    async def add_roll(self, item_id: int, length_m, cost_each=None, barcode: Optional[str] = None) -> Roll:
        """Ad-hoc roll (outside a restock) with its placeholder inventory unit."""
        from pos_inventory.services.inventory_units import generate_placeholder_barcode

        item = await self.get_item(item_id)
        if not item.is_meter:
            raise ValidationError(f"Item {item_id} is not tracked in meters")
        length = quantize_meters(length_m)
        if length <= 0:
            raise ValidationError("Roll length must be greater than zero")

        roll = Roll(item_id=item_id, length_m=length, remaining_m=length)
        self.db.add(roll)
        await self.db.flush()
        self.db.add(InventoryUnit(
            item_id=item_id,
            roll_id=roll.id,
            barcode=barcode or generate_placeholder_barcode(),
            is_placeholder=barcode is None,
            status=InventoryUnitStatus.available,
            cost_each=quantize_money(cost_each or 0),
        ))
        await self.db.flush()
        log.info("roll added: item=%s roll=%s length=%s", item_id, roll.id, length)
        return roll

    async def delete_roll(self, roll_id: int) -> None:
        roll = await self.get_roll(roll_id, lock=True)
        if to_decimal(roll.remaining_m) != to_decimal(roll.length_m):
            raise ValidationError(f"Roll {roll_id} has already been cut and cannot be deleted")
        sold_from = await self.db.scalar(
            select(func.count()).select_from(TransactionItem).where(TransactionItem.roll_id == roll_id)
        )
        received = await self.db.scalar(
            select(func.count()).select_from(RestockRoll).where(RestockRoll.roll_id == roll_id)
        )
        if sold_from or received:
            raise ValidationError(f"Roll {roll_id} is referenced by a sale or restock and cannot be deleted")
        linked = await self.db.scalar(
            select(func.count())
            .select_from(TransactionItemUnit)
            .join(InventoryUnit, InventoryUnit.id == TransactionItemUnit.inventory_unit_id)
            .where(InventoryUnit.roll_id == roll_id)
        )
        if linked:
            raise ValidationError(f"Roll {roll_id} has a sold unit and cannot be deleted")

        await self.db.execute(delete(InventoryUnit).where(InventoryUnit.roll_id == roll_id))
        await self.db.delete(roll)
        await self.db.flush()
        log.info("roll deleted: roll=%s item=%s", roll_id, roll.item_id)

    # =========================================================================
    # Stock unit changes
    # =========================================================================

    async def set_stock_unit(self, item: Item, new_unit: Optional[str]) -> None:
        """Switch an item between EACH and METER; refused once rolls or units exist."""
        new_unit = normalize_stock_unit(new_unit)
        if new_unit == item.stock_unit:
            return
        rolls = await self.db.scalar(select(func.count()).select_from(Roll).where(Roll.item_id == item.id))
        units = await self.db.scalar(
            select(func.count()).select_from(InventoryUnit).where(InventoryUnit.item_id == item.id)
        )
        if rolls or units:
            raise ValidationError(
                f"Cannot change the stock unit of item {item.id}: it already has {rolls} roll(s) and {units} unit(s)"
            )
        if to_decimal(item.stock) != 0:
            raise ValidationError(f"Cannot change the stock unit of item {item.id} while it has stock")
        item.stock_unit = new_unit


def normalize_stock_unit(value: Optional[str]) -> Optional[str]:
    """Accept None/"EACH"/"" for pieces and "m"/"METER" for meters."""
    v = (value or "").strip()
    if v == "" or v.upper() == "EACH":
        return None
    if v.lower() == METER_UNIT or v.upper() == "METER":
        return METER_UNIT
    raise ValidationError(f"Unknown stock unit: {value!r}")
