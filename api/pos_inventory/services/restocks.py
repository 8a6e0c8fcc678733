# pos_inventory/services/restocks.py
"""
Restock (goods receipt) processor.

A restock is all-or-nothing: every line is validated before anything is
written, and the caller's session commits or rolls back the whole receipt.
"""
from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.db_models import (
    Item, Roll, InventoryUnit, LineMode, CashDirection, CashMovementKind, METER_UNIT,
)
from pos_inventory.db_models_ext import Restock, RestockItem, RestockRoll
from pos_inventory.errors import ValidationError, NotFoundError
from pos_inventory.models import (
    CreateRestockRequest, EachRestockLine, MeterRestockLine, NewItemSpec,
    restock_to_dict,
)
from pos_inventory.services.cashbox import CashboxService, SupplierService, payment_status
from pos_inventory.services.inventory_units import InventoryUnitService, generate_placeholder_barcode
from pos_inventory.services.stock import StockLedgerService
from pos_inventory.utils import MONEY_TOLERANCE, quantize_meters, quantize_money, to_decimal, utcnow

log = logging.getLogger(__name__)

ZERO = Decimal("0")
AnyRestockLine = Union[EachRestockLine, MeterRestockLine]


def line_total(line: AnyRestockLine) -> Decimal:
    """quantity x cost for EACH, sum of roll lengths x cost for METER."""
    cost = quantize_money(line.unit_cost or 0)
    if isinstance(line, EachRestockLine):
        return quantize_money(cost * line.quantity)
    return quantize_money(cost * sum((quantize_meters(v) for v in line.new_rolls), ZERO))


class RestockService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockLedgerService(db)
        self.units = InventoryUnitService(db)

    # =========================================================================
    # Validation (no writes)
    # =========================================================================

    async def _validate_line(self, index: int, line: AnyRestockLine) -> None:
        where = f"Line {index + 1}"
        if (line.item_id is None) == (line.new_item is None):
            raise ValidationError(f"{where}: give either an existing item or a new item")
        if line.new_item is not None and not (line.new_item.name or "").strip():
            raise ValidationError(f"{where}: new item name is required")
        if line.unit_cost is not None and to_decimal(line.unit_cost) < 0:
            raise ValidationError(f"{where}: unit cost cannot be negative")

        if line.item_id is not None:
            item = await self.stock.get_item(line.item_id)
            if item.mode.value != line.mode:
                raise ValidationError(
                    f"{where}: item {item.id} is tracked as {item.mode.value}, not {line.mode}"
                )

        if isinstance(line, EachRestockLine):
            if line.quantity < 1:
                raise ValidationError(f"{where}: quantity must be at least 1")
            if line.serials:
                if len(line.serials) != line.quantity:
                    raise ValidationError(
                        f"{where}: {len(line.serials)} serial(s) given for quantity {line.quantity}"
                    )
                for serial in line.serials:
                    if InventoryUnitService.normalize_barcode(serial) is None:
                        raise ValidationError(f"{where}: serial numbers cannot be empty")
        else:
            if not line.new_rolls:
                raise ValidationError(f"{where}: at least one roll is required")
            for length in line.new_rolls:
                if quantize_meters(length) <= 0:
                    raise ValidationError(f"{where}: roll length must be greater than zero")

    # =========================================================================
    # Processing
    # =========================================================================

    async def _resolve_item(self, line: AnyRestockLine) -> Item:
        if line.item_id is not None:
            return await self.stock.get_item(line.item_id, lock=True)
        spec: NewItemSpec = line.new_item
        item = Item(
            name=spec.name.strip(),
            sku=spec.sku,
            category=spec.category,
            stock=ZERO,
            stock_unit=METER_UNIT if line.mode == LineMode.METER.value else None,
            roll_length=spec.roll_length,
            price_retail=spec.price_retail,
            price_wholesale=spec.price_wholesale,
            description=spec.description,
        )
        self.db.add(item)
        await self.db.flush()
        log.info("item created from restock: item=%s name=%s", item.id, item.name)
        return item

    async def _apply_each(self, restock: Restock, line: EachRestockLine) -> RestockItem:
        item = await self._resolve_item(line)
        cost = quantize_money(line.unit_cost or 0)
        row = RestockItem(
            restock_id=restock.id, item_id=item.id, mode=LineMode.EACH,
            quantity=line.quantity, unit_cost=cost,
            line_total=line_total(line),
        )
        self.db.add(row)
        await self.db.flush()

        await self.stock.increment(item.id, line.quantity)
        await self.units.create_units(
            item.id, cost_each=cost,
            count=line.quantity, serials=line.serials or None,
            restock_item_id=row.id,
            placeholder_barcodes=line.auto_serial,
        )
        return row

    async def _apply_meter(self, restock: Restock, line: MeterRestockLine) -> RestockItem:
        item = await self._resolve_item(line)
        cost = quantize_money(line.unit_cost or 0)
        lengths = [quantize_meters(v) for v in line.new_rolls]
        total_length = sum(lengths, ZERO)
        row = RestockItem(
            restock_id=restock.id, item_id=item.id, mode=LineMode.METER,
            quantity=len(lengths), total_length_m=total_length, unit_cost=cost,
            line_total=line_total(line),
        )
        self.db.add(row)
        await self.db.flush()

        # Item.stock stays as is; meters live on the rolls
        for length in lengths:
            roll = Roll(item_id=item.id, length_m=length, remaining_m=length)
            self.db.add(roll)
            await self.db.flush()
            self.db.add(RestockRoll(restock_item_id=row.id, roll_id=roll.id, length_m=length))
            self.db.add(InventoryUnit(
                item_id=item.id, restock_item_id=row.id, roll_id=roll.id,
                barcode=generate_placeholder_barcode(), is_placeholder=True,
                cost_each=cost,
            ))
        await self.db.flush()
        return row

    async def create_restock(self, payload: CreateRestockRequest, user: Optional[str] = None) -> Restock:
        if not payload.items:
            raise ValidationError("A restock needs at least one line")
        for i, line in enumerate(payload.items):
            await self._validate_line(i, line)
        tax = quantize_money(payload.tax)
        if tax < 0:
            raise ValidationError("Tax cannot be negative")
        paid_now = quantize_money(payload.amount_paid_now)
        if paid_now < 0:
            raise ValidationError("Paid amount cannot be negative")
        expected_total = quantize_money(sum((line_total(l) for l in payload.items), ZERO) + tax)
        if paid_now > expected_total + MONEY_TOLERANCE:
            raise ValidationError(f"Paid amount {paid_now} exceeds restock total {expected_total}")

        suppliers = SupplierService(self.db)
        supplier = None
        if payload.supplier_id is not None:
            supplier = await suppliers.get_supplier(payload.supplier_id)
        elif (payload.supplier_name or "").strip():
            supplier = await suppliers.get_or_create(payload.supplier_name)

        restock = Restock(
            date=payload.date or utcnow(),
            supplier_id=supplier.id if supplier else None,
            supplier_name=supplier.name if supplier else None,
            note=payload.note,
            tax=tax,
            user=user,
        )
        self.db.add(restock)
        await self.db.flush()

        subtotal = ZERO
        for line in payload.items:
            if isinstance(line, EachRestockLine):
                row = await self._apply_each(restock, line)
            else:
                row = await self._apply_meter(restock, line)
            subtotal += row.line_total

        restock.subtotal = quantize_money(subtotal)
        restock.total = quantize_money(subtotal + tax)
        if paid_now > 0:
            await CashboxService(self.db).record_movement(
                CashDirection.outflow, CashMovementKind.restock, paid_now,
                cashbox_code=payload.cashbox_code, pay_method=payload.pay_method,
                reference_type="restock", reference_id=restock.id,
                supplier_id=restock.supplier_id, note=payload.payment_note, user=user,
            )
        restock.paid = paid_now
        restock.outstanding = quantize_money(max(restock.total - paid_now, ZERO))
        restock.payment_status = payment_status(restock.total, paid_now)
        await self.db.flush()

        log.info(
            "restock created: id=%s lines=%s total=%s paid=%s status=%s",
            restock.id, len(payload.items), restock.total, restock.paid, restock.payment_status.value,
        )
        return restock

    # =========================================================================
    # Reading
    # =========================================================================

    async def get_restock(self, restock_id: int) -> Restock:
        restock = await self.db.get(Restock, restock_id)
        if restock is None:
            raise NotFoundError(f"Restock {restock_id} not found")
        return restock

    async def restock_receipt(self, restock_id: int) -> Dict[str, Any]:
        restock = await self.get_restock(restock_id)
        result = await self.db.execute(
            select(RestockItem, Item)
            .join(Item, Item.id == RestockItem.item_id)
            .where(RestockItem.restock_id == restock_id)
            .order_by(RestockItem.id)
        )
        rows = result.all()
        line_ids = [row.id for row, _ in rows]

        rolls_by_line: Dict[int, List[Dict[str, Any]]] = {}
        units_by_line: Dict[int, int] = {}
        if line_ids:
            result = await self.db.execute(
                select(RestockRoll, Roll)
                .join(Roll, Roll.id == RestockRoll.roll_id)
                .where(RestockRoll.restock_item_id.in_(line_ids))
                .order_by(RestockRoll.id)
            )
            for rr, roll in result.all():
                rolls_by_line.setdefault(rr.restock_item_id, []).append({
                    "roll_id": roll.id, "length_m": rr.length_m, "remaining_m": roll.remaining_m,
                })
            result = await self.db.execute(
                select(InventoryUnit.restock_item_id, func.count())
                .where(InventoryUnit.restock_item_id.in_(line_ids))
                .group_by(InventoryUnit.restock_item_id)
            )
            units_by_line = {line_id: count for line_id, count in result.all()}

        lines = []
        for row, item in rows:
            lines.append({
                "id": row.id,
                "item": {"id": item.id, "name": item.name, "sku": item.sku},
                "mode": row.mode.value,
                "quantity": row.quantity,
                "total_length_m": row.total_length_m,
                "unit_cost": row.unit_cost,
                "line_total": row.line_total,
                "rolls": rolls_by_line.get(row.id, []),
                "units": units_by_line.get(row.id, 0),
            })
        return {**restock_to_dict(restock), "items": lines}

    async def list_history(self, limit: int = 100) -> List[Restock]:
        result = await self.db.execute(
            select(Restock).order_by(Restock.date.desc(), Restock.id.desc()).limit(min(max(limit, 1), 1000))
        )
        return list(result.scalars().all())
