# pos_inventory/services/sales.py
"""
Sale (checkout) processor.

Every sale runs in three phases:

1. check - the whole cart is reserved against persisted stock and every
   requested inventory unit is checked; nothing has been written yet.
2. apply - stock counters and rolls are decremented with conditional
   UPDATEs, sale lines are written and units are linked.
3. settle - totals, payment movement, payment status.

Amending a sale first reverses the previous version (stock back, units
released unless queued for return) and then runs the same three phases.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Union

from sqlalchemy import select, delete, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.cart import CartContext, CartLine, check_demand, reserve
from pos_inventory.db_models import (
    Item, InventoryUnit, InventoryUnitStatus, Customer, CustomerType, LineMode,
    CashDirection, CashMovementKind, ReturnStatus,
)
from pos_inventory.db_models_ext import (
    Transaction, TransactionItem, TransactionItemUnit, Restock, InventoryReturnRecord,
)
from pos_inventory.errors import ValidationError, NotFoundError, ConflictError
from pos_inventory.lifecycle import LifecycleEvent, can_sell
from pos_inventory.models import (
    CreateTransactionRequest, AmendTransactionRequest, EachTxLine, MeterTxLine,
    transaction_to_dict, customer_to_dict,
)
from pos_inventory.services.cashbox import CashboxService, payment_status
from pos_inventory.services.inventory_units import InventoryUnitService
from pos_inventory.services.stock import StockLedgerService
from pos_inventory.utils import MONEY_TOLERANCE, naive_utc, quantize_meters, quantize_money, to_decimal, utcnow

log = logging.getLogger(__name__)

ZERO = Decimal("0")
AnyTxLine = Union[EachTxLine, MeterTxLine]


@dataclass
class _PlannedLine:
    line: AnyTxLine
    item: Item
    price: Decimal
    total: Decimal


@dataclass
class _Plan:
    lines: List[_PlannedLine] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return quantize_money(sum((p.total for p in self.lines), ZERO))


def _cart_line(index: int, line: AnyTxLine) -> CartLine:
    where = f"Line {index + 1}"
    if isinstance(line, EachTxLine):
        if line.quantity < 1:
            raise ValidationError(f"{where}: quantity must be at least 1")
        ids = line.inventory_unit_ids or []
        if ids:
            if len(set(ids)) != len(ids):
                raise ValidationError(f"{where}: inventory units must be distinct")
            if len(ids) != line.quantity:
                raise ValidationError(
                    f"{where}: {len(ids)} inventory unit(s) given for quantity {line.quantity}"
                )
        return CartLine(LineMode.EACH, line.item_id, Decimal(line.quantity))

    length = quantize_meters(line.length_meters)
    if length <= 0:
        raise ValidationError(f"{where}: length must be greater than zero")
    return CartLine(LineMode.METER, line.item_id, length, line.roll_id)


class SaleService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockLedgerService(db)
        self.units = InventoryUnitService(db)

    # =========================================================================
    # Phase 1: check
    # =========================================================================

    async def _load_items(self, lines: List[AnyTxLine]) -> Dict[int, Item]:
        items: Dict[int, Item] = {}
        # fixed lock order
        for item_id in sorted({line.item_id for line in lines}):
            items[item_id] = await self.stock.get_item(item_id, lock=True)
        return items

    async def build_cart(self, items: Dict[int, Item]) -> CartContext:
        """Cart context over the persisted stock of ``items``."""
        ctx = CartContext()
        for item in items.values():
            ctx.modes[item.id] = item.mode
            if item.is_meter:
                rolls = await self.stock.roll_remainders(item.id)
                ctx.roll_remaining.update(dict(rolls))
                ctx.stock[item.id] = sum((rem for _, rem in rolls), ZERO)
            else:
                ctx.stock[item.id] = await self.stock.current_stock(item.id)
        return ctx

    async def _check_units(self, lines: List[AnyTxLine], kept: Set[int]) -> None:
        seen: Set[int] = set()
        for line in lines:
            if not isinstance(line, EachTxLine):
                continue
            for unit_id in line.inventory_unit_ids or []:
                if unit_id in seen:
                    raise ValidationError(f"Inventory unit {unit_id} appears on more than one line")
                seen.add(unit_id)
                unit = await self.units.get_unit(unit_id)
                if unit.item_id != line.item_id:
                    raise ValidationError(f"Inventory unit {unit_id} does not belong to item {line.item_id}")
                if unit_id in kept:
                    continue
                if not can_sell(await self.units.state_of(unit)):
                    raise ValidationError(
                        f"Inventory unit {unit_id} is not available (status: {unit.status.value})"
                    )
                if await self.units.link_of(unit_id) is not None:
                    raise ConflictError(f"Inventory unit {unit_id} is already linked to another sale line")

    @staticmethod
    def _price_for(item: Item, line: AnyTxLine, customer_type: Optional[CustomerType]) -> Decimal:
        if line.unit_price is not None:
            price = quantize_money(line.unit_price)
            if price < 0:
                raise ValidationError(f"Price for item {item.id} cannot be negative")
            return price
        tier = line.price_tier or (customer_type.value if customer_type else "retail")
        if tier == "wholesale" and item.price_wholesale is not None:
            return quantize_money(item.price_wholesale)
        if item.price_retail is not None:
            return quantize_money(item.price_retail)
        raise ValidationError(f"Item {item.id} has no price; send a unit price")

    async def _check(self, payload: CreateTransactionRequest, kept: Set[int],
                     customer_type: Optional[CustomerType]) -> _Plan:
        if not payload.items:
            raise ValidationError("A sale needs at least one line")
        cart_lines = [_cart_line(i, line) for i, line in enumerate(payload.items)]
        items = await self._load_items(payload.items)

        ctx = await self.build_cart(items)
        check_demand(ctx, cart_lines)
        for cart_line in cart_lines:
            reserve(ctx, cart_line, merge=False)
        await self._check_units(payload.items, kept)

        plan = _Plan()
        for line, cart_line in zip(payload.items, cart_lines):
            item = items[line.item_id]
            price = self._price_for(item, line, customer_type)
            plan.lines.append(_PlannedLine(line, item, price, quantize_money(price * cart_line.quantity)))
        return plan

    async def _resolve_customer(self, payload: CreateTransactionRequest) -> Optional[Customer]:
        if payload.customer_id is not None:
            customer = await self.db.get(Customer, payload.customer_id)
            if customer is None:
                raise NotFoundError(f"Customer {payload.customer_id} not found")
            return customer
        name = (payload.customer_name or "").strip()
        if not name:
            return None
        result = await self.db.execute(select(Customer).where(func.lower(Customer.name) == name.lower()))
        customer = result.scalars().first()
        if customer is None:
            customer = Customer(name=name, phone=payload.customer_phone)
            self.db.add(customer)
            await self.db.flush()
        return customer

    # =========================================================================
    # Phase 2: apply
    # =========================================================================

    async def _relink(self, unit_id: int, line_id: int, transaction_id: int) -> InventoryUnit:
        """Carry a unit that was on the previous version of the sale over to the new line."""
        unit = await self.units.get_unit(unit_id, lock=True)
        self.db.add(TransactionItemUnit(transaction_item_id=line_id, inventory_unit_id=unit_id))
        await self.db.execute(
            update(InventoryReturnRecord)
            .where(InventoryReturnRecord.inventory_unit_id == unit_id,
                   InventoryReturnRecord.status == ReturnStatus.pending)
            .values(transaction_item_id=line_id, transaction_id=transaction_id)
            .execution_options(synchronize_session=False)
        )
        return unit

    async def _apply_each(self, tx: Transaction, p: _PlannedLine, kept: Set[int]) -> TransactionItem:
        line: EachTxLine = p.line
        row = TransactionItem(
            transaction_id=tx.id, item_id=p.item.id, mode=LineMode.EACH,
            quantity=Decimal(line.quantity), price_each=p.price, line_total=p.total,
        )
        self.db.add(row)
        await self.db.flush()

        await self.stock.decrement(p.item.id, line.quantity)

        costs = []
        for unit_id in line.inventory_unit_ids or []:
            if unit_id in kept:
                unit = await self._relink(unit_id, row.id, tx.id)
            else:
                unit = await self.units.mark_sold(unit_id, row.id, item_id=p.item.id)
            costs.append(to_decimal(unit.cost_each))
        if costs:
            row.cost_each = quantize_money(sum(costs, ZERO) / len(costs))
        return row

    async def _apply_meter(self, tx: Transaction, p: _PlannedLine) -> TransactionItem:
        line: MeterTxLine = p.line
        length = quantize_meters(line.length_meters)
        if line.roll_id is not None:
            await self.stock.cut_roll(line.roll_id, length, item_id=p.item.id)
            cuts = [(line.roll_id, length)]
        else:
            cuts = await self.stock.consume_meters(p.item.id, length)

        cost = await self.db.scalar(
            select(func.avg(InventoryUnit.cost_each)).where(InventoryUnit.roll_id.in_([r for r, _ in cuts]))
        )
        row = TransactionItem(
            transaction_id=tx.id, item_id=p.item.id, mode=LineMode.METER,
            quantity=length, length_m=length,
            roll_id=cuts[0][0] if len(cuts) == 1 else None,
            roll_cuts=[{"roll_id": r, "length_m": str(m)} for r, m in cuts],
            price_each=p.price, cost_each=quantize_money(cost) if cost is not None else None,
            line_total=p.total,
        )
        self.db.add(row)
        await self.db.flush()
        return row

    async def _apply(self, tx: Transaction, plan: _Plan, kept: Set[int]) -> None:
        for p in plan.lines:
            if isinstance(p.line, EachTxLine):
                await self._apply_each(tx, p, kept)
            else:
                await self._apply_meter(tx, p)

    # =========================================================================
    # Phase 3: settle
    # =========================================================================

    async def _settle(self, tx: Transaction, total: Decimal, paid_now: Decimal,
                      payload: CreateTransactionRequest, user: Optional[str]) -> None:
        if paid_now > 0:
            await CashboxService(self.db).record_movement(
                CashDirection.inflow, CashMovementKind.sale, paid_now,
                cashbox_code=payload.cashbox_code, pay_method=payload.pay_method,
                reference_type="transaction", reference_id=tx.id,
                note=payload.payment_note, user=user,
            )
        tx.total = total
        tx.paid = quantize_money(to_decimal(tx.paid) + paid_now)
        if payload.status_override is not None:
            tx.payment_status = payload.status_override
            tx.status_override_note = payload.status_override_note
        else:
            tx.payment_status = payment_status(total, tx.paid)
            tx.status_override_note = None

    @staticmethod
    def _check_payment(already_paid: Decimal, paid_now: Decimal, total: Decimal) -> None:
        if paid_now < 0:
            raise ValidationError("Paid amount cannot be negative")
        if already_paid + paid_now > total + MONEY_TOLERANCE:
            raise ValidationError(f"Paid amount {already_paid + paid_now} exceeds sale total {total}")

    # =========================================================================
    # Operations
    # =========================================================================

    async def create_transaction(self, payload: CreateTransactionRequest, user: Optional[str] = None) -> Transaction:
        customer_type = None
        if payload.customer_id is not None:
            existing = await self.db.get(Customer, payload.customer_id)
            customer_type = existing.customer_type if existing is not None else None

        plan = await self._check(payload, set(), customer_type)
        paid_now = quantize_money(payload.paid)
        self._check_payment(ZERO, paid_now, plan.total)

        customer = await self._resolve_customer(payload)
        tx = Transaction(
            date=utcnow(),
            receipt_type=payload.receipt_type,
            customer_id=customer.id if customer else None,
            user=user,
            note=payload.note,
            total=ZERO,
            paid=ZERO,
        )
        self.db.add(tx)
        await self.db.flush()

        await self._apply(tx, plan, set())
        await self._settle(tx, plan.total, paid_now, payload, user)
        await self.db.flush()
        log.info("sale created: id=%s lines=%s total=%s paid=%s status=%s",
                 tx.id, len(plan.lines), tx.total, tx.paid, tx.payment_status.value)
        return tx

    async def _reverse(self, tx: Transaction, keep_unit_ids: Set[int]) -> Set[int]:
        """
        Undo the stock effects of the current version of ``tx`` and delete its lines.

        Returns the ids of previously linked units that the new version keeps.
        Dropped units go back to ``available`` unless a return is pending for
        them; such a piece stays out of stock until the return is resolved.
        Pieces whose return was already resolved are not restored either:
        a restocked unit is back in stock already and a trashed one is gone.
        """
        result = await self.db.execute(
            select(TransactionItem).where(TransactionItem.transaction_id == tx.id).order_by(TransactionItem.id)
        )
        old_lines = list(result.scalars().all())
        old_ids = [line.id for line in old_lines]

        kept: Set[int] = set()
        held_back: Dict[int, int] = {}
        if old_ids:
            result = await self.db.execute(
                select(InventoryReturnRecord.transaction_item_id,
                       func.count(func.distinct(InventoryReturnRecord.inventory_unit_id)))
                .where(InventoryReturnRecord.transaction_item_id.in_(old_ids),
                       InventoryReturnRecord.status != ReturnStatus.pending)
                .group_by(InventoryReturnRecord.transaction_item_id)
            )
            for line_id, returned in result.all():
                held_back[line_id] = returned

            result = await self.db.execute(
                select(TransactionItemUnit.transaction_item_id, TransactionItemUnit.inventory_unit_id)
                .where(TransactionItemUnit.transaction_item_id.in_(old_ids))
            )
            for line_id, unit_id in result.all():
                await self.units.unlink(unit_id)
                unit = await self.units.get_unit(unit_id, lock=True)
                if unit.status != InventoryUnitStatus.sold:
                    # trashed or sent back to the supplier; counted with the resolved returns
                    log.info("amend: unit %s dropped, already %s", unit_id, unit.status.value)
                    continue
                if unit_id in keep_unit_ids:
                    kept.add(unit_id)
                    continue
                if (await self.units.state_of(unit)).return_pending:
                    log.info("amend: unit %s stays sold, return pending", unit_id)
                    held_back[line_id] = held_back.get(line_id, 0) + 1
                    continue
                await self.units.apply(unit, LifecycleEvent.release)

        for line in old_lines:
            if line.mode == LineMode.EACH:
                back = to_decimal(line.quantity) - held_back.get(line.id, 0)
                if back > 0:
                    await self.stock.increment(line.item_id, back)
                continue
            cuts = line.roll_cuts or (
                [{"roll_id": line.roll_id, "length_m": str(line.length_m)}] if line.roll_id else []
            )
            for cut in cuts:
                await self.stock.restore_roll(cut["roll_id"], cut["length_m"])

        await self.db.execute(delete(TransactionItem).where(TransactionItem.transaction_id == tx.id))
        await self.db.flush()
        return kept

    async def amend_transaction(self, transaction_id: int, payload: AmendTransactionRequest,
                                user: Optional[str] = None) -> Transaction:
        edit_note = (payload.edit_note or "").strip()
        if len(edit_note) < 3:
            raise ValidationError("An edit note of at least 3 characters is required")
        tx = await self.get_transaction(transaction_id, lock=True)

        requested_units = {
            uid for line in payload.items if isinstance(line, EachTxLine) for uid in (line.inventory_unit_ids or [])
        }
        kept = await self._reverse(tx, requested_units)

        customer_type = None
        customer_id = payload.customer_id if payload.customer_id is not None else tx.customer_id
        if customer_id is not None:
            existing = await self.db.get(Customer, customer_id)
            customer_type = existing.customer_type if existing is not None else None

        plan = await self._check(payload, kept, customer_type)
        paid_now = quantize_money(payload.paid)
        self._check_payment(to_decimal(tx.paid), paid_now, plan.total)

        if payload.customer_id is not None or (payload.customer_name or "").strip():
            customer = await self._resolve_customer(payload)
            tx.customer_id = customer.id if customer else None
        tx.receipt_type = payload.receipt_type
        if payload.note is not None:
            tx.note = payload.note

        await self._apply(tx, plan, kept)
        await self._settle(tx, plan.total, paid_now, payload, user)
        tx.edit_note = edit_note
        tx.edited_at = utcnow()
        await self.db.flush()
        log.info("sale amended: id=%s total=%s paid=%s note=%r", tx.id, tx.total, tx.paid, edit_note)
        return tx

    # =========================================================================
    # Reading
    # =========================================================================

    async def get_transaction(self, transaction_id: int, lock: bool = False) -> Transaction:
        stmt = select(Transaction).where(Transaction.id == transaction_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        tx = result.scalar_one_or_none()
        if tx is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return tx

    async def receipt(self, transaction_id: int) -> Dict[str, Any]:
        tx = await self.get_transaction(transaction_id)
        customer = await self.db.get(Customer, tx.customer_id) if tx.customer_id else None

        result = await self.db.execute(
            select(TransactionItem, Item)
            .join(Item, Item.id == TransactionItem.item_id)
            .where(TransactionItem.transaction_id == transaction_id)
            .order_by(TransactionItem.id)
        )
        rows = result.all()

        units_by_line: Dict[int, List[Dict[str, Any]]] = {}
        line_ids = [row.id for row, _ in rows]
        if line_ids:
            result = await self.db.execute(
                select(TransactionItemUnit.transaction_item_id, InventoryUnit)
                .join(InventoryUnit, InventoryUnit.id == TransactionItemUnit.inventory_unit_id)
                .where(TransactionItemUnit.transaction_item_id.in_(line_ids))
                .order_by(InventoryUnit.id)
            )
            for line_id, unit in result.all():
                units_by_line.setdefault(line_id, []).append({
                    "id": unit.id, "barcode": unit.barcode, "is_placeholder": unit.is_placeholder,
                })

        lines = [
            {
                "id": row.id,
                "item": {"id": item.id, "name": item.name, "sku": item.sku},
                "mode": row.mode.value,
                "quantity": row.quantity,
                "length_m": row.length_m,
                "roll_id": row.roll_id,
                "roll_cuts": row.roll_cuts or [],
                "price_each": row.price_each,
                "cost_each": row.cost_each,
                "line_total": row.line_total,
                "units": units_by_line.get(row.id, []),
            }
            for row, item in rows
        ]
        return {**transaction_to_dict(tx), "customer": customer_to_dict(customer), "items": lines}

    async def list_recent(self, limit: int = 50) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Transaction, Customer.name)
            .outerjoin(Customer, Customer.id == Transaction.customer_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(min(max(limit, 1), 1000))
        )
        return [{**transaction_to_dict(tx), "customer_name": name} for tx, name in result.all()]

    async def receipts_history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Sales and restocks together, newest first."""
        limit = min(max(limit, 1), 1000)
        sales = await self.list_recent(limit)
        result = await self.db.execute(
            select(Restock).order_by(Restock.date.desc(), Restock.id.desc()).limit(limit)
        )
        entries = [
            {"type": "sale", "id": s["id"], "date": s["date"], "party": s["customer_name"],
             "total": s["total"], "paid": s["paid"], "payment_status": s["payment_status"]}
            for s in sales
        ] + [
            {"type": "restock", "id": r.id, "date": r.date, "party": r.supplier_name,
             "total": r.total, "paid": r.paid, "payment_status": r.payment_status.value}
            for r in result.scalars().all()
        ]
        entries.sort(key=lambda e: (naive_utc(e["date"]), e["id"]), reverse=True)
        return entries[:limit]
