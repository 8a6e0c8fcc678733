# pos_inventory/services/inventory_units.py
"""
Inventory Unit Tracker - one row per serialized piece or per roll.

Handles:
- Barcode normalisation, assignment and lookup (placeholders for unknown codes)
- Unit creation from goods receipts
- Selling / releasing units against sale lines
- Direct return resolution and per-unit history
"""
from __future__ import annotations
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.settings import settings
from pos_inventory.db_models import (
    Item, InventoryUnit, InventoryUnitStatus, Customer, ReturnOutcome,
)
from pos_inventory.db_models_ext import (
    Transaction, TransactionItem, TransactionItemUnit, RestockItem, Restock, InventoryReturnRecord,
)
from pos_inventory.errors import ValidationError, NotFoundError, ConflictError
from pos_inventory.services.stock import StockLedgerService
from pos_inventory.lifecycle import LifecycleEvent, LifecycleState, transition
from pos_inventory.models import unit_to_dict, restock_to_dict, customer_to_dict, return_to_dict
from pos_inventory.utils import quantize_money, utcnow

log = logging.getLogger(__name__)


def generate_placeholder_barcode(prefix: Optional[str] = None) -> str:
    """Stand-in barcode, overwritten later when the real code is scanned."""
    raw = f"{prefix or settings.PLACEHOLDER_BARCODE_PREFIX}-{uuid.uuid4()}"
    return raw[: settings.BARCODE_MAX_LENGTH]


class InventoryUnitService:

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Barcodes
    # =========================================================================

    @staticmethod
    def normalize_barcode(code: Optional[str]) -> Optional[str]:
        trimmed = (code or "").strip()
        if not trimmed:
            return None
        if len(trimmed) > settings.BARCODE_MAX_LENGTH:
            raise ValidationError(f"Barcode must be {settings.BARCODE_MAX_LENGTH} characters or fewer")
        return trimmed

    async def get_unit(self, unit_id: int, lock: bool = False) -> InventoryUnit:
        stmt = select(InventoryUnit).where(InventoryUnit.id == unit_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        unit = result.scalar_one_or_none()
        if unit is None:
            raise NotFoundError("Inventory unit not found")
        return unit

    async def _barcode_owner(self, code: str) -> Optional[InventoryUnit]:
        result = await self.db.execute(select(InventoryUnit).where(InventoryUnit.barcode == code))
        return result.scalar_one_or_none()

    async def assign_barcode(self, unit_id: int, code: Optional[str]) -> InventoryUnit:
        normalized = self.normalize_barcode(code)
        unit = await self.get_unit(unit_id, lock=True)

        if normalized:
            clash = await self._barcode_owner(normalized)
            if clash is not None and clash.id != unit.id:
                raise ConflictError("Barcode already assigned to another unit")

        unit.barcode = normalized
        unit.is_placeholder = normalized is None
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError("Barcode already assigned to another unit")
        log.info("barcode assigned: unit=%s barcode=%s", unit.id, normalized)
        return unit

    async def lookup_by_barcode(self, code: Optional[str]) -> InventoryUnit:
        normalized = (code or "").strip()
        if not normalized:
            raise ValidationError("Barcode is required")
        unit = await self._barcode_owner(normalized)
        if unit is None:
            raise NotFoundError("No inventory unit matches this barcode")
        return unit

    # =========================================================================
    # Listing
    # =========================================================================

    @staticmethod
    def clamp_limit(limit: Optional[int]) -> int:
        if limit is None:
            limit = settings.UNITS_DEFAULT_LIMIT
        return min(max(int(limit), 1), settings.UNITS_MAX_LIMIT)

    async def list_for_item(
        self,
        item_id: int,
        include_placeholders: bool = False,
        status: Optional[InventoryUnitStatus] = None,
        limit: Optional[int] = None,
    ) -> List[InventoryUnit]:
        stmt = (
            select(InventoryUnit)
            .where(InventoryUnit.item_id == item_id)
            .order_by(InventoryUnit.created_at.desc(), InventoryUnit.id.desc())
            .limit(self.clamp_limit(limit))
        )
        if not include_placeholders:
            stmt = stmt.where(InventoryUnit.is_placeholder.is_(False))
        if status is not None:
            stmt = stmt.where(InventoryUnit.status == status)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # =========================================================================
    # Creation
    # =========================================================================

    async def create_units(
        self,
        item_id: int,
        cost_each=None,
        count: int = 0,
        serials: Optional[Iterable[str]] = None,
        restock_item_id: Optional[int] = None,
        roll_id: Optional[int] = None,
        placeholder_barcodes: bool = True,
    ) -> List[InventoryUnit]:
        """
        Create one unit per serial (barcode = serial) or ``count`` placeholder units.

        Placeholder units get an ``AUTO-<uuid>`` stand-in barcode unless
        ``placeholder_barcodes`` is off, in which case they carry none.
        """
        cost = quantize_money(cost_each or 0)
        units: List[InventoryUnit] = []

        if serials:
            codes: List[str] = []
            for raw in serials:
                code = self.normalize_barcode(raw)
                if code is None:
                    raise ValidationError("Serial numbers cannot be empty")
                if code in codes:
                    raise ConflictError(f"Serial {code} appears more than once")
                codes.append(code)
            result = await self.db.execute(select(InventoryUnit.barcode).where(InventoryUnit.barcode.in_(codes)))
            taken = sorted(result.scalars().all())
            if taken:
                raise ConflictError(f"Barcode already assigned to another unit: {', '.join(taken)}")
            for code in codes:
                units.append(InventoryUnit(
                    item_id=item_id, restock_item_id=restock_item_id, roll_id=roll_id,
                    barcode=code, is_placeholder=False,
                    status=InventoryUnitStatus.available, cost_each=cost,
                ))
        else:
            for _ in range(count):
                units.append(InventoryUnit(
                    item_id=item_id, restock_item_id=restock_item_id, roll_id=roll_id,
                    barcode=generate_placeholder_barcode() if placeholder_barcodes else None,
                    is_placeholder=True,
                    status=InventoryUnitStatus.available, cost_each=cost,
                ))

        self.db.add_all(units)
        await self.db.flush()
        return units

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def latest_return(self, unit_id: int) -> Optional[InventoryReturnRecord]:
        result = await self.db.execute(
            select(InventoryReturnRecord)
            .where(InventoryReturnRecord.inventory_unit_id == unit_id)
            .order_by(InventoryReturnRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def state_of(self, unit: InventoryUnit) -> LifecycleState:
        record = await self.latest_return(unit.id)
        return LifecycleState(unit.status, record.status if record is not None else None)

    async def apply(self, unit: InventoryUnit, event: LifecycleEvent) -> LifecycleState:
        """Run ``event`` through the state machine and write the unit status."""
        new_state = transition(await self.state_of(unit), event, unit_id=unit.id)
        unit.status = new_state.unit_status
        return new_state

    async def link_of(self, unit_id: int) -> Optional[TransactionItemUnit]:
        result = await self.db.execute(
            select(TransactionItemUnit).where(TransactionItemUnit.inventory_unit_id == unit_id)
        )
        return result.scalar_one_or_none()

    async def mark_sold(self, unit_id: int, transaction_item_id: int, item_id: Optional[int] = None) -> InventoryUnit:
        unit = await self.get_unit(unit_id, lock=True)
        if item_id is not None and unit.item_id != item_id:
            raise ValidationError(f"Inventory unit {unit_id} does not belong to item {item_id}")
        if await self.link_of(unit_id) is not None:
            raise ConflictError(f"Inventory unit {unit_id} is already linked to another sale line")
        await self.apply(unit, LifecycleEvent.sell)
        self.db.add(TransactionItemUnit(transaction_item_id=transaction_item_id, inventory_unit_id=unit_id))
        try:
            await self.db.flush()
        except IntegrityError:
            raise ConflictError(f"Inventory unit {unit_id} is already linked to another sale line")
        return unit

    async def unlink(self, unit_id: int) -> None:
        await self.db.execute(
            delete(TransactionItemUnit).where(TransactionItemUnit.inventory_unit_id == unit_id)
        )

    async def release(self, unit_id: int) -> InventoryUnit:
        """Undo a sale of this unit: drop its link and make it available again."""
        unit = await self.get_unit(unit_id, lock=True)
        await self.apply(unit, LifecycleEvent.release)
        await self.unlink(unit_id)
        await self.db.flush()
        return unit

    async def resolve_return(self, unit_id: int, outcome: ReturnOutcome, user: Optional[str] = None) -> InventoryUnit:
        """
        Resolve a sold unit straight away, without a pending return request.

        ``restock`` puts the piece back on the shelf (stock + 1, available);
        ``defective`` takes it out for good. The resolution is recorded as an
        already-resolved return record.
        """
        unit = await self.get_unit(unit_id, lock=True)
        if unit.status != InventoryUnitStatus.sold:
            raise ValidationError("Only sold units can be returned")

        outcome = ReturnOutcome(outcome)
        event = LifecycleEvent.direct_restock if outcome == ReturnOutcome.restock else LifecycleEvent.direct_defective
        state = await self.apply(unit, event)

        link = await self.link_of(unit_id)
        sale_line = await self.db.get(TransactionItem, link.transaction_item_id) if link else None
        self.db.add(InventoryReturnRecord(
            inventory_unit_id=unit.id,
            status=state.return_status,
            requested_outcome=outcome,
            transaction_item_id=sale_line.id if sale_line else None,
            transaction_id=sale_line.transaction_id if sale_line else None,
            user=user,
            resolved_at=utcnow(),
            resolved_by=user,
        ))

        if outcome == ReturnOutcome.restock:
            item = await self.db.get(Item, unit.item_id)
            if not item.is_meter:
                await StockLedgerService(self.db).increment(unit.item_id, 1)
            await self.unlink(unit.id)
        await self.db.flush()
        log.info("unit returned directly: unit=%s outcome=%s", unit.id, outcome.value)
        return unit

    # =========================================================================
    # History
    # =========================================================================

    async def unit_history(self, unit_id: int) -> Dict[str, Any]:
        unit = await self.get_unit(unit_id)
        item = await self.db.get(Item, unit.item_id)

        restock = None
        if unit.restock_item_id is not None:
            result = await self.db.execute(
                select(Restock)
                .join(RestockItem, RestockItem.restock_id == Restock.id)
                .where(RestockItem.id == unit.restock_item_id)
            )
            header = result.scalar_one_or_none()
            restock = restock_to_dict(header) if header is not None else None

        result = await self.db.execute(
            select(InventoryReturnRecord)
            .where(InventoryReturnRecord.inventory_unit_id == unit_id)
            .order_by(InventoryReturnRecord.id.desc())
        )
        returns = list(result.scalars().all())

        # current link plus lines the unit was sold on before being returned
        line_ids = {r.transaction_item_id for r in returns if r.transaction_item_id is not None}
        link = await self.link_of(unit_id)
        if link is not None:
            line_ids.add(link.transaction_item_id)

        sales: List[Dict[str, Any]] = []
        if line_ids:
            result = await self.db.execute(
                select(TransactionItem, Transaction, Customer)
                .join(Transaction, Transaction.id == TransactionItem.transaction_id)
                .outerjoin(Customer, Customer.id == Transaction.customer_id)
                .where(TransactionItem.id.in_(line_ids))
                .order_by(Transaction.date.desc(), TransactionItem.id.desc())
            )
            for line, tx, customer in result.all():
                sales.append({
                    "transaction_id": tx.id,
                    "transaction_date": tx.date,
                    "transaction_item_id": line.id,
                    "customer": customer_to_dict(customer),
                    "quantity": line.quantity,
                    "length_m": line.length_m,
                    "price_each": line.price_each,
                    "cost_each": line.cost_each,
                    "current": link is not None and link.transaction_item_id == line.id,
                })

        return {
            "unit": unit_to_dict(unit, item),
            "restock": restock,
            "sales": sales,
            "returns": [return_to_dict(r) for r in returns],
        }
