# pos_inventory/services/returns.py
"""
Returns Resolver - pending return requests for sold units and their resolution.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.db_models import Item, InventoryUnit, ReturnOutcome, ReturnStatus
from pos_inventory.db_models_ext import TransactionItem, InventoryReturnRecord
from pos_inventory.errors import ValidationError, NotFoundError
from pos_inventory.lifecycle import LifecycleEvent, transition
from pos_inventory.models import return_to_dict
from pos_inventory.services.cashbox import SupplierService
from pos_inventory.services.inventory_units import InventoryUnitService
from pos_inventory.services.stock import StockLedgerService
from pos_inventory.utils import utcnow

log = logging.getLogger(__name__)

RESOLUTION_EVENTS = {
    "restock": LifecycleEvent.resolve_restock,
    "trash": LifecycleEvent.resolve_trash,
    "returnToSupplier": LifecycleEvent.resolve_return_to_supplier,
}


class ReturnService:

    def __init__(self, db: AsyncSession):
        self.db = db
        self.units = InventoryUnitService(db)
        self.stock = StockLedgerService(db)

    async def get_return(self, return_id: int, lock: bool = False) -> InventoryReturnRecord:
        stmt = select(InventoryReturnRecord).where(InventoryReturnRecord.id == return_id)
        if lock:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError(f"Return {return_id} not found")
        return record

    async def request_return(self, unit_id: int, requested_outcome: ReturnOutcome,
                             note: Optional[str] = None, user: Optional[str] = None) -> InventoryReturnRecord:
        unit = await self.units.get_unit(unit_id, lock=True)
        # raises unless the unit is sold with no return already pending
        transition(await self.units.state_of(unit), LifecycleEvent.request_return, unit_id=unit.id)

        link = await self.units.link_of(unit.id)
        line = await self.db.get(TransactionItem, link.transaction_item_id) if link else None
        record = InventoryReturnRecord(
            inventory_unit_id=unit.id,
            status=ReturnStatus.pending,
            requested_outcome=ReturnOutcome(requested_outcome),
            transaction_item_id=line.id if line else None,
            transaction_id=line.transaction_id if line else None,
            note=note,
            user=user,
        )
        self.db.add(record)
        await self.db.flush()
        log.info("return requested: record=%s unit=%s outcome=%s", record.id, unit.id, record.requested_outcome.value)
        return record

    async def resolve(
        self,
        return_id: int,
        action: str,
        note: Optional[str] = None,
        supplier_id: Optional[int] = None,
        supplier_note: Optional[str] = None,
        user: Optional[str] = None,
    ) -> InventoryReturnRecord:
        event = RESOLUTION_EVENTS.get(action)
        if event is None:
            raise ValidationError(f"Unknown return action: {action}")
        record = await self.get_return(return_id, lock=True)
        if record.status != ReturnStatus.pending:
            raise ValidationError(f"Return {return_id} is already resolved ({record.status.value})")

        supplier = None
        if event == LifecycleEvent.resolve_return_to_supplier:
            if supplier_id is None:
                raise ValidationError("A supplier is required to return a unit to the supplier")
            supplier = await SupplierService(self.db).get_supplier(supplier_id)

        unit = await self.units.get_unit(record.inventory_unit_id, lock=True)
        state = await self.units.apply(unit, event)

        if event == LifecycleEvent.resolve_restock:
            item = await self.db.get(Item, unit.item_id)
            # a returned roll keeps its remaining meters; pieces go back on the counter
            if not item.is_meter:
                await self.stock.increment(unit.item_id, 1)
            await self.units.unlink(unit.id)

        record.status = state.return_status
        record.resolution_note = note
        record.resolved_at = utcnow()
        record.resolved_by = user
        if supplier is not None:
            record.supplier_id = supplier.id
            record.supplier_note = supplier_note
        await self.db.flush()
        log.info("return resolved: record=%s unit=%s action=%s", record.id, unit.id, action)
        return record

    async def list_returns(
        self,
        status: Optional[ReturnStatus] = None,
        requested_outcome: Optional[ReturnOutcome] = None,
        search: Optional[str] = None,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(InventoryReturnRecord, InventoryUnit, Item)
            .join(InventoryUnit, InventoryUnit.id == InventoryReturnRecord.inventory_unit_id)
            .join(Item, Item.id == InventoryUnit.item_id)
            .order_by(InventoryReturnRecord.created_at.desc(), InventoryReturnRecord.id.desc())
            .limit(min(max(limit, 1), 1000))
        )
        if status is not None:
            stmt = stmt.where(InventoryReturnRecord.status == status)
        if requested_outcome is not None:
            stmt = stmt.where(InventoryReturnRecord.requested_outcome == requested_outcome)
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(or_(
                Item.name.ilike(like),
                InventoryUnit.barcode.ilike(like),
                InventoryReturnRecord.note.ilike(like),
            ))
        result = await self.db.execute(stmt)
        return [
            {
                **return_to_dict(record),
                "unit": {"id": unit.id, "barcode": unit.barcode, "status": unit.status.value},
                "item": {"id": item.id, "name": item.name},
            }
            for record, unit, item in result.all()
        ]
