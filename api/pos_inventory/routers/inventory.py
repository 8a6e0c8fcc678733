# pos_inventory/routers/inventory.py
"""
Inventory unit endpoints: listing, barcode lookup/assignment, direct returns, history.
"""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.db_models import Item, InventoryUnitStatus
from pos_inventory.deps import get_actor
from pos_inventory.models import AssignBarcodeRequest, DirectReturnRequest, unit_to_dict
from pos_inventory.services.inventory_units import InventoryUnitService

router = APIRouter(prefix="/inventory", tags=["Inventory"])


@router.get("/items/{item_id}/units")
async def list_units(
    item_id: int,
    include_placeholders: bool = Query(False, alias="includePlaceholders"),
    status: Optional[InventoryUnitStatus] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
):
    units = await InventoryUnitService(db).list_for_item(
        item_id, include_placeholders=include_placeholders, status=status, limit=limit,
    )
    return [unit_to_dict(u) for u in units]


@router.get("/barcodes/{barcode}")
async def get_by_barcode(barcode: str, db: AsyncSession = Depends(get_session)):
    unit = await InventoryUnitService(db).lookup_by_barcode(barcode)
    return unit_to_dict(unit, await db.get(Item, unit.item_id))


@router.patch("/units/{unit_id}/barcode")
async def assign_barcode(unit_id: int, payload: AssignBarcodeRequest, db: AsyncSession = Depends(get_session)):
    unit = await InventoryUnitService(db).assign_barcode(unit_id, payload.barcode)
    return unit_to_dict(unit)


@router.post("/units/{unit_id}/return")
async def return_unit(
    unit_id: int,
    payload: DirectReturnRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    unit = await InventoryUnitService(db).resolve_return(unit_id, payload.outcome, user=user)
    return unit_to_dict(unit)


@router.get("/units/{unit_id}/history")
async def unit_history(unit_id: int, db: AsyncSession = Depends(get_session)):
    return await InventoryUnitService(db).unit_history(unit_id)
