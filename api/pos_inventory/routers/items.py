# pos_inventory/routers/items.py
"""
Item catalog and roll endpoints.
"""
from __future__ import annotations
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.models import ItemCreate, ItemUpdate, RollCreate, roll_to_dict
from pos_inventory.services.items import ItemService
from pos_inventory.services.stock import StockLedgerService

router = APIRouter(prefix="/items", tags=["Items"])
rolls_router = APIRouter(prefix="/rolls", tags=["Rolls"])


# ============================================================================
# Items
# ============================================================================

@router.get("")
async def list_items(
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_session),
):
    service = ItemService(db)
    items = await service.list_items(search=search, category=category)
    return [await service.to_dict(item) for item in items]


@router.get("/low-stock")
async def low_stock(
    threshold: Optional[Decimal] = Query(None, description="Defaults to LOW_STOCK_THRESHOLD"),
    db: AsyncSession = Depends(get_session),
):
    return await ItemService(db).low_stock(threshold)


@router.post("")
async def create_item(payload: ItemCreate, db: AsyncSession = Depends(get_session)):
    service = ItemService(db)
    item = await service.create_item(payload)
    return await service.to_dict(item)


@router.get("/{item_id}")
async def get_item(item_id: int, db: AsyncSession = Depends(get_session)):
    service = ItemService(db)
    return await service.to_dict(await service.stock.get_item(item_id))


@router.put("/{item_id}")
async def update_item(item_id: int, payload: ItemUpdate, db: AsyncSession = Depends(get_session)):
    service = ItemService(db)
    item = await service.update_item(item_id, payload)
    return await service.to_dict(item)


@router.delete("/{item_id}")
async def delete_item(item_id: int, db: AsyncSession = Depends(get_session)):
    await ItemService(db).delete_item(item_id)
    return {"deleted": item_id}


# ============================================================================
# Rolls
# ============================================================================

@rolls_router.get("/item/{item_id}")
async def list_rolls(item_id: int, db: AsyncSession = Depends(get_session)):
    stock = StockLedgerService(db)
    await stock.get_item(item_id)
    return [roll_to_dict(r) for r in await stock.list_rolls(item_id)]


@rolls_router.post("")
async def add_roll(payload: RollCreate, db: AsyncSession = Depends(get_session)):
    roll = await StockLedgerService(db).add_roll(payload.item_id, payload.length_m, cost_each=payload.cost_each)
    return roll_to_dict(roll)


@rolls_router.delete("/{roll_id}")
async def delete_roll(roll_id: int, db: AsyncSession = Depends(get_session)):
    await StockLedgerService(db).delete_roll(roll_id)
    return {"deleted": roll_id}
