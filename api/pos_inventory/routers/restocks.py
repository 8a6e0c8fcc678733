# pos_inventory/routers/restocks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.deps import get_actor
from pos_inventory.models import CreateRestockRequest, restock_to_dict
from pos_inventory.services.restocks import RestockService

router = APIRouter(prefix="/restocks", tags=["Restocks"])


@router.post("")
async def create_restock(
    payload: CreateRestockRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    """Receive goods: every line or none."""
    service = RestockService(db)
    restock = await service.create_restock(payload, user=user)
    return await service.restock_receipt(restock.id)


@router.get("/history")
async def restock_history(limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_session)):
    return [restock_to_dict(r) for r in await RestockService(db).list_history(limit)]


@router.get("/{restock_id}")
async def get_restock(restock_id: int, db: AsyncSession = Depends(get_session)):
    return restock_to_dict(await RestockService(db).get_restock(restock_id))


@router.get("/{restock_id}/receipt")
async def restock_receipt(restock_id: int, db: AsyncSession = Depends(get_session)):
    return await RestockService(db).restock_receipt(restock_id)
