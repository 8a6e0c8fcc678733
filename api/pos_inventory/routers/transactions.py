# pos_inventory/routers/transactions.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.deps import get_actor
from pos_inventory.models import CreateTransactionRequest, AmendTransactionRequest
from pos_inventory.services.sales import SaleService

router = APIRouter(prefix="/transactions", tags=["Transactions"])
receipts_router = APIRouter(prefix="/receipts", tags=["Receipts"])


@router.post("")
async def create_transaction(
    payload: CreateTransactionRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    service = SaleService(db)
    tx = await service.create_transaction(payload, user=user)
    return await service.receipt(tx.id)


@router.patch("/{transaction_id}")
async def amend_transaction(
    transaction_id: int,
    payload: AmendTransactionRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    """Overwrite a sale with a new version; needs an edit note."""
    service = SaleService(db)
    tx = await service.amend_transaction(transaction_id, payload, user=user)
    return await service.receipt(tx.id)


@router.get("/recent")
async def recent_transactions(limit: int = Query(50, ge=1, le=1000), db: AsyncSession = Depends(get_session)):
    return await SaleService(db).list_recent(limit)


@router.get("/{transaction_id}/receipt")
async def transaction_receipt(transaction_id: int, db: AsyncSession = Depends(get_session)):
    return await SaleService(db).receipt(transaction_id)


@receipts_router.get("/history")
async def receipts_history(limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_session)):
    return await SaleService(db).receipts_history(limit)
