# pos_inventory/routers/returns.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.db_models import ReturnOutcome, ReturnStatus
from pos_inventory.deps import get_actor
from pos_inventory.models import RequestReturnRequest, ResolveReturnRequest, return_to_dict
from pos_inventory.services.returns import ReturnService

router = APIRouter(prefix="/returns", tags=["Returns"])


@router.get("")
async def list_returns(
    status: Optional[ReturnStatus] = Query(None),
    requested_outcome: Optional[ReturnOutcome] = Query(None, alias="requestedOutcome"),
    search: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
):
    return await ReturnService(db).list_returns(
        status=status, requested_outcome=requested_outcome, search=search, limit=limit,
    )


@router.post("/{unit_id}")
async def request_return(
    unit_id: int,
    payload: RequestReturnRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    record = await ReturnService(db).request_return(unit_id, payload.requested_outcome, payload.note, user=user)
    return return_to_dict(record)


@router.patch("/{return_id}")
async def resolve_return(
    return_id: int,
    payload: ResolveReturnRequest,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    record = await ReturnService(db).resolve(
        return_id, payload.action, note=payload.note,
        supplier_id=payload.supplier_id, supplier_note=payload.supplier_note, user=user,
    )
    return return_to_dict(record)
