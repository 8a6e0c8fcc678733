# pos_inventory/routers/reports.py
from __future__ import annotations
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.services.reports import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


@router.get("/movements.csv")
async def movements_csv(
    kind: str = Query("all", description="sales | purchases | all"),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: AsyncSession = Depends(get_session),
):
    text = await ReportService(db).movements_csv(kind, start, end)
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="movements_{kind}.csv"'},
    )
