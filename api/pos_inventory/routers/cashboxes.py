# pos_inventory/routers/cashboxes.py
"""
Cashbox ledger, suppliers (with debt) and customers.
"""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.database import get_session
from pos_inventory.db_models import CashMovementKind, Customer
from pos_inventory.deps import get_actor
from pos_inventory.models import (
    CashEntryCreate, SupplierCreate, SupplierPaymentCreate,
    customer_to_dict, movement_to_dict, supplier_to_dict,
)
from pos_inventory.services.cashbox import CashboxService, SupplierService, SupplierDebtService

router = APIRouter(prefix="/cashboxes", tags=["Cashboxes"])
suppliers_router = APIRouter(prefix="/suppliers", tags=["Suppliers"])
customers_router = APIRouter(prefix="/customers", tags=["Customers"])


# ============================================================================
# Cashboxes
# ============================================================================

@router.get("")
async def list_cashboxes(db: AsyncSession = Depends(get_session)):
    return await CashboxService(db).balances()


@router.get("/entries")
async def list_entries(
    cashbox: Optional[str] = Query(None, description="Cashbox code (A/B/C)"),
    kind: Optional[CashMovementKind] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_session),
):
    return await CashboxService(db).list_entries(cashbox_code=cashbox, kind=kind, limit=limit)


@router.post("/entries")
async def create_entry(
    payload: CashEntryCreate,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    service = CashboxService(db)
    movement = await service.manual_entry(
        payload.kind, payload.amount, cashbox_code=payload.cashbox_code,
        pay_method=payload.pay_method, note=payload.note, user=user,
    )
    box = await service.get_cashbox(payload.cashbox_code)
    return movement_to_dict(movement, box.code)


# ============================================================================
# Suppliers & debt
# ============================================================================

@suppliers_router.get("")
async def list_suppliers(db: AsyncSession = Depends(get_session)):
    return [supplier_to_dict(s) for s in await SupplierService(db).list_suppliers()]


@suppliers_router.post("")
async def create_supplier(payload: SupplierCreate, db: AsyncSession = Depends(get_session)):
    supplier = await SupplierService(db).create_supplier(payload.name, payload.contact_info)
    return supplier_to_dict(supplier)


@suppliers_router.get("/debt")
async def supplier_debt_overview(db: AsyncSession = Depends(get_session)):
    return await SupplierDebtService(db).overview()


@suppliers_router.get("/{supplier_id}/debt")
async def supplier_debt_detail(supplier_id: int, db: AsyncSession = Depends(get_session)):
    return await SupplierDebtService(db).detail(supplier_id)


@suppliers_router.post("/{supplier_id}/payments")
async def record_supplier_payment(
    supplier_id: int,
    payload: SupplierPaymentCreate,
    db: AsyncSession = Depends(get_session),
    user: str = Depends(get_actor),
):
    return await SupplierDebtService(db).record_payment(
        supplier_id, payload.amount, cashbox_code=payload.cashbox_code,
        pay_method=payload.pay_method, note=payload.note, user=user,
    )


# ============================================================================
# Customers
# ============================================================================

@customers_router.get("")
async def list_customers(search: Optional[str] = Query(None), db: AsyncSession = Depends(get_session)):
    stmt = select(Customer).order_by(Customer.name)
    if search:
        stmt = stmt.where(Customer.name.ilike(f"%{search.strip()}%"))
    result = await db.execute(stmt)
    return [customer_to_dict(c) for c in result.scalars().all()]
