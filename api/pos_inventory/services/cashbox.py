# pos_inventory/services/cashbox.py
"""
Cashbox ledger, suppliers and supplier debt.
"""
from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.settings import settings
from pos_inventory.db_models import (
    Cashbox, CashMovement, CashDirection, CashMovementKind, PaymentStatus, Supplier,
)
from pos_inventory.db_models_ext import Restock
from pos_inventory.errors import ValidationError, NotFoundError, ConflictError
from pos_inventory.models import movement_to_dict, restock_to_dict, supplier_to_dict
from pos_inventory.utils import MONEY_TOLERANCE, quantize_money, to_decimal

log = logging.getLogger(__name__)

ZERO = Decimal("0")


def payment_status(total, paid) -> PaymentStatus:
    total = to_decimal(total)
    paid = to_decimal(paid)
    if total <= MONEY_TOLERANCE:
        return PaymentStatus.PAID
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid + MONEY_TOLERANCE >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


class CashboxService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_cashbox(self, code: Optional[str] = None) -> Cashbox:
        """Cashbox by code; the configured codes (A/B/C) are created on first use."""
        code = (code or settings.DEFAULT_CASHBOX).strip().upper()
        result = await self.db.execute(select(Cashbox).where(Cashbox.code == code))
        box = result.scalar_one_or_none()
        if box is not None:
            return box
        if code not in [c.upper() for c in settings.CASHBOX_CODES]:
            raise NotFoundError(f"Cashbox {code} not found")
        box = Cashbox(code=code, label=f"Cashbox {code}")
        self.db.add(box)
        await self.db.flush()
        return box

    async def ensure_default_cashboxes(self) -> List[Cashbox]:
        return [await self.get_cashbox(code) for code in settings.CASHBOX_CODES]

    async def record_movement(
        self,
        direction: CashDirection,
        kind: CashMovementKind,
        amount,
        cashbox_code: Optional[str] = None,
        pay_method: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        note: Optional[str] = None,
        user: Optional[str] = None,
    ) -> CashMovement:
        amount = quantize_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")
        box = await self.get_cashbox(cashbox_code)
        movement = CashMovement(
            cashbox_id=box.id,
            direction=direction,
            kind=kind,
            amount=amount,
            pay_method=pay_method,
            reference_type=reference_type,
            reference_id=reference_id,
            supplier_id=supplier_id,
            note=note,
            user=user,
        )
        self.db.add(movement)
        await self.db.flush()
        log.info("cash %s %s %s on %s (%s %s)", direction.value, kind.value, amount, box.code,
                 reference_type, reference_id)
        return movement

    async def manual_entry(self, kind: str, amount, cashbox_code: Optional[str] = None,
                           pay_method: Optional[str] = None, note: Optional[str] = None,
                           user: Optional[str] = None) -> CashMovement:
        kind = CashMovementKind(kind)
        if kind not in (CashMovementKind.income, CashMovementKind.expense):
            raise ValidationError("Manual entries are either income or expense")
        direction = CashDirection.inflow if kind == CashMovementKind.income else CashDirection.outflow
        return await self.record_movement(direction, kind, amount, cashbox_code=cashbox_code,
                                          pay_method=pay_method, note=note, user=user)

    async def balances(self) -> List[Dict[str, Any]]:
        await self.ensure_default_cashboxes()
        signed = case(
            (CashMovement.direction == CashDirection.inflow, CashMovement.amount),
            else_=-CashMovement.amount,
        )
        result = await self.db.execute(
            select(Cashbox, func.coalesce(func.sum(signed), 0))
            .outerjoin(CashMovement, CashMovement.cashbox_id == Cashbox.id)
            .group_by(Cashbox.id)
            .order_by(Cashbox.code)
        )
        return [
            {"id": box.id, "code": box.code, "label": box.label, "balance": quantize_money(balance)}
            for box, balance in result.all()
        ]

    async def list_entries(self, cashbox_code: Optional[str] = None, kind: Optional[str] = None,
                           limit: int = 200) -> List[Dict[str, Any]]:
        stmt = (
            select(CashMovement, Cashbox.code)
            .join(Cashbox, Cashbox.id == CashMovement.cashbox_id)
            .order_by(CashMovement.occurred_at.desc(), CashMovement.id.desc())
            .limit(min(max(limit, 1), 1000))
        )
        if cashbox_code:
            stmt = stmt.where(Cashbox.code == cashbox_code.strip().upper())
        if kind:
            stmt = stmt.where(CashMovement.kind == CashMovementKind(kind))
        result = await self.db.execute(stmt)
        return [movement_to_dict(m, code) for m, code in result.all()]


class SupplierService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_suppliers(self) -> List[Supplier]:
        result = await self.db.execute(select(Supplier).order_by(Supplier.name))
        return list(result.scalars().all())

    async def get_supplier(self, supplier_id: int) -> Supplier:
        supplier = await self.db.get(Supplier, supplier_id)
        if supplier is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")
        return supplier

    async def find_by_name(self, name: str) -> Optional[Supplier]:
        result = await self.db.execute(
            select(Supplier).where(func.lower(Supplier.name) == name.strip().lower())
        )
        return result.scalars().first()

    async def create_supplier(self, name: str, contact_info: Optional[str] = None) -> Supplier:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Supplier name is required")
        if await self.find_by_name(name) is not None:
            raise ConflictError(f"Supplier {name} already exists")
        supplier = Supplier(name=name, contact_info=contact_info)
        self.db.add(supplier)
        await self.db.flush()
        return supplier

    async def get_or_create(self, name: str) -> Supplier:
        return await self.find_by_name(name) or await self.create_supplier(name)


class SupplierDebtService:
    """What we owe suppliers for received goods, and paying it off."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def overview(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(
                Supplier,
                func.count(Restock.id),
                func.coalesce(func.sum(Restock.total), 0),
                func.coalesce(func.sum(Restock.paid), 0),
                func.coalesce(func.sum(Restock.outstanding), 0),
            )
            .outerjoin(Restock, Restock.supplier_id == Supplier.id)
            .group_by(Supplier.id)
            .order_by(Supplier.name)
        )
        return [
            {
                "supplier": supplier_to_dict(supplier),
                "restocks": count,
                "total": quantize_money(total),
                "paid": quantize_money(paid),
                "outstanding": quantize_money(outstanding),
            }
            for supplier, count, total, paid, outstanding in result.all()
        ]

    async def _outstanding_restocks(self, supplier_id: int) -> List[Restock]:
        result = await self.db.execute(
            select(Restock)
            .where(Restock.supplier_id == supplier_id, Restock.outstanding > 0)
            .order_by(Restock.date, Restock.id)
            .with_for_update()
        )
        return list(result.scalars().all())

    async def detail(self, supplier_id: int) -> Dict[str, Any]:
        supplier = await SupplierService(self.db).get_supplier(supplier_id)
        result = await self.db.execute(
            select(Restock).where(Restock.supplier_id == supplier_id).order_by(Restock.date.desc(), Restock.id.desc())
        )
        restocks = list(result.scalars().all())
        return {
            "supplier": supplier_to_dict(supplier),
            "outstanding": quantize_money(sum((to_decimal(r.outstanding) for r in restocks), ZERO)),
            "restocks": [restock_to_dict(r) for r in restocks],
        }

    async def record_payment(
        self,
        supplier_id: int,
        amount,
        cashbox_code: Optional[str] = None,
        pay_method: Optional[str] = None,
        note: Optional[str] = None,
        user: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Pay down a supplier's debt, oldest restock first."""
        supplier = await SupplierService(self.db).get_supplier(supplier_id)
        amount = quantize_money(amount)
        if amount <= 0:
            raise ValidationError("Amount must be greater than zero")

        restocks = await self._outstanding_restocks(supplier_id)
        owed = sum((to_decimal(r.outstanding) for r in restocks), ZERO)
        if amount > owed + MONEY_TOLERANCE:
            raise ValidationError(f"Payment {amount} exceeds outstanding debt {quantize_money(owed)}")

        left = amount
        allocations = []
        for restock in restocks:
            if left <= 0:
                break
            share = min(left, to_decimal(restock.outstanding))
            restock.paid = quantize_money(to_decimal(restock.paid) + share)
            restock.outstanding = quantize_money(max(to_decimal(restock.total) - restock.paid, ZERO))
            restock.payment_status = payment_status(restock.total, restock.paid)
            allocations.append({"restock_id": restock.id, "amount": quantize_money(share)})
            left -= share

        movement = await CashboxService(self.db).record_movement(
            CashDirection.outflow, CashMovementKind.supplier_payment, amount,
            cashbox_code=cashbox_code, pay_method=pay_method,
            reference_type="supplier", reference_id=supplier.id, supplier_id=supplier.id,
            note=note, user=user,
        )
        log.info("supplier payment: supplier=%s amount=%s allocations=%s", supplier.id, amount, allocations)
        return {"movement_id": movement.id, "amount": amount, "allocations": allocations}
