# pos_inventory/models.py
"""
Pydantic request models and response serializers.

Request models accept snake_case and the camelCase names the web client sends
(``itemId``, ``newRolls``, ``inventoryUnitIds`` ...). Sale and restock lines are
tagged unions on ``mode``.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from pos_inventory.db_models import (
    Item, Roll, InventoryUnit, Supplier, Customer, Cashbox, CashMovement,
    ReceiptType, ReturnOutcome, PaymentStatus,
)
from pos_inventory.db_models_ext import Transaction, Restock, InventoryReturnRecord


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


PriceTier = Literal["retail", "wholesale"]

# ============================================================================
# Items & rolls
# ============================================================================

class NewItemSpec(ApiModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    price_retail: Optional[Decimal] = None
    price_wholesale: Optional[Decimal] = None
    roll_length: Optional[Decimal] = None
    description: Optional[str] = None


class ItemCreate(NewItemSpec):
    # None / "EACH" for pieces, "m" / "METER" for meters
    stock_unit: Optional[str] = None
    initial_stock: Decimal = Decimal("0")
    initial_rolls: List[Decimal] = Field(default_factory=list)


class ItemUpdate(ApiModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    category: Optional[str] = None
    stock_unit: Optional[str] = None
    price_retail: Optional[Decimal] = None
    price_wholesale: Optional[Decimal] = None
    roll_length: Optional[Decimal] = None
    description: Optional[str] = None


class RollCreate(ApiModel):
    item_id: int
    length_m: Decimal
    cost_each: Optional[Decimal] = None


# ============================================================================
# Restocks
# ============================================================================

class EachRestockLine(ApiModel):
    mode: Literal["EACH"]
    item_id: Optional[int] = None
    new_item: Optional[NewItemSpec] = None
    quantity: int = 0
    unit_cost: Optional[Decimal] = None
    serials: Optional[List[str]] = None
    # placeholder units get an AUTO-... stand-in barcode; False leaves them without one
    auto_serial: bool = True


class MeterRestockLine(ApiModel):
    mode: Literal["METER"]
    item_id: Optional[int] = None
    new_item: Optional[NewItemSpec] = None
    new_rolls: List[Decimal] = Field(default_factory=list)
    unit_cost: Optional[Decimal] = None


RestockLine = Annotated[Union[EachRestockLine, MeterRestockLine], Field(discriminator="mode")]


class CreateRestockRequest(ApiModel):
    supplier_id: Optional[int] = None
    supplier_name: Optional[str] = None
    date: Optional[datetime] = None
    note: Optional[str] = None
    tax: Decimal = Decimal("0")
    items: List[RestockLine]
    amount_paid_now: Decimal = Decimal("0")
    cashbox_code: Optional[str] = None
    pay_method: Optional[str] = None
    payment_note: Optional[str] = None


# ============================================================================
# Transactions
# ============================================================================

class EachTxLine(ApiModel):
    mode: Literal["EACH"]
    item_id: int
    quantity: int = 1
    inventory_unit_ids: Optional[List[int]] = None
    price_tier: Optional[PriceTier] = None
    unit_price: Optional[Decimal] = None


class MeterTxLine(ApiModel):
    mode: Literal["METER"]
    item_id: int
    length_meters: Decimal
    roll_id: Optional[int] = None
    price_tier: Optional[PriceTier] = None
    unit_price: Optional[Decimal] = None


TxLine = Annotated[Union[EachTxLine, MeterTxLine], Field(discriminator="mode")]


class CreateTransactionRequest(ApiModel):
    receipt_type: ReceiptType = ReceiptType.simple
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    note: Optional[str] = None
    items: List[TxLine]
    paid: Decimal = Decimal("0")
    cashbox_code: Optional[str] = None
    pay_method: Optional[str] = None
    payment_note: Optional[str] = None
    status_override: Optional[PaymentStatus] = None
    status_override_note: Optional[str] = None


class AmendTransactionRequest(CreateTransactionRequest):
    edit_note: Optional[str] = None


# ============================================================================
# Inventory units & returns
# ============================================================================

class AssignBarcodeRequest(ApiModel):
    barcode: Optional[str] = None


class DirectReturnRequest(ApiModel):
    outcome: ReturnOutcome


class RequestReturnRequest(ApiModel):
    requested_outcome: ReturnOutcome = ReturnOutcome.restock
    note: Optional[str] = None


class ResolveReturnRequest(ApiModel):
    action: Literal["restock", "trash", "returnToSupplier"]
    note: Optional[str] = None
    supplier_id: Optional[int] = None
    supplier_note: Optional[str] = None


# ============================================================================
# Cash & suppliers
# ============================================================================

class CashEntryCreate(ApiModel):
    kind: Literal["income", "expense"]
    amount: Decimal
    cashbox_code: Optional[str] = None
    pay_method: Optional[str] = None
    note: Optional[str] = None


class SupplierCreate(ApiModel):
    name: str
    contact_info: Optional[str] = None


class SupplierPaymentCreate(ApiModel):
    amount: Decimal
    cashbox_code: Optional[str] = None
    pay_method: Optional[str] = None
    note: Optional[str] = None


# ============================================================================
# Serializers
# ============================================================================

def item_to_dict(item: Item, meter_stock: Optional[Decimal] = None) -> Dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "sku": item.sku,
        "category": item.category,
        "stock": item.stock,
        "stock_unit": item.stock_unit,
        "mode": item.mode.value,
        "meter_stock": meter_stock,
        "roll_length": item.roll_length,
        "price_retail": item.price_retail,
        "price_wholesale": item.price_wholesale,
        "description": item.description,
    }


def roll_to_dict(roll: Roll) -> Dict[str, Any]:
    return {
        "id": roll.id,
        "item_id": roll.item_id,
        "length_m": roll.length_m,
        "remaining_m": roll.remaining_m,
        "created_at": roll.created_at,
    }


def unit_to_dict(unit: InventoryUnit, item: Optional[Item] = None) -> Dict[str, Any]:
    out = {
        "id": unit.id,
        "item_id": unit.item_id,
        "restock_item_id": unit.restock_item_id,
        "roll_id": unit.roll_id,
        "barcode": unit.barcode,
        "is_placeholder": unit.is_placeholder,
        "status": unit.status.value,
        "cost_each": unit.cost_each,
        "created_at": unit.created_at,
    }
    if item is not None:
        out["item"] = {"id": item.id, "name": item.name, "stock_unit": item.stock_unit}
    return out


def supplier_to_dict(s: Supplier) -> Dict[str, Any]:
    return {"id": s.id, "name": s.name, "contact_info": s.contact_info}


def customer_to_dict(c: Optional[Customer]) -> Optional[Dict[str, Any]]:
    if c is None:
        return None
    return {
        "id": c.id,
        "name": c.name,
        "phone": c.phone,
        "customer_type": c.customer_type.value,
        "notes": c.notes,
    }


def cashbox_to_dict(box: Cashbox, balance: Decimal) -> Dict[str, Any]:
    return {"id": box.id, "code": box.code, "label": box.label, "balance": balance}


def movement_to_dict(m: CashMovement, cashbox_code: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": m.id,
        "cashbox_id": m.cashbox_id,
        "cashbox_code": cashbox_code,
        "direction": m.direction.value,
        "kind": m.kind.value,
        "amount": m.amount,
        "pay_method": m.pay_method,
        "reference_type": m.reference_type,
        "reference_id": m.reference_id,
        "supplier_id": m.supplier_id,
        "note": m.note,
        "user": m.user,
        "occurred_at": m.occurred_at,
    }


def restock_to_dict(r: Restock) -> Dict[str, Any]:
    return {
        "id": r.id,
        "date": r.date,
        "supplier_id": r.supplier_id,
        "supplier_name": r.supplier_name,
        "note": r.note,
        "subtotal": r.subtotal,
        "tax": r.tax,
        "total": r.total,
        "paid": r.paid,
        "outstanding": r.outstanding,
        "payment_status": r.payment_status.value,
        "user": r.user,
    }


def transaction_to_dict(t: Transaction) -> Dict[str, Any]:
    return {
        "id": t.id,
        "date": t.date,
        "receipt_type": t.receipt_type.value,
        "customer_id": t.customer_id,
        "user": t.user,
        "note": t.note,
        "total": t.total,
        "paid": t.paid,
        "payment_status": t.payment_status.value,
        "status_override_note": t.status_override_note,
        "edit_note": t.edit_note,
        "edited_at": t.edited_at,
    }


def return_to_dict(r: InventoryReturnRecord) -> Dict[str, Any]:
    return {
        "id": r.id,
        "inventory_unit_id": r.inventory_unit_id,
        "status": r.status.value,
        "requested_outcome": r.requested_outcome.value,
        "transaction_id": r.transaction_id,
        "transaction_item_id": r.transaction_item_id,
        "note": r.note,
        "resolution_note": r.resolution_note,
        "supplier_id": r.supplier_id,
        "supplier_note": r.supplier_note,
        "user": r.user,
        "created_at": r.created_at,
        "resolved_at": r.resolved_at,
        "resolved_by": r.resolved_by,
    }
