# pos_inventory/db_models.py
"""
SQLAlchemy ORM models for POS Inventory - catalog, stock and cash.

Document tables (sales, restocks, returns) live in db_models_ext.py.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional
import enum

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, Text, DateTime,
    Numeric, ForeignKey, Index, CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from pos_inventory.database import Base
from pos_inventory.utils import utcnow

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
BigIntPK = BigInteger().with_variant(Integer, "sqlite")

# ============================================================================
# ENUMS
# ============================================================================

class LineMode(str, enum.Enum):
    EACH = "EACH"
    METER = "METER"


class InventoryUnitStatus(str, enum.Enum):
    available = "available"
    reserved = "reserved"
    sold = "sold"
    returned = "returned"
    defective = "defective"


class ReturnStatus(str, enum.Enum):
    pending = "pending"
    restocked = "restocked"
    trashed = "trashed"
    returned_to_supplier = "returned_to_supplier"


class ReturnOutcome(str, enum.Enum):
    restock = "restock"
    defective = "defective"


class PaymentStatus(str, enum.Enum):
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    UNPAID = "UNPAID"


class CashDirection(str, enum.Enum):
    inflow = "in"
    outflow = "out"


class CashMovementKind(str, enum.Enum):
    sale = "sale"
    restock = "restock"
    supplier_payment = "supplier_payment"
    income = "income"
    expense = "expense"


class ReceiptType(str, enum.Enum):
    simple = "simple"
    detailed = "detailed"


class CustomerType(str, enum.Enum):
    retail = "retail"
    wholesale = "wholesale"


_ENUM_TYPES: dict[str, SQLEnum] = {}


def enum_column(enum_cls: type[enum.Enum], name: str) -> SQLEnum:
    """Store enum *values* (e.g. "in"/"out"), not member names. One type object per PG enum name."""
    if name not in _ENUM_TYPES:
        _ENUM_TYPES[name] = SQLEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])
    return _ENUM_TYPES[name]


METER_UNIT = "m"

# ============================================================================
# MIXIN for updated_at
# ============================================================================

class TimestampMixin:
    """Mixin for created_at and updated_at columns."""
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )


# ============================================================================
# 1. ITEMS
# ============================================================================

class Item(TimestampMixin, Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(100))
    category: Mapped[Optional[str]] = mapped_column(String(50))
    # pieces for EACH items; METER items keep their length on rolls
    stock: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=Decimal("0"), nullable=False)
    # NULL = EACH, "m" = METER
    stock_unit: Mapped[Optional[str]] = mapped_column(String(8))
    roll_length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    price_retail: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    price_wholesale: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_items_stock_nonneg"),
        Index("idx_items_name", "name"),
    )

    @property
    def is_meter(self) -> bool:
        return self.stock_unit == METER_UNIT

    @property
    def mode(self) -> LineMode:
        return LineMode.METER if self.is_meter else LineMode.EACH


# ============================================================================
# 2. ROLLS (METER items)
# ============================================================================

class Roll(Base):
    __tablename__ = "rolls"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("items.id"), nullable=False)
    length_m: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    remaining_m: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("length_m > 0", name="ck_rolls_length_pos"),
        CheckConstraint("remaining_m >= 0 AND remaining_m <= length_m", name="ck_rolls_remaining_bounds"),
        Index("idx_rolls_item", "item_id"),
    )


# ============================================================================
# 3. INVENTORY UNITS
# ============================================================================

class InventoryUnit(TimestampMixin, Base):
    __tablename__ = "inventory_units"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("items.id"), nullable=False)
    restock_item_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("restock_items.id"))
    roll_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("rolls.id"))
    barcode: Mapped[Optional[str]] = mapped_column(String(191), unique=True)
    is_placeholder: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[InventoryUnitStatus] = mapped_column(
        enum_column(InventoryUnitStatus, "inventory_unit_status"),
        default=InventoryUnitStatus.available,
        nullable=False,
    )
    cost_each: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    __table_args__ = (
        Index("idx_units_item_created", "item_id", "created_at"),
        Index("idx_units_restock_item", "restock_item_id"),
        Index("idx_units_roll", "roll_id"),
    )


# ============================================================================
# 4. PARTIES
# ============================================================================

class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    contact_info: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    customer_type: Mapped[CustomerType] = mapped_column(
        enum_column(CustomerType, "customer_type"), default=CustomerType.retail, nullable=False
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_customers_name", "name"),
    )


# ============================================================================
# 5. CASHBOXES & LEDGER
# ============================================================================

class Cashbox(Base):
    __tablename__ = "cashboxes"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)


class CashMovement(Base):
    __tablename__ = "cash_movements"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    cashbox_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("cashboxes.id"), nullable=False)
    direction: Mapped[CashDirection] = mapped_column(enum_column(CashDirection, "cash_direction"), nullable=False)
    kind: Mapped[CashMovementKind] = mapped_column(enum_column(CashMovementKind, "cash_movement_kind"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    pay_method: Mapped[Optional[str]] = mapped_column(String(30))
    # "transaction" / "restock" + id; plain columns, the ledger outlives documents
    reference_type: Mapped[Optional[str]] = mapped_column(String(30))
    reference_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    supplier_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("suppliers.id"))
    note: Mapped[Optional[str]] = mapped_column(Text)
    user: Mapped[Optional[str]] = mapped_column(String(100))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cash_movements_amount_pos"),
        Index("idx_cash_movements_box_time", "cashbox_id", "occurred_at"),
    )
