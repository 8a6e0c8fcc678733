# pos_inventory/db_models_ext.py
"""
SQLAlchemy ORM models for POS Inventory - Part 2.

Documents: sales (transactions), goods receipts (restocks) and return records.
"""
from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Integer, BigInteger, Text, DateTime,
    Numeric, ForeignKey, Index, CheckConstraint, UniqueConstraint, JSON,
)
from sqlalchemy.orm import Mapped, mapped_column

from pos_inventory.database import Base
from pos_inventory.utils import utcnow
from pos_inventory.db_models import (
    BigIntPK, enum_column,
    LineMode, PaymentStatus, ReceiptType, ReturnStatus, ReturnOutcome,
)


# ============================================================================
# 6. TRANSACTIONS (sales)
# ============================================================================

class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    receipt_type: Mapped[ReceiptType] = mapped_column(
        enum_column(ReceiptType, "receipt_type"), default=ReceiptType.simple, nullable=False
    )
    customer_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("customers.id"))
    user: Mapped[Optional[str]] = mapped_column(String(100))
    note: Mapped[Optional[str]] = mapped_column(Text)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "payment_status"), default=PaymentStatus.UNPAID, nullable=False
    )
    status_override_note: Mapped[Optional[str]] = mapped_column(Text)
    edit_note: Mapped[Optional[str]] = mapped_column(Text)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_transactions_date", "date"),
    )


class TransactionItem(Base):
    __tablename__ = "transaction_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("items.id"), nullable=False)
    mode: Mapped[LineMode] = mapped_column(enum_column(LineMode, "line_mode"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), default=Decimal("0"), nullable=False)
    length_m: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3))
    roll_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("rolls.id"))
    # [{"roll_id": 3, "length_m": "2.500"}, ...] - what was cut from which roll
    roll_cuts: Mapped[Optional[list]] = mapped_column(JSON)
    price_each: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    cost_each: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    __table_args__ = (
        Index("idx_transaction_items_tx", "transaction_id"),
        Index("idx_transaction_items_item", "item_id"),
    )


class TransactionItemUnit(Base):
    """A sold InventoryUnit claimed by exactly one sale line."""
    __tablename__ = "transaction_item_units"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    transaction_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("transaction_items.id", ondelete="CASCADE"), nullable=False
    )
    inventory_unit_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_units.id"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("inventory_unit_id", name="uq_transaction_item_units_unit"),
        Index("idx_tiu_line", "transaction_item_id"),
    )


# ============================================================================
# 7. RESTOCKS (goods receipts)
# ============================================================================

class Restock(Base):
    __tablename__ = "restocks"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    supplier_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("suppliers.id"))
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255))
    note: Mapped[Optional[str]] = mapped_column(Text)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    outstanding: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        enum_column(PaymentStatus, "payment_status"), default=PaymentStatus.UNPAID, nullable=False
    )
    user: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        CheckConstraint("outstanding >= 0", name="ck_restocks_outstanding_nonneg"),
        Index("idx_restocks_date", "date"),
        Index("idx_restocks_supplier", "supplier_id"),
    )


class RestockItem(Base):
    __tablename__ = "restock_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restock_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restocks.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("items.id"), nullable=False)
    mode: Mapped[LineMode] = mapped_column(enum_column(LineMode, "line_mode"), nullable=False)
    # pieces for EACH, number of rolls for METER
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    total_length_m: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 3))
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)

    __table_args__ = (
        Index("idx_restock_items_restock", "restock_id"),
    )


class RestockRoll(Base):
    __tablename__ = "restock_rolls"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    restock_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restock_items.id", ondelete="CASCADE"), nullable=False
    )
    roll_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("rolls.id"), nullable=False)
    length_m: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)

    __table_args__ = (
        UniqueConstraint("roll_id", name="uq_restock_rolls_roll"),
        Index("idx_restock_rolls_line", "restock_item_id"),
    )


# ============================================================================
# 8. RETURN RECORDS
# ============================================================================

class InventoryReturnRecord(Base):
    __tablename__ = "inventory_return_records"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    inventory_unit_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("inventory_units.id"), nullable=False
    )
    status: Mapped[ReturnStatus] = mapped_column(
        enum_column(ReturnStatus, "return_status"), default=ReturnStatus.pending, nullable=False
    )
    requested_outcome: Mapped[ReturnOutcome] = mapped_column(
        enum_column(ReturnOutcome, "return_outcome"), nullable=False
    )
    # sale the unit came back from; plain ids so amended sales don't orphan the record
    transaction_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    transaction_item_id: Mapped[Optional[int]] = mapped_column(BigInteger)
    note: Mapped[Optional[str]] = mapped_column(Text)
    resolution_note: Mapped[Optional[str]] = mapped_column(Text)
    supplier_id: Mapped[Optional[int]] = mapped_column(BigInteger, ForeignKey("suppliers.id"))
    supplier_note: Mapped[Optional[str]] = mapped_column(Text)
    user: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[Optional[str]] = mapped_column(String(100))

    __table_args__ = (
        Index("idx_returns_unit", "inventory_unit_id"),
        Index("idx_returns_status", "status"),
    )
