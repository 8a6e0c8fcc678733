# pos_inventory/services/reports.py
"""
Sales / purchase movement reports as pandas DataFrames (CSV export).
"""
from __future__ import annotations
from datetime import datetime
from typing import Optional

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.db_models import Item, Customer
from pos_inventory.db_models_ext import Transaction, TransactionItem, Restock, RestockItem
from pos_inventory.errors import ValidationError

MOVEMENT_COLUMNS = [
    "date", "direction", "document", "document_id", "party",
    "item_id", "item", "mode", "quantity", "length_m", "unit_price", "line_total",
]

KINDS = ("sales", "purchases", "all")


class ReportService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _sales_rows(self, start: Optional[datetime], end: Optional[datetime]) -> list:
        stmt = (
            select(TransactionItem, Transaction, Item, Customer.name)
            .join(Transaction, Transaction.id == TransactionItem.transaction_id)
            .join(Item, Item.id == TransactionItem.item_id)
            .outerjoin(Customer, Customer.id == Transaction.customer_id)
        )
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date < end)
        result = await self.db.execute(stmt)
        return [
            {
                "date": tx.date, "direction": "out", "document": "sale", "document_id": tx.id,
                "party": customer, "item_id": item.id, "item": item.name, "mode": line.mode.value,
                "quantity": float(line.quantity), "length_m": float(line.length_m) if line.length_m is not None else None,
                "unit_price": float(line.price_each), "line_total": float(line.line_total),
            }
            for line, tx, item, customer in result.all()
        ]

    async def _purchase_rows(self, start: Optional[datetime], end: Optional[datetime]) -> list:
        stmt = (
            select(RestockItem, Restock, Item)
            .join(Restock, Restock.id == RestockItem.restock_id)
            .join(Item, Item.id == RestockItem.item_id)
        )
        if start is not None:
            stmt = stmt.where(Restock.date >= start)
        if end is not None:
            stmt = stmt.where(Restock.date < end)
        result = await self.db.execute(stmt)
        return [
            {
                "date": restock.date, "direction": "in", "document": "restock", "document_id": restock.id,
                "party": restock.supplier_name, "item_id": item.id, "item": item.name, "mode": line.mode.value,
                "quantity": float(line.quantity or 0),
                "length_m": float(line.total_length_m) if line.total_length_m is not None else None,
                "unit_price": float(line.unit_cost), "line_total": float(line.line_total),
            }
            for line, restock, item in result.all()
        ]

    async def movements_frame(self, kind: str = "all", start: Optional[datetime] = None,
                              end: Optional[datetime] = None) -> pd.DataFrame:
        if kind not in KINDS:
            raise ValidationError(f"Unknown movement kind: {kind}")
        rows = []
        if kind in ("sales", "all"):
            rows += await self._sales_rows(start, end)
        if kind in ("purchases", "all"):
            rows += await self._purchase_rows(start, end)

        df = pd.DataFrame(rows, columns=MOVEMENT_COLUMNS)
        if df.empty:
            return df
        # SQLite returns naive timestamps, PostgreSQL aware ones
        df["date"] = pd.to_datetime(df["date"], utc=True)
        return df.sort_values(["date", "document_id"], ascending=False).reset_index(drop=True)

    async def movements_csv(self, kind: str = "all", start: Optional[datetime] = None,
                            end: Optional[datetime] = None) -> str:
        df = await self.movements_frame(kind, start, end)
        return df.to_csv(index=False)
