# pos_inventory/services/items.py
from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from pos_inventory.settings import settings
from pos_inventory.db_models import Item, Roll, InventoryUnit
from pos_inventory.db_models_ext import TransactionItem, RestockItem
from pos_inventory.errors import ValidationError, ConflictError
from pos_inventory.models import ItemCreate, ItemUpdate, item_to_dict
from pos_inventory.services.stock import StockLedgerService, normalize_stock_unit
from pos_inventory.utils import quantize_pieces, to_decimal

log = logging.getLogger(__name__)


class ItemService:
    """Catalog maintenance on top of the stock ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockLedgerService(db)

    async def to_dict(self, item: Item) -> Dict[str, Any]:
        await self.db.refresh(item)
        meters = await self.stock.meter_stock(item.id) if item.is_meter else None
        return item_to_dict(item, meters)

    async def list_items(self, search: Optional[str] = None, category: Optional[str] = None) -> List[Item]:
        stmt = select(Item).order_by(Item.name, Item.id)
        if search:
            like = f"%{search.strip()}%"
            stmt = stmt.where(or_(Item.name.ilike(like), Item.sku.ilike(like)))
        if category:
            stmt = stmt.where(Item.category == category)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_item(self, payload: ItemCreate) -> Item:
        name = (payload.name or "").strip()
        if not name:
            raise ValidationError("Item name is required")
        stock_unit = normalize_stock_unit(payload.stock_unit)

        initial = to_decimal(payload.initial_stock)
        if initial < 0:
            raise ValidationError("Initial stock cannot be negative")
        if stock_unit is not None and initial != 0:
            raise ValidationError("Meter items take their stock from rolls; use initialRolls")
        if stock_unit is None and payload.initial_rolls:
            raise ValidationError("Only meter items can start with rolls")

        item = Item(
            name=name,
            sku=payload.sku,
            category=payload.category,
            stock=quantize_pieces(initial) if stock_unit is None else Decimal("0"),
            stock_unit=stock_unit,
            roll_length=payload.roll_length,
            price_retail=payload.price_retail,
            price_wholesale=payload.price_wholesale,
            description=payload.description,
        )
        self.db.add(item)
        await self.db.flush()
        for length in payload.initial_rolls:
            await self.stock.add_roll(item.id, length)
        log.info("item created: id=%s name=%s unit=%s", item.id, item.name, item.stock_unit)
        return item

    async def update_item(self, item_id: int, payload: ItemUpdate) -> Item:
        item = await self.stock.get_item(item_id, lock=True)
        data = payload.model_dump(exclude_unset=True)
        if "stock_unit" in data:
            await self.stock.set_stock_unit(item, data.pop("stock_unit"))
        if "name" in data:
            name = (data["name"] or "").strip()
            if not name:
                raise ValidationError("Item name is required")
            data["name"] = name
        for key, value in data.items():
            setattr(item, key, value)
        await self.db.flush()
        return item

    async def delete_item(self, item_id: int) -> None:
        item = await self.stock.get_item(item_id, lock=True)
        sold = await self.db.scalar(
            select(func.count()).select_from(TransactionItem).where(TransactionItem.item_id == item_id)
        )
        received = await self.db.scalar(
            select(func.count()).select_from(RestockItem).where(RestockItem.item_id == item_id)
        )
        if sold or received:
            raise ConflictError(f"Item {item_id} appears on sales or restocks and cannot be deleted")
        await self.db.execute(delete(InventoryUnit).where(InventoryUnit.item_id == item_id))
        await self.db.execute(delete(Roll).where(Roll.item_id == item_id))
        await self.db.delete(item)
        await self.db.flush()
        log.info("item deleted: id=%s", item_id)

    async def low_stock(self, threshold=None) -> List[Dict[str, Any]]:
        """Items at or below ``threshold`` pieces / meters."""
        threshold = to_decimal(threshold if threshold is not None else settings.LOW_STOCK_THRESHOLD)
        meters = (
            select(Roll.item_id, func.coalesce(func.sum(Roll.remaining_m), 0).label("meters"))
            .group_by(Roll.item_id)
            .subquery()
        )
        result = await self.db.execute(
            select(Item, meters.c.meters)
            .outerjoin(meters, meters.c.item_id == Item.id)
            .order_by(Item.name)
        )
        out = []
        for item, rolled in result.all():
            level = to_decimal(rolled) if item.is_meter else to_decimal(item.stock)
            if level <= threshold:
                out.append({**item_to_dict(item, to_decimal(rolled) if item.is_meter else None), "level": level})
        return out
