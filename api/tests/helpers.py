"""Builders shared by the service tests."""
from decimal import Decimal

from sqlalchemy import select

from pos_inventory.db_models import InventoryUnit, Roll
from pos_inventory.models import (
    CreateRestockRequest, CreateTransactionRequest, AmendTransactionRequest,
    EachRestockLine, EachTxLine, ItemCreate, MeterTxLine,
)
from pos_inventory.services.items import ItemService
from pos_inventory.services.restocks import RestockService


async def make_each_item(db, name="Bike lock", stock=0, price="25.00", wholesale=None):
    return await ItemService(db).create_item(ItemCreate(
        name=name,
        initial_stock=Decimal(stock),
        price_retail=Decimal(price) if price is not None else None,
        price_wholesale=Decimal(wholesale) if wholesale is not None else None,
    ))


async def make_meter_item(db, name="Chain", rolls=(), price="4.00"):
    return await ItemService(db).create_item(ItemCreate(
        name=name,
        stock_unit="m",
        initial_rolls=[Decimal(str(r)) for r in rolls],
        price_retail=Decimal(price),
    ))


async def receive_each(db, item_id, quantity, serials=None, unit_cost="10.00", auto_serial=True, **kwargs):
    return await RestockService(db).create_restock(CreateRestockRequest(
        items=[EachRestockLine(
            mode="EACH", item_id=item_id, quantity=quantity, serials=serials,
            unit_cost=Decimal(unit_cost), auto_serial=auto_serial,
        )],
        **kwargs,
    ), user="tester")


async def units_of(db, item_id):
    result = await db.execute(
        select(InventoryUnit).where(InventoryUnit.item_id == item_id).order_by(InventoryUnit.id)
    )
    return list(result.scalars().all())


async def roll_ids(db, item_id):
    result = await db.execute(select(Roll.id).where(Roll.item_id == item_id).order_by(Roll.id))
    return list(result.scalars().all())


def each_line(item_id, quantity=1, unit_ids=None, **kwargs):
    return EachTxLine(mode="EACH", item_id=item_id, quantity=quantity, inventory_unit_ids=unit_ids, **kwargs)


def meter_line(item_id, length, roll_id=None, **kwargs):
    return MeterTxLine(mode="METER", item_id=item_id, length_meters=Decimal(str(length)), roll_id=roll_id, **kwargs)


def sale(*lines, paid="0", **kwargs):
    return CreateTransactionRequest(items=list(lines), paid=Decimal(paid), **kwargs)


def amendment(*lines, edit_note="corrected", paid="0", **kwargs):
    return AmendTransactionRequest(items=list(lines), paid=Decimal(paid), edit_note=edit_note, **kwargs)
