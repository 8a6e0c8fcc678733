"""
Inventory unit backfill for restock lines recorded without units.
"""
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from pos_inventory.db_models import InventoryUnit, Item, LineMode, Roll
from pos_inventory.db_models_ext import Restock, RestockItem, RestockRoll
from pos_inventory.services.backfill import backfill_inventory_units

D = Decimal


async def legacy_restock(session_factory):
    """A receipt from before units existed: 3 pieces, 2 rolls, no units."""
    async with session_factory() as db:
        lock = Item(name="Bike lock", stock=D("3"))
        chain = Item(name="Chain", stock_unit="m")
        db.add_all([lock, chain])
        await db.flush()
        restock = Restock(supplier_name="Velo Parts")
        db.add(restock)
        await db.flush()

        each = RestockItem(restock_id=restock.id, item_id=lock.id, mode=LineMode.EACH,
                           quantity=3, unit_cost=D("9.999"), line_total=D("30"))
        meter = RestockItem(restock_id=restock.id, item_id=chain.id, mode=LineMode.METER,
                            quantity=2, total_length_m=D("15.75"), unit_cost=D("2"), line_total=D("31.5"))
        db.add_all([each, meter])
        await db.flush()
        for length in (D("10.5"), D("5.25")):
            roll = Roll(item_id=chain.id, length_m=length, remaining_m=length)
            db.add(roll)
            await db.flush()
            db.add(RestockRoll(restock_item_id=meter.id, roll_id=roll.id, length_m=length))
        await db.commit()
        return lock.id, chain.id


async def unit_count(session_factory, item_id):
    async with session_factory() as db:
        return await db.scalar(
            select(func.count()).select_from(InventoryUnit).where(InventoryUnit.item_id == item_id)
        )


class TestBackfill:

    async def test_creates_missing_units(self, session_factory):
        lock_id, chain_id = await legacy_restock(session_factory)
        seen = []
        report = await backfill_inventory_units(session_factory, batch_size=1, progress=lambda r: seen.append(r.last_id))

        assert report.processed == 2
        assert report.created == 5
        assert await unit_count(session_factory, lock_id) == 3
        assert await unit_count(session_factory, chain_id) == 2
        assert len(seen) == report.batches
        assert seen[-1] == report.last_id

        async with session_factory() as db:
            units = (await db.execute(select(InventoryUnit).where(InventoryUnit.item_id == chain_id))).scalars().all()
            assert all(u.roll_id is not None and u.is_placeholder for u in units)
            costs = (await db.execute(select(InventoryUnit.cost_each).where(InventoryUnit.item_id == lock_id))).scalars()
            assert set(costs) == {D("10.00")}

    async def test_rerun_is_a_no_op(self, session_factory):
        lock_id, _ = await legacy_restock(session_factory)
        await backfill_inventory_units(session_factory)
        again = await backfill_inventory_units(session_factory)
        assert again.created == 0
        assert await unit_count(session_factory, lock_id) == 3

    async def test_dry_run_writes_nothing(self, session_factory):
        lock_id, chain_id = await legacy_restock(session_factory)
        report = await backfill_inventory_units(session_factory, dry_run=True)
        assert report.dry_run
        assert report.created == 5
        assert await unit_count(session_factory, lock_id) == 0
        assert await unit_count(session_factory, chain_id) == 0

    async def test_resume_after_id(self, session_factory):
        lock_id, chain_id = await legacy_restock(session_factory)
        async with session_factory() as db:
            first_line = await db.scalar(select(func.min(RestockItem.id)))
        report = await backfill_inventory_units(session_factory, start_after_id=first_line)
        assert report.processed == 1
        assert await unit_count(session_factory, lock_id) == 0
        assert await unit_count(session_factory, chain_id) == 2

    async def test_bad_batch_size(self, session_factory):
        with pytest.raises(ValueError):
            await backfill_inventory_units(session_factory, batch_size=-1)
