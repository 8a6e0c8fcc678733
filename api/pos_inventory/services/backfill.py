# pos_inventory/services/backfill.py
"""
Inventory unit backfill for restock lines recorded before units existed.

Walks restock lines in id order, one batch per database transaction, and
tops each line up to its expected unit count. Safe to rerun and to resume
from the last processed id.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_inventory.settings import settings
from pos_inventory.db_models import InventoryUnit, InventoryUnitStatus, LineMode
from pos_inventory.db_models_ext import RestockItem, RestockRoll
from pos_inventory.services.inventory_units import InventoryUnitService, generate_placeholder_barcode
from pos_inventory.utils import quantize_money

log = logging.getLogger(__name__)


@dataclass
class BackfillReport:
    processed: int = 0
    created: int = 0
    batches: int = 0
    # resume point for --start-after
    last_id: int = 0
    dry_run: bool = False


async def backfill_restock_line(db: AsyncSession, line: RestockItem) -> int:
    """Create the units ``line`` is missing; returns how many were created."""
    cost_each = quantize_money(line.unit_cost or 0)

    if line.mode == LineMode.METER:
        result = await db.execute(
            select(RestockRoll).where(RestockRoll.restock_item_id == line.id).order_by(RestockRoll.id)
        )
        created_for_rolls = 0
        for rr in result.scalars().all():
            existing = await db.scalar(
                select(func.count()).select_from(InventoryUnit).where(InventoryUnit.roll_id == rr.roll_id)
            )
            if existing:
                continue
            db.add(InventoryUnit(
                item_id=line.item_id,
                restock_item_id=line.id,
                roll_id=rr.roll_id,
                barcode=generate_placeholder_barcode(),
                is_placeholder=True,
                status=InventoryUnitStatus.available,
                cost_each=cost_each,
            ))
            created_for_rolls += 1
        if created_for_rolls:
            await db.flush()
            return created_for_rolls

    if line.mode == LineMode.EACH:
        expected = max(1, line.quantity or 0)
    else:
        expected = max(1, line.quantity or 1)
    existing = await db.scalar(
        select(func.count()).select_from(InventoryUnit).where(InventoryUnit.restock_item_id == line.id)
    )
    missing = expected - (existing or 0)
    if missing <= 0:
        return 0
    await InventoryUnitService(db).create_units(
        line.item_id, cost_each=cost_each, count=missing, restock_item_id=line.id,
    )
    return missing


async def backfill_inventory_units(
    session_factory: async_sessionmaker[AsyncSession],
    batch_size: Optional[int] = None,
    start_after_id: int = 0,
    dry_run: bool = False,
    progress: Optional[Callable[[BackfillReport], None]] = None,
) -> BackfillReport:
    batch_size = batch_size or settings.BACKFILL_BATCH_SIZE
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    report = BackfillReport(last_id=start_after_id, dry_run=dry_run)
    while True:
        async with session_factory() as db:
            result = await db.execute(
                select(RestockItem)
                .where(RestockItem.id > report.last_id)
                .order_by(RestockItem.id)
                .limit(batch_size)
            )
            chunk = list(result.scalars().all())
            if not chunk:
                break

            for line in chunk:
                report.created += await backfill_restock_line(db, line)
                report.processed += 1
                report.last_id = line.id

            if dry_run:
                await db.rollback()
            else:
                await db.commit()
        report.batches += 1
        log.info("backfill batch %s: processed=%s created=%s last_id=%s",
                 report.batches, report.processed, report.created, report.last_id)
        if progress is not None:
            progress(report)
        if len(chunk) < batch_size:
            break

    return report
