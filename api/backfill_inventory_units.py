# backfill_inventory_units.py
# -*- coding: utf-8 -*-
import sys
import asyncio
import argparse
import logging
from typing import List, Optional

from pos_inventory.settings import settings
from pos_inventory.logging_setup import setup_logging
from pos_inventory.database import make_engine, make_session_factory, get_database_url
from pos_inventory.services.backfill import BackfillReport, backfill_inventory_units

log = logging.getLogger("backfill_inventory_units")


def print_progress(report: BackfillReport) -> None:
    sys.stdout.write(
        f"\rProcessed {report.processed} restock line(s), created {report.created} unit(s), last id {report.last_id}..."
    )
    sys.stdout.flush()


async def run(database_url: str, batch_size: int, start_after: int, dry_run: bool) -> BackfillReport:
    engine = make_engine(database_url)
    try:
        return await backfill_inventory_units(
            make_session_factory(engine),
            batch_size=batch_size,
            start_after_id=start_after,
            dry_run=dry_run,
            progress=print_progress,
        )
    finally:
        await engine.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Create missing inventory units for historical restock lines")
    ap.add_argument("--batch-size", type=int, default=settings.BACKFILL_BATCH_SIZE,
                    help="Restock lines per transaction")
    ap.add_argument("--start-after", type=int, default=0,
                    help="Resume after this restock line id (printed as 'last id')")
    ap.add_argument("--dry-run", action="store_true", help="Count what would be created, write nothing")
    ap.add_argument("--database-url", default="", help="Override DATABASE_URL / DB_* settings")
    args = ap.parse_args(argv)

    if args.batch_size < 1:
        ap.error("--batch-size must be >= 1")

    setup_logging(settings)
    url = args.database_url or get_database_url()
    try:
        report = asyncio.run(run(url, args.batch_size, args.start_after, args.dry_run))
    except Exception as e:
        sys.stdout.write("\n")
        log.exception("backfill failed")
        print(f"[FAIL] Backfill failed: {e}", file=sys.stderr)
        return 1

    sys.stdout.write("\n")
    verb = "Would create" if report.dry_run else "Created"
    print(f"[OK] Backfill complete. {verb} {report.created} inventory unit(s) "
          f"across {report.processed} restock line(s); last id {report.last_id}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
