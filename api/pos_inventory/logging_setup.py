# -*- coding: utf-8 -*-
from __future__ import annotations
import logging, logging.handlers
from pathlib import Path

LOG_NAME = "pos_inventory.log"


def setup_logging(settings) -> Path:
    """Configure rotating file logging under POS_DATA_ROOT/logs/pos_inventory.log"""
    log_dir = Path(settings.POS_DATA_ROOT).expanduser() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / LOG_NAME
    level = logging.getLevelName(str(settings.LOG_LEVEL).upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.handlers.RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s — %(message)s"))
    handler.setLevel(level)

    def _has_ours(lg: logging.Logger) -> bool:
        return any(getattr(h, "baseFilename", "").endswith(LOG_NAME) for h in lg.handlers)

    # root first, then the server loggers that don't propagate to it
    for lg in [logging.getLogger()] + [logging.getLogger(n) for n in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")]:
        lg.setLevel(level)
        if not _has_ours(lg):
            lg.addHandler(handler)

    return log_path
