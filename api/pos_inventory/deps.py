# pos_inventory/deps.py
from __future__ import annotations
from typing import Optional

from fastapi import Header

from pos_inventory.settings import settings


async def get_actor(x_user: Optional[str] = Header(default=None)) -> str:
    """Audit identity; authentication happens in front of this service."""
    return (x_user or "").strip() or settings.DEFAULT_ACTOR
