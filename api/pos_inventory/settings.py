# pos_inventory/settings.py
"""
POS Inventory settings - PostgreSQL (asyncpg) by default, any SQLAlchemy async URL accepted.
"""
from __future__ import annotations
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    # =========================================================================
    # File Storage (logs, CSV exports)
    # =========================================================================
    POS_DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "pos-data"),
        validation_alias=AliasChoices("POS_DATA_ROOT", "DATA_ROOT"),
    )

    # =========================================================================
    # Database
    # =========================================================================
    # Full URL wins over the DB_* parts when set (e.g. sqlite+aiosqlite:///pos.db)
    DATABASE_URL: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    DB_HOST: str = Field(default="localhost", validation_alias="DB_HOST")
    DB_PORT: int = Field(default=5432, validation_alias="DB_PORT")
    DB_NAME: str = Field(default="pos_inventory", validation_alias="DB_NAME")
    DB_USER: str = Field(default="postgres", validation_alias="DB_USER")
    DB_PASSWORD: str = Field(default="postgres", validation_alias="DB_PASSWORD")

    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    AUTO_CREATE_TABLES: bool = Field(
        default=False,
        description="Run metadata.create_all on startup (dev / single-file deployments)",
    )

    # =========================================================================
    # HTTP
    # =========================================================================
    CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:4200", "http://127.0.0.1:4200"],
    )
    DEFAULT_ACTOR: str = Field(default="system", description="Audit user when no X-User header is sent")
    LOG_LEVEL: str = "INFO"

    # =========================================================================
    # Inventory rules
    # =========================================================================
    PLACEHOLDER_BARCODE_PREFIX: str = "AUTO"
    BARCODE_MAX_LENGTH: int = 191
    UNITS_DEFAULT_LIMIT: int = 200
    UNITS_MAX_LIMIT: int = 1000
    BACKFILL_BATCH_SIZE: int = 100
    LOW_STOCK_THRESHOLD: Decimal = Decimal("5")

    # Cashboxes are created lazily the first time one of these codes is used
    CASHBOX_CODES: List[str] = Field(default=["A", "B", "C"])
    DEFAULT_CASHBOX: str = "A"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
