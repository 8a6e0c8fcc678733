# pos_inventory/main.py
# POS Inventory API - items, rolls, serialized units, sales, restocks, returns, cash
from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pos_inventory.settings import settings
from pos_inventory.database import init_db, close_db, create_all, check_db_health
from pos_inventory.errors import register_exception_handlers
from pos_inventory.logging_setup import setup_logging

from pos_inventory.routers.items import router as items_router, rolls_router
from pos_inventory.routers.inventory import router as inventory_router
from pos_inventory.routers.restocks import router as restocks_router
from pos_inventory.routers.transactions import router as transactions_router, receipts_router
from pos_inventory.routers.returns import router as returns_router
from pos_inventory.routers.cashboxes import router as cashboxes_router, suppliers_router, customers_router
from pos_inventory.routers.reports import router as reports_router

API_VERSION = "1.0.0"

# ---------------------------------------------------------
# Logging setup
# ---------------------------------------------------------
setup_logging(settings)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------
# Lifespan: Database init/cleanup
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    if settings.AUTO_CREATE_TABLES:
        await create_all()
        logger.info("Database tables ensured")
    logger.info("POS inventory API started")
    yield
    await close_db()
    logger.info("POS inventory API stopped")


# ---------------------------------------------------------
# FastAPI app + CORS + error mapping
# ---------------------------------------------------------
app = FastAPI(
    title="POS Inventory API",
    version=API_VERSION,
    description="Point-of-sale inventory: meter rolls, serialized units, sales and returns",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)
register_exception_handlers(app)

app.include_router(items_router)
app.include_router(rolls_router)
app.include_router(inventory_router)
app.include_router(restocks_router)
app.include_router(transactions_router)
app.include_router(receipts_router)
app.include_router(returns_router)
app.include_router(cashboxes_router)
app.include_router(suppliers_router)
app.include_router(customers_router)
app.include_router(reports_router)


# ---------------------------------------------------------
# Endpoints
# ---------------------------------------------------------
@app.get("/health")
async def health():
    """Health check endpoint with database status."""
    result = {"status": "ok", "version": API_VERSION}
    db_health = await check_db_health()
    result["database"] = db_health
    if db_health.get("status") != "healthy":
        result["status"] = "degraded"
    return result
