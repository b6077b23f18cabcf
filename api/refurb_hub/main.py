# refurb_hub/main.py
# Refurb Hub - inventory spreadsheet -> storefront catalog sync + local sales
from __future__ import annotations
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .settings import settings
from .database import Database
from .services.store import InventoryStore

from refurb_hub.routers.inventory import router as inventory_router
from refurb_hub.routers.sync import router as sync_router
from refurb_hub.routers.sales import router as sales_router

VERSION = "1.0.0"

# ---------------------------------------------------------
# Logging setup
# ---------------------------------------------------------
from refurb_hub.logging_setup import setup_logging
setup_logging(settings)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# Lifespan: store open/close
# ---------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    store = InventoryStore(Database(settings.DATABASE_URL, echo=settings.DB_ECHO))
    try:
        await store.open()
        app.state.store = store
        logger.info("Inventory store connected")
    except Exception as e:
        # catalog sync still works without local persistence
        logger.error("Inventory store unavailable: %s", e)
        app.state.store = None
    yield
    if app.state.store is not None:
        await app.state.store.close()
        logger.info("Inventory store disconnected")

# ---------------------------------------------------------
# FastAPI app + CORS
# ---------------------------------------------------------
app = FastAPI(
    title="Refurb Hub API",
    version=VERSION,
    description="Refurbished inventory -> storefront catalog reconciliation",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(inventory_router)
app.include_router(sync_router)
app.include_router(sales_router)

# ---------------------------------------------------------
# Endpoints
# ---------------------------------------------------------
@app.get("/api/health")
async def health():
    """Health check endpoint with database status."""
    result = {"status": "ok", "version": VERSION}
    store = getattr(app.state, "store", None)
    if store is None:
        result["database"] = {"status": "unhealthy", "database": "unavailable"}
        result["status"] = "degraded"
        return result
    db_health = await store.health()
    result["database"] = db_health
    if db_health.get("status") != "healthy":
        result["status"] = "degraded"
    return result
