"""IDEMFLOW — FastAPI Application Entry Point.

Idempotent event ingestion with heuristic schema normalization.
"""

from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.analytics_routes import router as analytics_router
from app.api.ingest_routes import router as ingest_router
from app.core.logging import get_logger
from app.database import _mask_url, db_url
from app.scheduler.jobs import start_scheduler, stop_scheduler
from app.storage.dependencies import event_store, get_store
from app.storage.event_store import EventStore

logger = get_logger("main")

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 IDEMFLOW starting up...")
    if event_store.is_healthy():
        try:
            event_store.open()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — endpoints will fail")
    start_scheduler()
    yield
    stop_scheduler()
    event_store.close()
    logger.info("IDEMFLOW shut down")


app = FastAPI(
    title="IDEMFLOW",
    description="Fault-tolerant event ingestion — deduplicate retried submissions, normalize heterogeneous schemas, serve per-client aggregations.",
    version=VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(ingest_router)
app.include_router(analytics_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "idemflow",
        "version": VERSION,
    }


@app.get("/debug/db", tags=["System"])
async def debug_db(store: EventStore = Depends(get_store)):
    """Debug endpoint — check event store connectivity."""
    error = None
    connected = False
    try:
        connected = store.is_healthy()
    except Exception as e:
        error = str(e)

    backend = "postgresql" if db_url.startswith("postgresql") else "sqlite"
    return {
        "connected": connected,
        "backend": backend,
        "url": _mask_url(db_url),
        "error": error,
    }
