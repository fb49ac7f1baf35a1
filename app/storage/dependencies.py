"""IDEMFLOW — Store wiring and FastAPI dependencies."""

from fastapi import Depends

from app.database import build_engine, db_url
from app.ingestion.pipeline import IngestionPipeline
from app.storage.event_store import EventStore, SQLEventStore

event_store: EventStore = SQLEventStore(build_engine(db_url))


def get_store() -> EventStore:
    """Dependency — the process-wide event store."""
    return event_store


def get_pipeline(store: EventStore = Depends(get_store)) -> IngestionPipeline:
    """Dependency — an ingestion pipeline over the active store."""
    return IngestionPipeline.from_settings(store)
