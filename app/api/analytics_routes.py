"""IDEMFLOW — Analytics API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.analyzer.aggregation_engine import (
    MAX_RECENT_EVENTS,
    compute_client_totals,
    list_recent_events,
)
from app.models.event_models import ClientTotal, EventOut
from app.storage.dependencies import get_store
from app.storage.event_store import EventStore

router = APIRouter(tags=["Analytics"])


@router.get("/analytics", response_model=List[ClientTotal])
async def get_analytics(store: EventStore = Depends(get_store)):
    """Event count and summed amount per client."""
    return compute_client_totals(store)


@router.get("/events", response_model=List[EventOut])
async def get_events(
    limit: Optional[int] = Query(None, ge=1, le=MAX_RECENT_EVENTS),
    store: EventStore = Depends(get_store),
):
    """Most recent canonical records, newest first."""
    return list_recent_events(store, limit)
