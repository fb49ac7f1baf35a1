"""IDEMFLOW — Aggregation Engine.

Read-only views over committed events: per-client totals and the recent
events listing. Failed or simulated-failed submissions never reach the
table, so nothing here needs to filter them out.
"""

from typing import List

from app.config import settings
from app.models.event_models import ClientTotal, EventOut, EventStatus
from app.storage.event_store import EventStore
from app.core.logging import get_logger

logger = get_logger("analyzer.aggregation")

MAX_RECENT_EVENTS = 50


def compute_client_totals(store: EventStore) -> List[ClientTotal]:
    """Count and sum ``canonical_amount`` per client over processed events."""
    rows = store.client_totals(EventStatus.PROCESSED.value)
    totals = [
        ClientTotal(client_id=client_id, count=count, total_amount=total)
        for client_id, count, total in rows
    ]
    logger.debug(f"Computed totals for {len(totals)} clients")
    return totals


def list_recent_events(store: EventStore, limit: int | None = None) -> List[EventOut]:
    """Most recent committed events, newest first, capped at 50."""
    cap = min(settings.events_list_limit, MAX_RECENT_EVENTS)
    limit = cap if limit is None else max(1, min(limit, cap))
    return [EventOut.model_validate(r) for r in store.recent_events(limit)]
