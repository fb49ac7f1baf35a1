"""IDEMFLOW — Canonical Event Models.

``EventRecord`` is the persisted table and the stable schema contract.
The pydantic models below shape the HTTP surface.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlmodel import SQLModel, Field, UniqueConstraint


class EventStatus(str, Enum):
    """Lifecycle state of a stored event."""

    PROCESSED = "processed"


class EventRecord(SQLModel, table=True):
    """One row per accepted unique payload.

    The unique constraint on ``event_fingerprint`` is the authoritative
    deduplication mechanism under concurrent writers. Rows are never updated.
    """

    __tablename__ = "events"
    __table_args__ = (
        UniqueConstraint("event_fingerprint", name="uq_event_fingerprint"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    event_fingerprint: str = Field(
        index=True, max_length=64, description="SHA-256 of the canonical payload"
    )
    client_id: str = Field(default="unknown", index=True)
    canonical_metric: str = Field(default="generic_event")
    canonical_amount: float = Field(default=0.0)
    canonical_timestamp: str = Field(description="ISO-8601 UTC")
    raw_payload: str = Field(description="Canonical serialization, kept for audit")
    status: str = Field(default=EventStatus.PROCESSED.value, index=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), index=True
    )


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — HTTP surface
# ─────────────────────────────────────────────


class IngestRequest(BaseModel):
    """Request body for POST /ingest."""

    event: Any = None
    simulate_failure: bool = PydanticField(default=False, alias="simulateFailure")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "event": {
                        "source": "client_A",
                        "payload": {
                            "metric": "click_event",
                            "value": 1200,
                            "timestamp": "2024-01-01T10:00:00Z",
                        },
                    },
                    "simulateFailure": False,
                }
            ]
        },
    )


class ClientTotal(BaseModel):
    """Per-client aggregation row."""

    client_id: str
    count: int
    total_amount: float


class EventOut(BaseModel):
    """A committed canonical record."""

    id: int
    event_fingerprint: str
    client_id: str
    canonical_metric: str
    canonical_amount: float
    canonical_timestamp: str
    raw_payload: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
