"""IDEMFLOW — Ingestion Pipeline.

Runs the write path for one submitted event:
  fingerprint → fast-path duplicate check → normalize → failure hook → insert

The store's uniqueness constraint is the correctness guarantee; the fast path
only saves normalization work for obvious retries. Any failure before the
insert commits leaves no row behind, so every transient error is retryable
with the identical payload.
"""

import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from app.config import settings
from app.core.canonical import fingerprint_payload
from app.core.errors import DuplicateFingerprint, NormalizationError, SimulatedFailure
from app.core.logging import get_logger
from app.ingestion.normalizer import normalize_event
from app.models.event_models import EventRecord, EventStatus
from app.storage.event_store import EventStore

logger = get_logger("ingestion.pipeline")


class IngestOutcome(str, Enum):
    """How a successful submission was resolved."""

    CREATED = "created"
    DUPLICATE = "duplicate"  # fast path
    RACE_DUPLICATE = "race_duplicate"  # uniqueness conflict at insert

    @property
    def deduplicated(self) -> bool:
        return self is not IngestOutcome.CREATED


class IngestResult(BaseModel):
    """Result of a successful ingestion."""

    outcome: IngestOutcome
    fingerprint: str
    id: Optional[int] = None

    @property
    def message(self) -> str:
        if self.outcome is IngestOutcome.RACE_DUPLICATE:
            return "Event processed (race-condition dedup)"
        if self.outcome is IngestOutcome.DUPLICATE:
            return "Event processed (deduplicated)"
        return "Event processed"


class IngestionPipeline:
    """Idempotent write path over an injected EventStore."""

    def __init__(
        self,
        store: EventStore,
        sort_keys: bool = False,
        invalid_timestamp: str = "receipt",
    ):
        self.store = store
        self.sort_keys = sort_keys
        self.invalid_timestamp = invalid_timestamp

    @classmethod
    def from_settings(cls, store: EventStore) -> "IngestionPipeline":
        return cls(
            store,
            sort_keys=settings.canonical_sort_keys,
            invalid_timestamp=settings.invalid_timestamp_policy,
        )

    def ingest(self, event: Any, simulate_failure: bool = False) -> IngestResult:
        """Ingest one raw event.

        Raises:
            NormalizationError: the payload could not be normalized.
            SimulatedFailure: ``simulate_failure`` was set.
            PersistenceError: the store failed unexpectedly.
        """
        started = time.perf_counter()
        received_at = datetime.now(timezone.utc)
        serialized, fp = fingerprint_payload(event, sort_keys=self.sort_keys)

        # ── Step 1: Fast path ──
        if self.store.get_by_fingerprint(fp) is not None:
            logger.info(
                f"[Idempotency] Duplicate event detected: {fp}",
                extra={"fingerprint": fp, "outcome": IngestOutcome.DUPLICATE},
            )
            return IngestResult(outcome=IngestOutcome.DUPLICATE, fingerprint=fp)

        # ── Step 2: Normalize ──
        normalized = normalize_event(
            event, received_at=received_at, invalid_timestamp=self.invalid_timestamp
        )
        if not normalized.is_valid:
            logger.warning(
                f"Normalization failed for {fp}: {normalized.error}",
                extra={"fingerprint": fp},
            )
            raise NormalizationError(normalized.error or "unknown error")

        # ── Step 3: Failure injection ──
        if simulate_failure:
            logger.warning(
                f"[Failure Sim] Aborting before persistence for hash: {fp}",
                extra={"fingerprint": fp, "client_id": normalized.client_id},
            )
            raise SimulatedFailure(fp)

        # ── Step 4: Persist ──
        record = EventRecord(
            event_fingerprint=fp,
            client_id=normalized.client_id,
            canonical_metric=normalized.metric,
            canonical_amount=normalized.amount,
            canonical_timestamp=normalized.timestamp,
            raw_payload=serialized,
            status=EventStatus.PROCESSED.value,
        )
        try:
            record = self.store.insert(record)
        except DuplicateFingerprint:
            logger.info(
                f"[Idempotency] Lost insert race for {fp}",
                extra={"fingerprint": fp, "outcome": IngestOutcome.RACE_DUPLICATE},
            )
            return IngestResult(outcome=IngestOutcome.RACE_DUPLICATE, fingerprint=fp)

        logger.info(
            f"Stored event id={record.id} client={record.client_id}",
            extra={
                "fingerprint": fp,
                "client_id": record.client_id,
                "outcome": IngestOutcome.CREATED,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return IngestResult(outcome=IngestOutcome.CREATED, fingerprint=fp, id=record.id)
