"""IDEMFLOW — Persistence Store.

The store owns the ``events`` table. Its uniqueness constraint on
``event_fingerprint`` is the final arbiter of deduplication: when two writers
race past the fast-path check, exactly one insert commits and the other gets
``DuplicateFingerprint``.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import nullcontext
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, select

from app.core.errors import DuplicateFingerprint, PersistenceError
from app.core.logging import get_logger
from app.database import check_connection
from app.models.event_models import EventRecord

logger = get_logger("storage.events")


class EventStore(ABC):
    """Store interface the ingestion pipeline and aggregator depend on."""

    @abstractmethod
    def open(self) -> None:
        """Make the table available. Idempotent."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Release connections. A volatile store loses its rows here."""
        ...

    @abstractmethod
    def get_by_fingerprint(self, fingerprint: str) -> Optional[EventRecord]:
        ...

    @abstractmethod
    def insert(self, record: EventRecord) -> EventRecord:
        """Persist ``record`` and return it with ``id`` assigned.

        Raises:
            DuplicateFingerprint: the fingerprint is already committed.
            PersistenceError: any other store failure. Nothing was written.
        """
        ...

    @abstractmethod
    def client_totals(self, status: str) -> List[Tuple[str, int, float]]:
        """``(client_id, count, total_amount)`` per client for rows in ``status``."""
        ...

    @abstractmethod
    def recent_events(self, limit: int) -> List[EventRecord]:
        """Newest committed rows first."""
        ...

    @abstractmethod
    def is_healthy(self) -> bool:
        ...


class SQLEventStore(EventStore):
    """EventStore backed by a SQLAlchemy engine (SQLite or PostgreSQL).

    Each operation uses its own short-lived session, so the fast-path read
    never holds a lock while another request inserts. On a StaticPool engine
    every session shares one connection, so operations are serialized.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._lock = threading.RLock() if isinstance(engine.pool, StaticPool) else nullcontext()

    def open(self) -> None:
        logger.info("🔨 Creating events table...")
        with self._lock:
            SQLModel.metadata.create_all(self.engine, tables=[EventRecord.__table__])
        logger.info("✅ Events table ready")

    def close(self) -> None:
        with self._lock:
            self.engine.dispose()
        logger.info("Event store closed")

    def get_by_fingerprint(self, fingerprint: str) -> Optional[EventRecord]:
        try:
            with self._lock, Session(self.engine) as session:
                return session.exec(
                    select(EventRecord).where(
                        EventRecord.event_fingerprint == fingerprint
                    )
                ).first()
        except SQLAlchemyError as e:
            logger.error(f"Fingerprint lookup failed: {e}", extra={"fingerprint": fingerprint})
            raise PersistenceError(str(e)) from e

    def insert(self, record: EventRecord) -> EventRecord:
        fingerprint = record.event_fingerprint
        record.created_at = datetime.now(timezone.utc)
        with self._lock, Session(self.engine, expire_on_commit=False) as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                # Only a committed winner turns the conflict into a duplicate
                if self.get_by_fingerprint(fingerprint) is not None:
                    raise DuplicateFingerprint(fingerprint) from e
                logger.error(f"Insert rejected: {e}", extra={"fingerprint": fingerprint})
                raise PersistenceError(str(e)) from e
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Insert failed: {e}", extra={"fingerprint": fingerprint})
                raise PersistenceError(str(e)) from e
        return record

    def client_totals(self, status: str) -> List[Tuple[str, int, float]]:
        with self._lock, Session(self.engine) as session:
            rows = session.exec(
                select(
                    EventRecord.client_id,
                    func.count(EventRecord.id),
                    func.sum(EventRecord.canonical_amount),
                )
                .where(EventRecord.status == status)
                .group_by(EventRecord.client_id)
                .order_by(EventRecord.client_id)
            ).all()
        return [(client_id, count, total or 0.0) for client_id, count, total in rows]

    def recent_events(self, limit: int) -> List[EventRecord]:
        with self._lock, Session(self.engine) as session:
            return list(
                session.exec(
                    select(EventRecord)
                    .order_by(
                        EventRecord.created_at.desc(),  # type: ignore
                        EventRecord.id.desc(),  # type: ignore
                    )
                    .limit(limit)
                ).all()
            )

    def is_healthy(self) -> bool:
        with self._lock:
            return check_connection(self.engine)
