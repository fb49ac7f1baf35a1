import threading

import pytest

from app.core.errors import NormalizationError, PersistenceError, SimulatedFailure
from app.database import build_engine
from app.ingestion.pipeline import IngestionPipeline, IngestOutcome
from app.storage.event_store import SQLEventStore

EVENT = {
    "source": "client_A",
    "payload": {"metric": "click_event", "value": 1200, "timestamp": "2024-01-01T10:00:00Z"},
}


class StaleReadStore(SQLEventStore):
    """The first ``misses`` lookups see nothing, as if those requests raced."""

    def __init__(self, engine, misses):
        super().__init__(engine)
        self.misses = misses

    def get_by_fingerprint(self, fingerprint):
        if self.misses > 0:
            self.misses -= 1
            return None
        return super().get_by_fingerprint(fingerprint)


class BrokenInsertStore(SQLEventStore):
    def insert(self, record):
        raise PersistenceError("disk full")


def _row_count(store) -> int:
    return len(store.recent_events(50))


def test_same_payload_is_persisted_once(pipeline, store) -> None:
    results = [pipeline.ingest(EVENT) for _ in range(5)]

    assert results[0].outcome is IngestOutcome.CREATED
    assert results[0].id is not None
    assert all(r.outcome is IngestOutcome.DUPLICATE for r in results[1:])
    assert len({r.fingerprint for r in results}) == 1
    assert _row_count(store) == 1


def test_stored_record_carries_canonical_fields(pipeline, store) -> None:
    result = pipeline.ingest(EVENT)
    record = store.get_by_fingerprint(result.fingerprint)

    assert record.id == result.id
    assert record.client_id == "client_A"
    assert record.canonical_metric == "click_event"
    assert record.canonical_amount == 1200
    assert record.canonical_timestamp == "2024-01-01T10:00:00.000Z"
    assert record.status == "processed"
    assert record.raw_payload.startswith('{"source":"client_A","payload":')


def test_simulated_failures_leave_no_trace(pipeline, store) -> None:
    for _ in range(3):
        with pytest.raises(SimulatedFailure):
            pipeline.ingest(EVENT, simulate_failure=True)
    assert _row_count(store) == 0

    result = pipeline.ingest(EVENT)
    assert result.outcome is IngestOutcome.CREATED
    assert _row_count(store) == 1


def test_simulated_failure_on_known_duplicate_still_dedups(pipeline) -> None:
    pipeline.ingest(EVENT)
    result = pipeline.ingest(EVENT, simulate_failure=True)
    assert result.outcome is IngestOutcome.DUPLICATE


def test_invalid_payload_is_rejected_before_failure_injection(pipeline, store) -> None:
    with pytest.raises(NormalizationError):
        pipeline.ingest(None, simulate_failure=True)
    assert _row_count(store) == 0


def test_insert_conflict_is_reported_as_race_duplicate() -> None:
    # Both fast-path reads miss; the conflict check after the insert does not
    store = StaleReadStore(build_engine("sqlite://"), misses=2)
    store.open()
    pipeline = IngestionPipeline(store)

    first = pipeline.ingest(EVENT)
    second = pipeline.ingest(EVENT)

    assert first.outcome is IngestOutcome.CREATED
    assert second.outcome is IngestOutcome.RACE_DUPLICATE
    assert second.outcome.deduplicated
    assert _row_count(store) == 1
    store.close()


def test_store_failure_surfaces_as_persistence_error() -> None:
    store = BrokenInsertStore(build_engine("sqlite://"))
    store.open()
    with pytest.raises(PersistenceError):
        IngestionPipeline(store).ingest(EVENT)
    assert _row_count(store) == 0
    store.close()


@pytest.mark.parametrize("backing", ["memory", "file"])
def test_concurrent_submissions_persist_exactly_once(tmp_path, backing) -> None:
    url = "sqlite://" if backing == "memory" else f"sqlite:///{tmp_path / 'events.db'}"
    store = SQLEventStore(build_engine(url))
    store.open()
    pipeline = IngestionPipeline(store)

    workers = 16
    barrier = threading.Barrier(workers)
    results = []
    errors = []

    def submit():
        barrier.wait()
        try:
            results.append(pipeline.ingest(EVENT))
        except Exception as e:  # pragma: no cover - reported below
            errors.append(e)

    threads = [threading.Thread(target=submit) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    created = [r for r in results if r.outcome is IngestOutcome.CREATED]
    assert len(created) == 1
    assert all(r.outcome.deduplicated for r in results if r not in created)
    [row] = store.recent_events(50)
    assert row.id == created[0].id
    store.close()


def test_sorted_key_mode_dedups_reordered_payloads(store) -> None:
    pipeline = IngestionPipeline(store, sort_keys=True)
    first = pipeline.ingest({"source": "a", "payload": {"x": 1, "amount": 2}})
    second = pipeline.ingest({"payload": {"amount": 2, "x": 1}, "source": "a"})

    assert first.outcome is IngestOutcome.CREATED
    assert second.outcome is IngestOutcome.DUPLICATE
