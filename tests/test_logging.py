import json
import logging

from app.core.logging import JSONFormatter, get_logger
from app.ingestion.pipeline import IngestOutcome

EVENT = {"source": "client_A", "payload": {"value": 3}}


def _format(**fields) -> dict:
    record = logging.makeLogRecord({"name": "idemflow.test", "levelname": "INFO", "msg": "hi", **fields})
    return json.loads(JSONFormatter().format(record))


def test_line_carries_service_and_millisecond_utc_timestamp() -> None:
    entry = _format(created=1704103200.1239)
    assert entry["service"] == "idemflow"
    assert entry["timestamp"] == "2024-01-01T10:00:00.123Z"
    assert entry["message"] == "hi"


def test_outcome_enum_is_written_as_its_value() -> None:
    entry = _format(fingerprint="ab" * 32, outcome=IngestOutcome.RACE_DUPLICATE)
    assert entry["fingerprint"] == "ab" * 32
    assert entry["outcome"] == "race_duplicate"


def test_unknown_extras_are_dropped_and_durations_rounded() -> None:
    entry = _format(duration_ms=1.23456789, endpoint="/ingest")
    assert entry["duration_ms"] == 1.235
    assert "endpoint" not in entry


def test_pipeline_logs_stored_event_with_context(pipeline, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="idemflow.ingestion"):
        result = pipeline.ingest(EVENT)
        pipeline.ingest(EVENT)

    lines = [json.loads(JSONFormatter().format(r)) for r in caplog.records]
    outcomes = [line.get("outcome") for line in lines if line.get("fingerprint") == result.fingerprint]
    assert outcomes == ["created", "duplicate"]
    [created] = [line for line in lines if line.get("outcome") == "created"]
    assert created["client_id"] == "client_A"
    assert created["duration_ms"] >= 0


def test_get_logger_is_namespaced_and_reused() -> None:
    first = get_logger("unit")
    assert first.name == "idemflow.unit"
    assert get_logger("unit") is first
    assert len(first.handlers) == 1
