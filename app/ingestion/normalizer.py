"""IDEMFLOW — Heuristic Payload Normalizer.

Maps an arbitrary-shaped producer payload onto the canonical record
(client id, metric, amount, timestamp) without knowing its schema.
Extraction is best-effort but deterministic: the same payload always
yields the same canonical fields.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel

from app.core.errors import NormalizationError
from app.core.logging import get_logger

logger = get_logger("ingestion.normalizer")

DATA_KEYS = ("payload", "data", "body")
AMOUNT_KEYS = frozenset({"amount", "cost", "value", "price", "amt"})
TIMESTAMP_KEYS = ("timestamp", "date", "ts")
CLIENT_KEYS = ("source", "client")

DEFAULT_CLIENT_ID = "unknown"
DEFAULT_METRIC = "generic_event"

# Leading numeric prefix, the way JavaScript's parseFloat reads a string
_FLOAT_PREFIX = re.compile(
    r"^\s*([+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))"
)


class NormalizationResult(BaseModel):
    """Canonical fields extracted from a raw payload."""

    client_id: str = DEFAULT_CLIENT_ID
    metric: str = DEFAULT_METRIC
    amount: float = 0.0
    timestamp: str = ""
    is_valid: bool = True
    error: Optional[str] = None


def _is_truthy(value: Any) -> bool:
    """Producer-side truthiness: null, false, 0, NaN and "" count as absent."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def _parse_amount(value: Any) -> float:
    """Parse a candidate amount; returns NaN when nothing numeric is found."""
    if isinstance(value, bool) or value is None:
        return math.nan
    if isinstance(value, (int, float)):
        try:
            return float(value)
        except OverflowError:
            return math.nan
    if isinstance(value, str):
        match = _FLOAT_PREFIX.match(value)
        if match:
            return float(match.group(1).replace("Infinity", "inf"))
    return math.nan


def _to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse epoch milliseconds or an ISO-8601 string; None if unparsable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _select_data_object(raw: Any) -> Dict[str, Any]:
    """Return the sub-object holding the event data.

    Anything that is not a JSON object contributes no fields.
    """
    if not isinstance(raw, dict):
        return {}
    for key in DATA_KEYS:
        if _is_truthy(raw.get(key)):
            data = raw[key]
            return data if isinstance(data, dict) else {}
    return raw


def _extract_amount(fields: List[Tuple[str, Any]]) -> float:
    """First candidate key in the object's own order wins, not the best-ranked one."""
    amount = math.nan
    for key, value in fields:
        if key.lower() in AMOUNT_KEYS:
            amount = _parse_amount(value)
            break
    if not math.isfinite(amount):
        return 0.0
    return amount


def _extract_timestamp(
    data: Dict[str, Any],
    received_at: datetime,
    invalid_timestamp: str,
) -> str:
    raw_value = next(
        (data[key] for key in TIMESTAMP_KEYS if _is_truthy(data.get(key))), None
    )
    if raw_value is None:
        return _to_iso(received_at)

    parsed = _parse_timestamp(raw_value)
    if parsed is not None:
        try:
            return _to_iso(parsed)
        except (OverflowError, ValueError):
            pass

    if invalid_timestamp == "reject":
        raise NormalizationError(f"Unparsable timestamp: {raw_value!r}")
    logger.warning(f"Unparsable timestamp {raw_value!r}, using receipt time")
    return _to_iso(received_at)


def _extract_client_id(raw: Any) -> str:
    if not isinstance(raw, dict):
        return DEFAULT_CLIENT_ID
    for key in CLIENT_KEYS:
        if _is_truthy(raw.get(key)):
            return str(raw[key])
    return DEFAULT_CLIENT_ID


def normalize_event(
    raw: Any,
    received_at: Optional[datetime] = None,
    invalid_timestamp: str = "receipt",
) -> NormalizationResult:
    """Extract canonical fields from a raw event payload.

    Args:
        raw: The event exactly as submitted by the producer.
        received_at: Server receipt time, used when the payload carries no
            timestamp. Defaults to now.
        invalid_timestamp: ``"receipt"`` falls back to ``received_at`` when a
            timestamp is present but unparsable; ``"reject"`` fails the event.

    Returns:
        A NormalizationResult. Failures never raise; they come back with
        ``is_valid=False`` and the reason in ``error``.
    """
    received_at = received_at or datetime.now(timezone.utc)
    try:
        if raw is None:
            raise NormalizationError("Event is missing or null")

        data = _select_data_object(raw)
        fields = list(data.items())
        metric = data.get("metric")

        return NormalizationResult(
            client_id=_extract_client_id(raw),
            metric=str(metric) if _is_truthy(metric) else DEFAULT_METRIC,
            amount=_extract_amount(fields),
            timestamp=_extract_timestamp(data, received_at, invalid_timestamp),
        )
    except Exception as e:
        return NormalizationResult(is_valid=False, error=str(e))
