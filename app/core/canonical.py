"""IDEMFLOW — Payload Canonicalizer.

Serializes an event payload into a stable string and derives the content
fingerprint used as the idempotency key for the whole pipeline.

With ``sort_keys=False`` the payload's own key order is kept, so the same
logical event sent with reordered fields gets a different fingerprint and is
stored as a new event. ``sort_keys=True`` removes that sensitivity.
"""

import hashlib
import json
from typing import Any


def canonicalize(payload: Any, sort_keys: bool = False) -> str:
    """Compact JSON serialization of ``payload``."""
    return json.dumps(
        payload,
        sort_keys=sort_keys,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def fingerprint(serialized: str) -> str:
    """SHA-256 hex digest of a canonical serialization."""
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def fingerprint_payload(payload: Any, sort_keys: bool = False) -> tuple[str, str]:
    """Return ``(serialized, fingerprint)`` for a payload."""
    serialized = canonicalize(payload, sort_keys=sort_keys)
    return serialized, fingerprint(serialized)
