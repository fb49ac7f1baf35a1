"""IDEMFLOW — Ingestion Error Taxonomy.

Every failure raised before a successful insert leaves no persisted row,
so callers may retry any transient error by resending the identical payload.
"""


class IngestionError(Exception):
    """Base class for ingestion pipeline failures."""

    status_code: int = 500
    public_message: str = "Internal Server Error"
    retryable: bool = True


class NormalizationError(IngestionError):
    """The payload could not be mapped onto a canonical record."""

    status_code = 400
    public_message = "Normalization failed"
    retryable = False

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class SimulatedFailure(IngestionError):
    """Caller asked the pipeline to abort before persistence."""

    public_message = "Simulated Internal Server Error"


class PersistenceError(IngestionError):
    """Unexpected store failure; nothing was written."""

    public_message = "Database write failed"


class DuplicateFingerprint(Exception):
    """Raised by a store when the fingerprint uniqueness constraint fires."""

    def __init__(self, fingerprint: str):
        self.fingerprint = fingerprint
        super().__init__(f"Fingerprint already committed: {fingerprint}")
