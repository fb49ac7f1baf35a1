"""IDEMFLOW — Central Configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""
    sqlite_busy_timeout: float = 30.0  # seconds a writer waits on a locked SQLite file

    # ── Ingestion ──
    canonical_sort_keys: bool = False  # True = fingerprint on sorted-key JSON
    invalid_timestamp_policy: Literal["receipt", "reject"] = "receipt"

    # ── Read side ──
    events_list_limit: int = 50

    # ── App ──
    log_level: str = "INFO"
    summary_enabled: bool = True
    summary_interval_minutes: int = 15

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL, otherwise a process-lifetime SQLite DB."""
        if self.database_url:
            return self.database_url
        return "sqlite://"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
