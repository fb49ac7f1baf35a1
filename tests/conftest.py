import os

# Keep the summary scheduler out of the TestClient lifespan
os.environ.setdefault("SUMMARY_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from app.database import build_engine
from app.ingestion.pipeline import IngestionPipeline
from app.main import app
from app.storage.dependencies import get_store
from app.storage.event_store import SQLEventStore


@pytest.fixture
def store():
    """Fresh in-memory store per test."""
    s = SQLEventStore(build_engine("sqlite://"))
    s.open()
    yield s
    s.close()


@pytest.fixture
def pipeline(store):
    return IngestionPipeline(store)


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
