"""
Pytest fixtures for webhook ingest tests. A recording in-memory store replaces
the real transactions store through FastAPI dependency overrides.
"""

from __future__ import annotations

import uuid

import pytest

from webhook_ingest.config import Settings, get_settings
from webhook_ingest.stores import InsertResult, TransactionStore

WEBHOOK_SECRET = "test-secret"


class RecordingStore(TransactionStore):
    """Keeps inserted rows in memory and counts every insert call."""

    def __init__(self, fail_with: Exception | None = None):
        self.rows: list[dict] = []
        self.calls = 0
        self.fail_with = fail_with
        self._keys: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "recording"

    async def insert(self, event, idempotency_key=None) -> InsertResult:
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if idempotency_key is not None and idempotency_key in self._keys:
            return InsertResult(id=self._keys[idempotency_key], duplicate=True)
        row_id = str(uuid.uuid4())
        self.rows.append({"id": row_id, **event.transaction.to_row()})
        if idempotency_key is not None:
            self._keys[idempotency_key] = row_id
        return InsertResult(id=row_id)


def make_settings(**overrides) -> Settings:
    values = {"webhook_secret": WEBHOOK_SECRET, "supabase_url": "", "database_url": ""}
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def client(store, settings):
    """FastAPI TestClient with settings and store overridden; lifespan is not run."""
    from fastapi.testclient import TestClient

    from webhook_ingest.dependencies import get_store
    from webhook_ingest.main import app
    from webhook_ingest.routers.webhooks import limiter

    limiter.enabled = False
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_store] = lambda: store
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def auth_headers():
    return {"x-webhook-secret": WEBHOOK_SECRET}
