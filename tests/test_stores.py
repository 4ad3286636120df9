"""
Store tests: Supabase REST via httpx.MockTransport, Postgres via a fake asyncpg pool.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from conftest import make_settings
from webhook_ingest.errors import PersistenceError, parse_postgrest_error
from webhook_ingest.normalizers.stripe import normalize_stripe
from webhook_ingest.stores import (
    PostgresTransactionStore,
    SupabaseTransactionStore,
    build_store,
)
from webhook_ingest.stores import postgres as postgres_module

NOW = datetime(2024, 3, 1, tzinfo=timezone.utc)
EVENT = normalize_stripe("u1", {"amount_paid": 4999, "customer_email": "a@b.com", "created": 1700000000}, NOW)


def supabase_store(handler) -> SupabaseTransactionStore:
    return SupabaseTransactionStore(
        "https://proj.supabase.co/", "service-key", transport=httpx.MockTransport(handler)
    )


# ── Supabase ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_supabase_insert():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json=[{"id": "row-1"}])

    store = supabase_store(handler)
    result = await store.insert(EVENT)
    await store.close()

    assert result.id == "row-1"
    assert result.duplicate is False
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/transactions"
    assert request.headers["apikey"] == "service-key"
    assert request.headers["authorization"] == "Bearer service-key"
    assert request.headers["prefer"] == "return=representation"
    assert "on_conflict" not in request.url.params
    assert json.loads(request.content) == [
        {
            "user_id": "u1",
            "amount": 49.99,
            "type": "income",
            "description": "Stripe Invoice: a@b.com",
            "date": "2023-11-14T22:13:20.000Z",
        }
    ]


@pytest.mark.asyncio
async def test_supabase_insert_or_ignore_returns_existing_row():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.method == "POST":
            return httpx.Response(201, json=[])
        return httpx.Response(200, json=[{"id": "existing"}])

    store = supabase_store(handler)
    result = await store.insert(EVENT, idempotency_key="stripe:in_1")
    await store.close()

    assert result.id == "existing"
    assert result.duplicate is True
    post, get = seen
    assert post.url.params["on_conflict"] == "idempotency_key"
    assert post.headers["prefer"] == "resolution=ignore-duplicates,return=representation"
    assert json.loads(post.content)[0]["idempotency_key"] == "stripe:in_1"
    assert get.url.params["idempotency_key"] == "eq.stripe:in_1"


@pytest.mark.asyncio
async def test_supabase_error_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400, json={"code": "23502", "message": "null value in column", "details": "Failing row", "hint": None}
        )

    store = supabase_store(handler)
    with pytest.raises(PersistenceError, match=r"null value in column \(Failing row\)"):
        await store.insert(EVENT)
    await store.close()


@pytest.mark.asyncio
async def test_supabase_unreachable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = supabase_store(handler)
    with pytest.raises(PersistenceError, match="unreachable"):
        await store.insert(EVENT)
    await store.close()


@pytest.mark.asyncio
async def test_supabase_transport_failure():
    """Read errors mid-request map to PersistenceError like connect errors."""
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadError("connection reset by peer", request=request)

    store = supabase_store(handler)
    with pytest.raises(PersistenceError, match="request failed"):
        await store.insert(EVENT)
    await store.close()


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(201, text="<html>gateway page</html>"),
        httpx.Response(201, json=[{"uuid": "no-id-key"}]),
        httpx.Response(201, json={"id": "not-a-list"}),
    ],
)
@pytest.mark.asyncio
async def test_supabase_malformed_success_body(response):
    store = supabase_store(lambda request: response)
    with pytest.raises(PersistenceError, match="Invalid response from transactions store"):
        await store.insert(EVENT)
    await store.close()


def test_parse_postgrest_error():
    assert parse_postgrest_error('{"message": "boom"}') == "boom"
    assert parse_postgrest_error('{"message": "boom", "details": "why"}') == "boom (why)"
    assert parse_postgrest_error("plain text") == "plain text"
    assert parse_postgrest_error("[1]") == "[1]"


# ── Postgres ───────────────────────────────────────────────────────────────


class FakePool:
    """Just enough of asyncpg.Pool for the store."""

    def __init__(self):
        self.executed: list[str] = []
        self.rows: list[tuple] = []
        self.keys: dict[str, str] = {}
        self.closed = False
        self.fail_with: Exception | None = None
        self.schema_error: Exception | None = None

    def acquire(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, sql: str):
        if self.schema_error is not None:
            raise self.schema_error
        self.executed.append(sql)

    async def fetchrow(self, sql: str, *args):
        if self.fail_with is not None:
            raise self.fail_with
        if sql.lstrip().startswith("SELECT"):
            row_id = self.keys.get(args[0])
            return {"id": row_id} if row_id else None
        if len(args) == 6:
            key = args[5]
            if key in self.keys:
                return None
            row_id = uuid.uuid4()
            self.keys[key] = str(row_id)
        else:
            row_id = uuid.uuid4()
        self.rows.append(args)
        return {"id": row_id}

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_pool(monkeypatch):
    pool = FakePool()
    dsns: list[str] = []

    async def create_pool(dsn, **kwargs):
        dsns.append(dsn)
        return pool

    monkeypatch.setattr(postgres_module.asyncpg, "create_pool", create_pool)
    pool.dsns = dsns
    return pool


@pytest.mark.asyncio
async def test_postgres_insert(fake_pool):
    store = PostgresTransactionStore("postgresql+asyncpg://user@db/finance")
    result = await store.insert(EVENT)

    assert fake_pool.dsns == ["postgresql://user@db/finance"]
    assert "CREATE TABLE IF NOT EXISTS transactions" in fake_pool.executed[0]
    assert result.duplicate is False
    uuid.UUID(result.id)
    user_id, amount, type_, description, date = fake_pool.rows[0]
    assert (user_id, amount, type_, description) == ("u1", 49.99, "income", "Stripe Invoice: a@b.com")
    assert date == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    await store.close()
    assert fake_pool.closed is True


@pytest.mark.asyncio
async def test_postgres_duplicate_key(fake_pool):
    store = PostgresTransactionStore("postgresql://db/finance")
    first = await store.insert(EVENT, idempotency_key="stripe:in_1")
    second = await store.insert(EVENT, idempotency_key="stripe:in_1")

    assert second.duplicate is True
    assert second.id == first.id
    assert len(fake_pool.rows) == 1
    await store.close()


@pytest.mark.asyncio
async def test_postgres_driver_error(fake_pool):
    fake_pool.fail_with = OSError("connection reset")
    store = PostgresTransactionStore("postgresql://db/finance")
    with pytest.raises(PersistenceError, match="connection reset"):
        await store.insert(EVENT)
    await store.close()


@pytest.fixture
def pool_factory(monkeypatch):
    """create_pool that hands out a fresh FakePool per call and remembers them all."""
    created: list[FakePool] = []
    schema_error: list[Exception] = []

    async def create_pool(dsn, **kwargs):
        await asyncio.sleep(0)
        pool = FakePool()
        if schema_error:
            pool.schema_error = schema_error[0]
        created.append(pool)
        return pool

    monkeypatch.setattr(postgres_module.asyncpg, "create_pool", create_pool)
    return created, schema_error


@pytest.mark.asyncio
async def test_postgres_schema_failure_closes_pool(pool_factory):
    created, schema_error = pool_factory
    schema_error.append(OSError("permission denied for schema public"))
    store = PostgresTransactionStore("postgresql://db/finance")

    for _ in range(3):
        with pytest.raises(PersistenceError, match="Database unavailable"):
            await store.insert(EVENT)
    await store.close()

    assert len(created) == 3
    assert all(pool.closed for pool in created)


@pytest.mark.asyncio
async def test_postgres_concurrent_first_inserts_share_one_pool(pool_factory):
    created, _ = pool_factory
    store = PostgresTransactionStore("postgresql://db/finance")

    results = await asyncio.gather(*(store.insert(EVENT) for _ in range(5)))
    await store.close()

    assert len({r.id for r in results}) == 5
    assert len(created) == 1
    assert created[0].closed is True


# ── Selection ──────────────────────────────────────────────────────────────


def test_build_store_prefers_database_url():
    store = build_store(
        make_settings(database_url="postgresql://db/x", supabase_url="https://p.supabase.co", supabase_service_role_key="k")
    )
    assert isinstance(store, PostgresTransactionStore)
    assert store.name == "postgres"


@pytest.mark.asyncio
async def test_build_store_supabase():
    store = build_store(make_settings(supabase_url="https://p.supabase.co", supabase_service_role_key="k"))
    assert isinstance(store, SupabaseTransactionStore)
    assert store.name == "supabase"
    await store.close()


def test_build_store_unconfigured():
    with pytest.raises(RuntimeError, match="not configured"):
        build_store(make_settings())
