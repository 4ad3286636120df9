"""Direct Postgres transaction store (asyncpg)."""

import asyncio
import logging

import asyncpg

from webhook_ingest.errors import PersistenceError
from webhook_ingest.normalizers import NormalizedEvent
from .base import InsertResult, TransactionStore

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS {table} (
    id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id     TEXT NOT NULL,
    amount      NUMERIC(12,2) NOT NULL,
    type        TEXT NOT NULL CHECK (type IN ('income', 'expense')),
    description TEXT,
    date        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at  TIMESTAMPTZ DEFAULT NOW()
);

ALTER TABLE {table} ADD COLUMN IF NOT EXISTS idempotency_key TEXT;
CREATE UNIQUE INDEX IF NOT EXISTS {table}_idempotency_key_idx ON {table} (idempotency_key);
"""


class PostgresTransactionStore(TransactionStore):
    """Writes canonical rows straight into Postgres through a small asyncpg pool."""

    def __init__(self, database_url: str, table: str = "transactions"):
        self._dsn = database_url.replace("postgresql+asyncpg://", "postgresql://")
        self._table = table
        self._pool: asyncpg.Pool | None = None
        self._pool_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return "postgres"

    async def _get_pool(self) -> asyncpg.Pool:
        async with self._pool_lock:
            if self._pool is None:
                self._pool = await self._open_pool()
                logger.info("Transactions DB pool ready")
        return self._pool

    async def _open_pool(self) -> asyncpg.Pool:
        """New pool with the schema in place; closed again if the schema step fails."""
        try:
            pool = await asyncpg.create_pool(dsn=self._dsn, min_size=1, max_size=5)
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise PersistenceError(f"Database unavailable: {e}") from e
        try:
            async with pool.acquire() as conn:
                await conn.execute(_SCHEMA_SQL.format(table=self._table))
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            await pool.close()
            raise PersistenceError(f"Database unavailable: {e}") from e
        return pool

    async def insert(self, event: NormalizedEvent, idempotency_key: str | None = None) -> InsertResult:
        pool = await self._get_pool()
        tx = event.transaction
        args = (tx.user_id, tx.amount, tx.type.value, tx.description, tx.date)
        try:
            if idempotency_key is None:
                row = await pool.fetchrow(
                    f"""INSERT INTO {self._table} (user_id, amount, type, description, date)
                        VALUES ($1, $2, $3, $4, $5)
                        RETURNING id""",
                    *args,
                )
                return InsertResult(id=str(row["id"]))

            row = await pool.fetchrow(
                f"""INSERT INTO {self._table} (user_id, amount, type, description, date, idempotency_key)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (idempotency_key) DO NOTHING
                    RETURNING id""",
                *args, idempotency_key,
            )
            if row:
                return InsertResult(id=str(row["id"]))
            existing = await pool.fetchrow(
                f"SELECT id FROM {self._table} WHERE idempotency_key = $1", idempotency_key
            )
        except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            raise PersistenceError(str(e)) from e

        if not existing:
            raise PersistenceError("Duplicate event vanished before lookup")
        return InsertResult(id=str(existing["id"]), duplicate=True)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("Transactions DB pool closed")
