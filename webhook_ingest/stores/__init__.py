"""
Transaction Stores

Downstream adapters for the transactions table.
"""

from webhook_ingest.config import Settings

from .base import InsertResult, TransactionStore
from .postgres import PostgresTransactionStore
from .supabase import SupabaseTransactionStore


def build_store(settings: Settings) -> TransactionStore:
    """Pick the configured store; DATABASE_URL wins over Supabase REST."""
    if settings.database_url:
        return PostgresTransactionStore(settings.database_url, table=settings.transactions_table)
    if settings.supabase_url and settings.supabase_service_role_key:
        return SupabaseTransactionStore(
            settings.supabase_url,
            settings.supabase_service_role_key,
            table=settings.transactions_table,
            timeout=settings.store_timeout,
        )
    raise RuntimeError(
        "Transactions store not configured (set DATABASE_URL or SUPABASE_URL + SUPABASE_SERVICE_ROLE_KEY)"
    )


__all__ = [
    "InsertResult",
    "PostgresTransactionStore",
    "SupabaseTransactionStore",
    "TransactionStore",
    "build_store",
]
