"""Base interface for transaction stores."""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from webhook_ingest.normalizers import NormalizedEvent


class InsertResult(BaseModel):
    """Outcome of a single-row insert."""
    id: str
    duplicate: bool = False


class TransactionStore(ABC):
    """Abstract base class for the downstream transactions table."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return store identifier."""
        pass

    @abstractmethod
    async def insert(self, event: NormalizedEvent, idempotency_key: str | None = None) -> InsertResult:
        """Insert exactly one row for the event.

        With an idempotency key, an existing row carrying the same key is
        returned instead (duplicate=True) and nothing is written.
        Raises PersistenceError when the store rejects the write.
        """
        pass

    async def close(self) -> None:
        """Release pooled connections or clients."""
        pass
