"""Supabase transaction store - PostgREST inserts with the service-role key."""

import logging

import httpx

from webhook_ingest.errors import PersistenceError, parse_postgrest_error
from webhook_ingest.normalizers import NormalizedEvent
from .base import InsertResult, TransactionStore

logger = logging.getLogger(__name__)


class SupabaseTransactionStore(TransactionStore):
    """Inserts through {SUPABASE_URL}/rest/v1/<table>, bypassing row-level security."""

    def __init__(
        self,
        supabase_url: str,
        service_role_key: str,
        table: str = "transactions",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._endpoint = f"{supabase_url.rstrip('/')}/rest/v1/{table}"
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": service_role_key,
                "Authorization": f"Bearer {service_role_key}",
                "Content-Type": "application/json",
            },
        )

    @property
    def name(self) -> str:
        return "supabase"

    async def _request(self, method: str, **kwargs) -> httpx.Response:
        try:
            r = await self._client.request(method, self._endpoint, **kwargs)
        except httpx.ConnectError as e:
            raise PersistenceError("Transactions store unreachable") from e
        except httpx.TimeoutException as e:
            raise PersistenceError("Transactions store timed out") from e
        except httpx.HTTPError as e:
            raise PersistenceError(f"Transactions store request failed: {e}") from e
        if r.status_code >= 300:
            raise PersistenceError(parse_postgrest_error(r.text))
        return r

    @staticmethod
    def _ids(r: httpx.Response) -> list[str]:
        try:
            return [str(row["id"]) for row in r.json()]
        except (ValueError, KeyError, TypeError) as e:
            raise PersistenceError("Invalid response from transactions store") from e

    async def insert(self, event: NormalizedEvent, idempotency_key: str | None = None) -> InsertResult:
        row = event.transaction.to_row()
        params = {"select": "id"}
        prefer = "return=representation"
        if idempotency_key is not None:
            row["idempotency_key"] = idempotency_key
            params["on_conflict"] = "idempotency_key"
            prefer = "resolution=ignore-duplicates,return=representation"

        r = await self._request("POST", json=[row], params=params, headers={"Prefer": prefer})
        inserted = self._ids(r)
        if inserted:
            return InsertResult(id=inserted[0])
        if idempotency_key is None:
            raise PersistenceError("Insert returned no row")

        r = await self._request(
            "GET", params={"select": "id", "idempotency_key": f"eq.{idempotency_key}", "limit": 1}
        )
        existing = self._ids(r)
        if not existing:
            raise PersistenceError("Duplicate event vanished before lookup")
        return InsertResult(id=existing[0], duplicate=True)

    async def close(self) -> None:
        await self._client.aclose()
