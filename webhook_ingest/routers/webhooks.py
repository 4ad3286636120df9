"""Webhook ingestion endpoint - normalizes external webhooks into canonical transactions."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from webhook_ingest.config import Settings, get_settings
from webhook_ingest.dependencies import get_store, verify_webhook_secret
from webhook_ingest.errors import PersistenceError, WebhookValidationError
from webhook_ingest.normalizers import WebhookEnvelope, normalize
from webhook_ingest.stores import TransactionStore

logger = logging.getLogger(__name__)
router = APIRouter()

limiter = Limiter(key_func=get_remote_address)

ALLOW_HEADERS = "authorization, x-client-info, apikey, content-type, x-webhook-secret"

REQUIRED_FIELDS = ("source", "userId", "data")


class IngestResponse(BaseModel):
    success: bool = True
    id: str
    duplicate: bool | None = None


def cors_headers(request: Request, settings: Settings) -> dict[str, str]:
    """CORS headers for ingest responses, restricted to ALLOWED_ORIGINS."""
    headers = {"Access-Control-Allow-Headers": ALLOW_HEADERS}
    if "*" in settings.allowed_origins:
        headers["Access-Control-Allow-Origin"] = "*"
        return headers
    origin = request.headers.get("origin")
    if origin in settings.allowed_origins:
        headers["Access-Control-Allow-Origin"] = origin
    headers["Vary"] = "Origin"
    return headers


def _rate_limit() -> str:
    return get_settings().webhook_rate_limit


def _rejected(message: str, body: object = None) -> WebhookValidationError:
    source = body.get("source") if isinstance(body, dict) else None
    logger.warning("Rejected %s webhook: %s", source or "unknown", message)
    return WebhookValidationError(message)


async def _read_envelope(request: Request) -> WebhookEnvelope:
    try:
        body = await request.json()
    except ValueError:
        raise _rejected("Invalid JSON body") from None
    if not isinstance(body, dict):
        raise _rejected("Invalid JSON body")

    if any(not body.get(field) for field in REQUIRED_FIELDS):
        raise _rejected("Missing required fields: source, userId, or data", body)
    if not isinstance(body["source"], str):
        raise _rejected("source must be a string", body)
    if not isinstance(body["userId"], str):
        raise _rejected("userId must be a string", body)
    if not isinstance(body["data"], dict):
        raise _rejected("data must be an object", body)

    return WebhookEnvelope.model_validate(body)


@router.options("/ingest", include_in_schema=False)
async def ingest_preflight(request: Request, settings: Settings = Depends(get_settings)):
    return PlainTextResponse("ok", headers=cors_headers(request, settings))


@router.post("/ingest", response_model=IngestResponse)
@limiter.limit(_rate_limit)
async def ingest_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: TransactionStore = Depends(get_store),
):
    """Authenticate, normalize and persist one webhook as exactly one transaction row."""
    # error handlers render with the same settings
    request.state.settings = settings
    verify_webhook_secret(request, settings)

    envelope = await _read_envelope(request)
    try:
        event = normalize(envelope, now=datetime.now(timezone.utc))
    except WebhookValidationError as e:
        logger.warning("Rejected %s webhook: %s", envelope.source, e.message)
        raise

    key = event.idempotency_key() if settings.webhook_dedupe else None
    try:
        result = await store.insert(event, idempotency_key=key)
    except PersistenceError as e:
        logger.error("Webhook ingest failed for %s: %s", event.source.value, e.message)
        e.status_code = settings.persistence_error_status
        raise

    if result.duplicate:
        logger.info("Duplicate %s webhook ignored: %s", event.source.value, result.id)
    else:
        logger.info("Ingested %s webhook: %s", event.source.value, result.id)

    response = IngestResponse(id=result.id, duplicate=True if result.duplicate else None)
    return JSONResponse(response.model_dump(exclude_none=True), headers=cors_headers(request, settings))
