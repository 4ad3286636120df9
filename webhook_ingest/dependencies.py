"""Shared FastAPI dependencies: the store and the webhook secret gate."""

import hmac
import logging

from fastapi import Request

from webhook_ingest.config import Settings
from webhook_ingest.errors import WebhookAuthError
from webhook_ingest.stores import TransactionStore

logger = logging.getLogger(__name__)


def get_store(request: Request) -> TransactionStore:
    """Store built once in the application lifespan."""
    return request.app.state.store


def verify_webhook_secret(request: Request, settings: Settings) -> None:
    """Fail closed: an unset expected secret rejects every call.

    Called from inside the rate-limited endpoint so failed attempts count against the limit.
    """
    expected = settings.webhook_secret
    x_webhook_secret = request.headers.get("x-webhook-secret")
    if not expected or x_webhook_secret is None or not hmac.compare_digest(
        x_webhook_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        client = request.client.host if request.client else "unknown"
        logger.warning("Unauthorized webhook attempt from %s", client)
        raise WebhookAuthError()
