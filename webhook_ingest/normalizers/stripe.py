"""Stripe invoice events (invoice.paid and friends)."""

from datetime import datetime, timezone

from webhook_ingest.errors import WebhookValidationError
from .base import (
    CanonicalTransaction,
    NormalizedEvent,
    Source,
    TransactionType,
    optional_id,
    to_amount,
)


def _created_at(value) -> datetime:
    try:
        return datetime.fromtimestamp(to_amount(value, "data.created"), tz=timezone.utc)
    except (WebhookValidationError, OverflowError, OSError, ValueError):
        raise WebhookValidationError(f"Invalid date in data.created: {value!r}") from None


def normalize_stripe(user_id: str, data: dict, now: datetime) -> NormalizedEvent:
    """Amounts arrive in minor units; the invoice's own epoch is the transaction date."""
    if "amount_paid" not in data:
        raise WebhookValidationError("Missing data.amount_paid")
    if "created" not in data:
        raise WebhookValidationError("Missing data.created")

    amount = to_amount(data["amount_paid"], "data.amount_paid") / 100
    email = data.get("customer_email") or "unknown"

    return NormalizedEvent(
        source=Source.STRIPE,
        external_id=optional_id(data.get("id")),
        transaction=CanonicalTransaction(
            user_id=user_id,
            amount=amount,
            type=TransactionType.INCOME,
            description=f"Stripe Invoice: {email}",
            date=_created_at(data["created"]),
        ),
    )
