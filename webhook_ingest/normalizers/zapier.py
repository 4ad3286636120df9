"""Generic Zapier import: the Zap maps its fields onto ours directly."""

from datetime import datetime

from webhook_ingest.errors import WebhookValidationError
from .base import (
    CanonicalTransaction,
    NormalizedEvent,
    Source,
    TransactionType,
    optional_id,
    parse_timestamp,
    to_amount,
)


def _transaction_type(value) -> TransactionType:
    if not value:
        return TransactionType.EXPENSE
    if isinstance(value, str):
        try:
            return TransactionType(value.strip().lower())
        except ValueError:
            pass
    raise WebhookValidationError(f"Invalid data.type: {value!r} (expected income or expense)")


def normalize_zapier(user_id: str, data: dict, now: datetime) -> NormalizedEvent:
    amount = to_amount(data.get("amount"), "data.amount")
    description = data.get("description") or "Zapier Import"
    date = parse_timestamp(data["date"], "data.date") if data.get("date") else now

    return NormalizedEvent(
        source=Source.ZAPIER,
        external_id=optional_id(data.get("id")),
        transaction=CanonicalTransaction(
            user_id=user_id,
            amount=amount,
            type=_transaction_type(data.get("type")),
            description=str(description),
            date=date,
        ),
    )
