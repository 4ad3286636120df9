"""Canonical transaction models and shared field coercion for normalizers."""

import hashlib
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from webhook_ingest.errors import UnsupportedSourceError, WebhookValidationError


class Source(str, Enum):
    """Third-party systems that may post webhooks."""
    STRIPE = "stripe"
    HUBSPOT = "hubspot"
    SALESFORCE = "salesforce"
    ZAPIER = "zapier"

    @classmethod
    def parse(cls, value: str) -> "Source":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise UnsupportedSourceError(value) from None


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class WebhookEnvelope(BaseModel):
    """Inbound request body. Never persisted."""
    model_config = ConfigDict(populate_by_name=True)

    source: str
    user_id: str = Field(alias="userId")
    data: dict[str, Any]


class CanonicalTransaction(BaseModel):
    """Source-agnostic row written to the transactions table."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    amount: float
    type: TransactionType
    description: str
    date: datetime

    @field_serializer("date")
    def _serialize_date(self, value: datetime) -> str:
        return to_iso(value)

    def to_row(self) -> dict:
        return self.model_dump(mode="json")


class NormalizedEvent(BaseModel):
    """Canonical transaction plus the vendor's own identifier, when it sends one."""
    source: Source
    external_id: str | None = None
    transaction: CanonicalTransaction

    def idempotency_key(self) -> str:
        if self.external_id:
            return f"{self.source.value}:{self.external_id}"
        tx = self.transaction
        material = "|".join(
            [self.source.value, tx.user_id, repr(tx.amount), tx.type.value, tx.description, to_iso(tx.date)]
        )
        return hashlib.sha256(material.encode("utf-8")).hexdigest()


# (user_id, data, now) -> NormalizedEvent
Normalizer = Callable[[str, dict, datetime], NormalizedEvent]


def to_amount(value: Any, field: str) -> float:
    """Numeric coercion for amount fields: numbers pass through, numeric strings are parsed."""
    if isinstance(value, bool):
        raise WebhookValidationError(f"Invalid amount in {field}: {value!r}")
    if isinstance(value, (int, float)):
        amount = float(value)
    elif isinstance(value, str):
        try:
            amount = float(value.strip())
        except ValueError:
            raise WebhookValidationError(f"Invalid amount in {field}: {value!r}") from None
    elif value is None:
        raise WebhookValidationError(f"Missing {field}")
    else:
        raise WebhookValidationError(f"Invalid amount in {field}: {value!r}")
    if not math.isfinite(amount):
        raise WebhookValidationError(f"Invalid amount in {field}: {value!r}")
    return amount


def parse_timestamp(value: Any, field: str) -> datetime:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise WebhookValidationError(f"Invalid date in {field}: {value!r}")
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        raise WebhookValidationError(f"Invalid date in {field}: {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def optional_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
