"""
Webhook Normalizers

One pure function per supported source, keyed by the closed Source enum.
"""

from datetime import datetime, timezone

from .base import (
    CanonicalTransaction,
    Normalizer,
    NormalizedEvent,
    Source,
    TransactionType,
    WebhookEnvelope,
)
from .crm import normalize_hubspot, normalize_salesforce
from .stripe import normalize_stripe
from .zapier import normalize_zapier

NORMALIZERS: dict[Source, Normalizer] = {
    Source.STRIPE: normalize_stripe,
    Source.HUBSPOT: normalize_hubspot,
    Source.SALESFORCE: normalize_salesforce,
    Source.ZAPIER: normalize_zapier,
}


def normalize(envelope: WebhookEnvelope, now: datetime | None = None) -> NormalizedEvent:
    """Dispatch an envelope to its source's normalizer.

    Raises UnsupportedSourceError for sources outside the enum and
    WebhookValidationError when the payload lacks a required field.
    """
    source = Source.parse(envelope.source)
    return NORMALIZERS[source](envelope.user_id, envelope.data, now or datetime.now(timezone.utc))


__all__ = [
    "CanonicalTransaction",
    "NORMALIZERS",
    "NormalizedEvent",
    "Normalizer",
    "Source",
    "TransactionType",
    "WebhookEnvelope",
    "normalize",
]
