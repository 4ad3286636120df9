"""CRM deal-won events (HubSpot, Salesforce).

Both CRMs are configured to post the deal record with its fields under
``properties``; the event is recorded as income at the time of receipt.
"""

from datetime import datetime

from webhook_ingest.errors import WebhookValidationError
from .base import (
    CanonicalTransaction,
    NormalizedEvent,
    Source,
    TransactionType,
    optional_id,
    to_amount,
)

# Where each CRM repeats the record id inside properties
_PROPERTY_IDS = {
    Source.HUBSPOT: "hs_object_id",
    Source.SALESFORCE: "Id",
}


def _deal_won(source: Source, user_id: str, data: dict, now: datetime, id_field: str) -> NormalizedEvent:
    props = data.get("properties")
    if not isinstance(props, dict):
        raise WebhookValidationError("Missing data.properties")

    amount = to_amount(props.get("amount"), "data.properties.amount")
    dealname = props.get("dealname") or "unknown"
    external_id = optional_id(data.get(id_field)) or optional_id(props.get(_PROPERTY_IDS[source]))

    return NormalizedEvent(
        source=source,
        external_id=external_id,
        transaction=CanonicalTransaction(
            user_id=user_id,
            amount=amount,
            type=TransactionType.INCOME,
            description=f"Deal Won: {dealname}",
            date=now,
        ),
    )


def normalize_hubspot(user_id: str, data: dict, now: datetime) -> NormalizedEvent:
    return _deal_won(Source.HUBSPOT, user_id, data, now, id_field="objectId")


def normalize_salesforce(user_id: str, data: dict, now: datetime) -> NormalizedEvent:
    return _deal_won(Source.SALESFORCE, user_id, data, now, id_field="Id")
