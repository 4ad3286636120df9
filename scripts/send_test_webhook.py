#!/usr/bin/env python3
"""
Sample Webhook Sender

Posts a sample payload for one (or every) supported source to a running
ingest service, using WEBHOOK_SECRET from the environment or .env.

Usage:
    python scripts/send_test_webhook.py --user-id <uuid> [--source stripe] [--url http://localhost:8000]
"""

import argparse
import asyncio
import os
import sys
import time
from pathlib import Path

# Add parent directory to path so we can import from webhook_ingest
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
from dotenv import load_dotenv

from webhook_ingest.normalizers import Source

# Load environment variables
load_dotenv()

SAMPLES: dict[Source, dict] = {
    Source.STRIPE: {
        "id": "in_test_0001",
        "amount_paid": 4999,
        "customer_email": "customer@example.com",
        "created": int(time.time()),
    },
    Source.HUBSPOT: {"objectId": 1001, "properties": {"amount": "250", "dealname": "Acme Renewal"}},
    Source.SALESFORCE: {"Id": "006XX000001", "properties": {"amount": "1200.50", "dealname": "Globex Expansion"}},
    Source.ZAPIER: {"amount": 12.5, "description": "Office supplies", "type": "expense"},
}


async def send(client: httpx.AsyncClient, url: str, secret: str, source: Source, user_id: str) -> None:
    r = await client.post(
        f"{url.rstrip('/')}/webhooks/ingest",
        json={"source": source.value, "userId": user_id, "data": SAMPLES[source]},
        headers={"x-webhook-secret": secret},
    )
    print(f"{source.value:<11} {r.status_code} {r.text}")


async def main():
    parser = argparse.ArgumentParser(description="Send sample webhooks to the ingest service")
    parser.add_argument("--url", default="http://localhost:8000")
    parser.add_argument("--user-id", required=True)
    parser.add_argument("--source", choices=[s.value for s in Source], help="Default: all sources")
    args = parser.parse_args()

    secret = os.getenv("WEBHOOK_SECRET")
    if not secret:
        print("ERROR: WEBHOOK_SECRET must be set in .env or the environment")
        sys.exit(1)

    sources = [Source(args.source)] if args.source else list(Source)
    async with httpx.AsyncClient(timeout=10.0) as client:
        for source in sources:
            await send(client, args.url, secret, source, args.user_id)


if __name__ == "__main__":
    asyncio.run(main())
