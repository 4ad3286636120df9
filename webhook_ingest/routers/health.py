from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from webhook_ingest.config import Settings, get_settings
from webhook_ingest.normalizers import Source


router = APIRouter(tags=["health"])

_startup_time = datetime.now(timezone.utc)


class EndpointInfo(BaseModel):
    path: str
    description: str


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    store: str | None = None
    webhook_secret_configured: bool
    dedupe_enabled: bool
    sources: list[str]
    endpoints: list[EndpointInfo]


ENDPOINTS = [
    EndpointInfo(path="/health", description="Service status and configuration"),
    EndpointInfo(path="/webhooks/ingest", description="Webhook ingestion and normalization"),
]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, settings: Settings = Depends(get_settings)):
    uptime = (datetime.now(timezone.utc) - _startup_time).total_seconds()
    store = getattr(request.app.state, "store", None)

    return HealthResponse(
        status="ok",
        version="0.1.0",
        uptime_seconds=round(uptime, 2),
        store=store.name if store else None,
        webhook_secret_configured=bool(settings.webhook_secret),
        dedupe_enabled=settings.webhook_dedupe,
        sources=[s.value for s in Source],
        endpoints=ENDPOINTS,
    )
