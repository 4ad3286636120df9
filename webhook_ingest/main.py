"""Webhook Ingest - FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from webhook_ingest.config import Settings, get_settings
from webhook_ingest.errors import IngestError
from webhook_ingest.routers import health, webhooks
from webhook_ingest.stores import build_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.webhook_secret:
        raise RuntimeError("WEBHOOK_SECRET is not configured; refusing to start")

    store = build_store(settings)
    app.state.store = store
    logger.info("Webhook ingest started (store=%s, dedupe=%s)", store.name, settings.webhook_dedupe)
    try:
        yield
    finally:
        await store.close()
        logger.info("Webhook ingest stopped")


app = FastAPI(
    title="Webhook Ingest",
    description="Normalizes third-party webhooks into canonical transactions",
    version="0.1.0",
    debug=get_settings().debug,
    lifespan=lifespan,
)


def _request_settings(request: Request) -> Settings:
    return getattr(request.state, "settings", None) or get_settings()


# Rate limiting
app.state.limiter = webhooks.limiter


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    response = _rate_limit_exceeded_handler(request, exc)
    response.headers.update(webhooks.cors_headers(request, _request_settings(request)))
    return response


@app.exception_handler(IngestError)
async def ingest_error_handler(request: Request, exc: IngestError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message},
        headers=webhooks.cors_headers(request, _request_settings(request)),
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().allowed_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers (health is public; ingest is gated by the shared webhook secret)
app.include_router(health.router)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
