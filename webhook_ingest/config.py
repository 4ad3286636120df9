"""Application configuration via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    # App
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["*"]

    # Webhook gate: shared secret sent by callers in x-webhook-secret
    webhook_secret: str = ""
    webhook_rate_limit: str = "120/minute"
    # Opt-in idempotency keys (insert-or-ignore on redelivery)
    webhook_dedupe: bool = False
    # Status for downstream store failures (400 reproduces the legacy function)
    persistence_error_status: int = 502

    # Direct Postgres (takes precedence over Supabase when set)
    database_url: str = ""

    # Supabase REST
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    store_timeout: float = 10.0

    transactions_table: str = "transactions"


@lru_cache
def get_settings() -> Settings:
    return Settings()
