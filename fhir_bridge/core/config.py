"""
Application configuration using Pydantic Settings.

This module defines the Settings object used across the service to configure:
- App metadata and environment
- MongoDB connectivity for the integration job ledger
- Health-data exchange OAuth2 credentials, endpoints and timeouts
- Job ledger retry cap and listing limits
- Logging levels and privacy options

Values are read from environment variables with sensible defaults for development.
Use a .env file in development; in production, set environment variables via the platform's secret management.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="EXCHANGE_", extra="ignore")

    client_id: str | None = None
    client_secret: str | None = None
    auth_url: str | None = None
    fhir_url: str | None = None
    org_id: str | None = None
    timeout_seconds: float = 30.0
    token_expiry_margin_seconds: int = 60
    connect_retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0


class JobSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="JOBS_", extra="ignore")

    max_retries: int = 3
    retry_batch_limit: int = 100
    list_default_limit: int = 100
    # Must outlast one send: timeout_seconds * connect_retries plus backoff
    claim_lease_seconds: float = 300.0


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App metadata
    APP_NAME: str = Field("fhir-bridge")
    ENV: Literal["dev", "test", "staging", "prod"] = Field("dev")
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field("INFO")

    # MongoDB connection string and job ledger location
    MONGO_URI: str | None = Field(None)
    MONGO_DATABASE: str = Field("fhir_bridge")
    JOBS_COLLECTION: str = Field("integration_jobs")

    # Health-data exchange credentials and endpoints
    exchange: ExchangeSettings = ExchangeSettings()

    # Ledger behaviour
    jobs: JobSettings = JobSettings()

    # Observability
    ENABLE_ACCESS_LOG: bool = Field(True)
    ID_HASH_SALT: str = Field("dev-salt")

    @property
    def is_prod(self) -> bool:
        return self.ENV == "prod"

    @property
    def is_dev(self) -> bool:
        return self.ENV == "dev"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached Settings instance.

    Use lru_cache to avoid re-parsing environment variables. Tests may clear the cache if needed.
    """
    return Settings()  # type: ignore[arg-type]
