"""Dependency providers and settings management."""

import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine

from .analytics.executor import DEFAULT_TIMEOUT_SECONDS, HttpAggregationExecutor
from .analytics.sql import SqlKeyResolver
from .analytics.telemetry import TelemetryCollector, get_telemetry, set_telemetry

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    # Aggregation executor (columnar store query API)
    AGGREGATION_EXECUTOR_URL: Optional[str] = None
    AGGREGATION_EXECUTOR_TIMEOUT_SECONDS: float = DEFAULT_TIMEOUT_SECONDS

    # Relational row store holding apis / keys / identities
    KEYS_DATABASE_URL: Optional[str] = None

    # Reject unknown filter operators instead of treating them as `is`
    STRICT_FILTER_OPERATORS: bool = False
    TELEMETRY_ENABLED: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.BACKEND_CORS_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


@lru_cache()
def _key_resolver_for(url: str) -> SqlKeyResolver:
    # One engine (and one reflection) per database URL
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return SqlKeyResolver(create_engine(url, pool_pre_ping=True, connect_args=connect_args))


def get_key_resolver(settings: Settings = Depends(get_settings)) -> Optional[SqlKeyResolver]:
    """Key resolver, or None when KEYS_DATABASE_URL is not set."""
    if not settings.KEYS_DATABASE_URL:
        return None
    return _key_resolver_for(settings.KEYS_DATABASE_URL)


def get_aggregation_executor(
    settings: Settings = Depends(get_settings),
) -> Optional[HttpAggregationExecutor]:
    """Executor client, or None when AGGREGATION_EXECUTOR_URL is not set."""
    if not settings.AGGREGATION_EXECUTOR_URL:
        return None
    return HttpAggregationExecutor(
        settings.AGGREGATION_EXECUTOR_URL,
        timeout=settings.AGGREGATION_EXECUTOR_TIMEOUT_SECONDS,
    )


def get_telemetry_collector(settings: Settings = Depends(get_settings)) -> TelemetryCollector:
    """Process-wide telemetry collector, honouring TELEMETRY_ENABLED."""
    collector = get_telemetry()
    if collector.enabled != settings.TELEMETRY_ENABLED:
        collector = TelemetryCollector(enabled=settings.TELEMETRY_ENABLED)
        set_telemetry(collector)
    return collector
