from __future__ import annotations

from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration.

    - Values loaded from environment variables and `.env`
    - Comma-separated lists for multi-value settings like CORS_ORIGINS
    """

    # ----------------------------
    # Service
    # ----------------------------
    SERVICE_NAME: str = "tenant-authz-service"
    ENVIRONMENT: str = "development"
    log_level: str = "INFO"

    # ----------------------------
    # Storage
    # ----------------------------
    # "memory" keeps overrides and audit entries in process (local runs, tests)
    storage_backend: Literal["mongo", "memory"] = "mongo"

    # ----------------------------
    # Mongo
    # ----------------------------
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "tenant_authz"
    overrides_collection: str = "tenant_permission_overrides"
    audit_collection: str = "audit_logs"
    audit_counters_collection: str = "audit_log_counters"

    # ----------------------------
    # Redis (override read cache)
    # ----------------------------
    redis_url: str = "redis://localhost:6379/0"
    override_cache_enabled: bool = True
    # Upper bound on how long a revoked or changed override can still be served.
    override_cache_ttl_seconds: int = Field(default=60, ge=1)
    override_cache_prefix: str = "authz:override"

    # ----------------------------
    # JWT
    # ----------------------------
    jwt_alg: str = "HS256"
    jwt_secret: str = "change-me"

    # ----------------------------
    # Audit
    # ----------------------------
    audit_default_limit: int = 50
    audit_max_limit: int = 500

    # ----------------------------
    # CORS
    # ----------------------------
    # store as raw string list from env; we will normalize in code
    CORS_ORIGINS: Any = Field(default_factory=list)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
