from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RESPCACHE_", env_file=".env", extra="ignore")

    app_name: str = "respcache"
    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 8080

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Response cache
    default_ttl: int = Field(default=21600, ge=1)  # 6 hours
    availability_check_interval_ms: int = Field(default=60000, ge=0)
    scan_count: int = Field(default=100, ge=1)
    compression_level: int = Field(default=6, ge=0, le=9)
    # Applies to routes whose policy sets no TTL, ahead of default_ttl
    ttl_override: int | None = Field(default=None, ge=1)

    # Optional JSON policy table replacing the built-in one
    policy_file: Path | None = None

    # Invalidations requested while Redis is down are journaled here
    # (kept in memory when unset)
    pending_invalidations_path: Path | None = None

    # Observability
    enable_metrics: bool = True
    log_level: str = "INFO"


settings = Settings()
