"""
Client configuration via pydantic-settings.
All config read from TRIPSYNC_* environment variables with sensible defaults for local dev.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "tripsync"
    app_version: str = "0.1.0"
    environment: str = Field(default="development", pattern=r"^(development|staging|production)$")

    # Remote store (REST backend)
    api_base_url: str = Field(default="http://localhost:8080/api/v1")
    http_timeout_s: float = Field(default=10.0, gt=0.0)

    # Durable local store
    local_store_backend: str = Field(default="file", pattern=r"^(file|redis|memory)$")
    local_store_path: str = "~/.tripsync"
    local_store_quota_bytes: int = Field(default=5 * 1024 * 1024, gt=0)  # 5MB, browser-like quota
    local_redis_url: str = Field(default="redis://localhost:6379/0")
    local_trip_retention: int = Field(default=10, ge=1)
    storage_key_prefix: str = "newmap_"

    # Real-time channel
    realtime_url: str = Field(default="http://localhost:8080")
    reconnect_max_attempts: int = Field(default=5, ge=0)
    reconnect_delay_s: float = Field(default=1.0, ge=0.0)
    handshake_timeout_s: float = Field(default=5.0, gt=0.0)

    # Presence
    cursor_broadcast_interval_s: float = Field(default=0.1, ge=0.0)
    cursor_stale_after_s: float = Field(default=5.0, gt=0.0)
    presence_sweep_interval_s: float = Field(default=1.0, gt=0.0)

    # Sentry
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.0, ge=0.0, le=1.0)

    model_config = {"env_prefix": "TRIPSYNC_", "env_file": ".env", "extra": "ignore"}


settings = Settings()
