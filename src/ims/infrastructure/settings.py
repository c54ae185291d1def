"""Service configuration, read from ``IMS_*`` environment variables or ``.env``."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from ims.application.backoff import BackoffPolicy, ConflictRetry
from ims.application.outbox_relay import RelayConfig


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="IMS_", env_file=".env", extra="ignore")

    # empty means the default SQLite file under <project>/data
    database_url: str = ""
    redis_url: str = "redis://localhost:6379/0"
    broker_stream: str = "inventory_events"
    broker_stream_maxlen: int | None = None

    # socket timeout bounding every broker publish
    publish_timeout: float = 5.0
    relay_batch_size: int = 100
    relay_poll_interval: float = 1.0
    relay_max_attempts: int = 10
    relay_backoff_base: float = 0.5
    relay_backoff_max: float = 300.0
    relay_workers: int = 1
    relay_lease_seconds: float = 30.0

    command_retry_attempts: int = 3

    # "redis", "memory" or "none"
    idempotency_backend: str = "redis"
    idempotency_ttl: int = 7 * 24 * 3600

    log_level: str = "INFO"
    log_json: bool = False

    def relay_config(self) -> RelayConfig:
        return RelayConfig(
            batch_size=self.relay_batch_size,
            poll_interval=self.relay_poll_interval,
            max_attempts=self.relay_max_attempts,
            lease_seconds=self.relay_lease_seconds,
            backoff=BackoffPolicy(
                base=self.relay_backoff_base, max_delay=self.relay_backoff_max
            ),
        )

    def conflict_retry(self) -> ConflictRetry:
        return ConflictRetry(attempts=self.command_retry_attempts)


@lru_cache
def get_settings() -> Settings:
    return Settings()
