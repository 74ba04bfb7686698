"""
Engine configuration loaded from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

from feedsync.exceptions import ConfigurationError


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            message=f"{name} must be an integer, got {raw!r}",
            config_key=name,
        ) from e


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            message=f"{name} must be a number, got {raw!r}",
            config_key=name,
        ) from e


@dataclass(frozen=True)
class EngineSettings:
    """Startup configuration consumed by the sync engine."""
    log_level: str = "INFO"
    max_attempts: int = 3
    backoff_base_seconds: float = 5.0
    title_max_length: int = 150
    description_max_length: int = 5000
    field_catalog_version: Optional[str] = None
    worker_count: int = 2
    resolve_concurrency: int = 8
    heartbeat_timeout_seconds: float = 300.0
    requeue_delay_seconds: float = 1.0
    feed_bucket: Optional[str] = None
    event_bus_name: Optional[str] = None
    aws_region: str = "us-east-1"
    localstack_endpoint: Optional[str] = None
    preview_page_size: int = 20

    @classmethod
    def from_env(cls) -> "EngineSettings":
        settings = cls(
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            max_attempts=_env_int("SYNC_MAX_ATTEMPTS", 3),
            backoff_base_seconds=_env_float("SYNC_BACKOFF_BASE_SECONDS", 5.0),
            title_max_length=_env_int("TITLE_MAX_LENGTH", 150),
            description_max_length=_env_int("DESCRIPTION_MAX_LENGTH", 5000),
            field_catalog_version=os.environ.get("FIELD_CATALOG_VERSION") or None,
            worker_count=_env_int("SYNC_WORKER_COUNT", 2),
            resolve_concurrency=_env_int("RESOLVE_CONCURRENCY", 8),
            heartbeat_timeout_seconds=_env_float("SYNC_HEARTBEAT_TIMEOUT_SECONDS", 300.0),
            requeue_delay_seconds=_env_float("SYNC_REQUEUE_DELAY_SECONDS", 1.0),
            feed_bucket=os.environ.get("FEED_BUCKET") or None,
            event_bus_name=os.environ.get("EVENT_BUS_NAME") or None,
            aws_region=os.environ.get("AWS_REGION", "us-east-1"),
            localstack_endpoint=os.environ.get("LOCALSTACK_ENDPOINT") or None,
            preview_page_size=_env_int("PREVIEW_PAGE_SIZE", 20),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Reject values the engine cannot run with."""
        if self.max_attempts < 1:
            raise ConfigurationError(
                message="SYNC_MAX_ATTEMPTS must be at least 1",
                config_key="SYNC_MAX_ATTEMPTS",
            )
        if self.worker_count < 1:
            raise ConfigurationError(
                message="SYNC_WORKER_COUNT must be at least 1",
                config_key="SYNC_WORKER_COUNT",
            )
        if self.resolve_concurrency < 1:
            raise ConfigurationError(
                message="RESOLVE_CONCURRENCY must be at least 1",
                config_key="RESOLVE_CONCURRENCY",
            )
        if self.preview_page_size < 1:
            raise ConfigurationError(
                message="PREVIEW_PAGE_SIZE must be at least 1",
                config_key="PREVIEW_PAGE_SIZE",
            )
