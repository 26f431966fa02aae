"""
Engine configuration for docshift.

Settings are read once from the environment of the hosting function and
passed explicitly to the components that need them.

Example:
    >>> settings = EngineSettings.from_env({"BATCH_SIZE": "500"})
    >>> settings.batch_size
    500
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from docshift.models import DEFAULT_BATCH_SIZE, DEFAULT_PROGRESS_INTERVAL, DEFAULT_TIME_BUDGET_MS

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class EngineSettings:
    """
    Configuration of the migration engine.

    This class is immutable (frozen) so the same settings can be shared by
    every component of an invocation.

    Attributes:
        batch_size: Default documents per batch (default 1000).
        max_processing_time_ms: Default invocation time budget (default 840000).
        progress_update_interval: Batches between heartbeats (default 10).
        max_retries: Write attempts per batch (default 3).
        retry_base_delay_ms: First write retry delay (default 1000).
        retry_max_delay_ms: Cap on the write retry delay (default 10000).
        source_secret_name: Default credential reference of the source store.
        target_secret_name: Default credential reference of the target store.
        app_secret_name: Reference of the application's connection configuration.
            The three references have no default and must come from the
            environment or the invocation payload.
        db_name: Database holding the migrated collections (default "chronas").
        tls_ca_file: CA bundle for TLS connections to DocumentDB.
        connect_timeout_ms: Driver connect timeout (default 30000).
        socket_timeout_ms: Driver socket timeout (default 60000).
        server_selection_timeout_ms: Driver server selection timeout (default 30000).
        max_pool_size: Maximum connections per store (default 10).
        min_pool_size: Minimum connections per store (default 1).
        aws_region: Region of the secrets service (default "eu-west-1").
        secret_cache_ttl_seconds: Lifetime of cached credentials (default 300).
        include_stack_traces: Include stack traces in error responses (default False).
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_processing_time_ms: int = DEFAULT_TIME_BUDGET_MS
    progress_update_interval: int = DEFAULT_PROGRESS_INTERVAL
    max_retries: int = 3
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    source_secret_name: str | None = None
    target_secret_name: str | None = None
    app_secret_name: str | None = None
    db_name: str = "chronas"
    tls_ca_file: str = "/opt/rds-ca-2019-root.pem"
    connect_timeout_ms: int = 30000
    socket_timeout_ms: int = 60000
    server_selection_timeout_ms: int = 30000
    max_pool_size: int = 10
    min_pool_size: int = 1
    aws_region: str = "eu-west-1"
    secret_cache_ttl_seconds: int = 300
    include_stack_traces: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")

        if self.max_processing_time_ms <= 0:
            raise ValueError(
                f"max_processing_time_ms must be > 0, got {self.max_processing_time_ms}"
            )

        if self.progress_update_interval < 1:
            raise ValueError(
                f"progress_update_interval must be >= 1, got {self.progress_update_interval}"
            )

        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")

        if self.retry_base_delay_ms < 0:
            raise ValueError(f"retry_base_delay_ms must be >= 0, got {self.retry_base_delay_ms}")

        if self.retry_max_delay_ms < self.retry_base_delay_ms:
            raise ValueError(
                f"retry_max_delay_ms ({self.retry_max_delay_ms}) must be >= "
                f"retry_base_delay_ms ({self.retry_base_delay_ms})"
            )

        for name in ("connect_timeout_ms", "socket_timeout_ms", "server_selection_timeout_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")

        if self.min_pool_size < 0 or self.max_pool_size < max(1, self.min_pool_size):
            raise ValueError(
                f"invalid pool sizes: min={self.min_pool_size}, max={self.max_pool_size}"
            )

        if self.secret_cache_ttl_seconds < 0:
            raise ValueError(
                f"secret_cache_ttl_seconds must be >= 0, got {self.secret_cache_ttl_seconds}"
            )

        if not self.db_name:
            raise ValueError("db_name must not be empty")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EngineSettings:
        """
        Create settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``).

        Returns:
            EngineSettings instance; unset variables keep their defaults.

        Raises:
            ValueError: If a variable cannot be parsed or a value is invalid.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            batch_size=_env_int(env, "BATCH_SIZE", defaults.batch_size),
            max_processing_time_ms=_env_int(
                env, "MAX_PROCESSING_TIME", defaults.max_processing_time_ms
            ),
            progress_update_interval=_env_int(
                env, "PROGRESS_UPDATE_INTERVAL", defaults.progress_update_interval
            ),
            max_retries=_env_int(env, "MAX_RETRIES", defaults.max_retries),
            retry_base_delay_ms=_env_int(env, "RETRY_BASE_DELAY_MS", defaults.retry_base_delay_ms),
            retry_max_delay_ms=_env_int(env, "RETRY_MAX_DELAY_MS", defaults.retry_max_delay_ms),
            source_secret_name=env.get("SOURCE_SECRET_NAME") or None,
            target_secret_name=env.get("TARGET_SECRET_NAME") or None,
            app_secret_name=env.get("APP_SECRET_NAME") or None,
            db_name=env.get("DB_NAME", defaults.db_name),
            tls_ca_file=env.get("TLS_CA_FILE", defaults.tls_ca_file),
            connect_timeout_ms=_env_int(env, "CONNECT_TIMEOUT_MS", defaults.connect_timeout_ms),
            socket_timeout_ms=_env_int(env, "SOCKET_TIMEOUT_MS", defaults.socket_timeout_ms),
            server_selection_timeout_ms=_env_int(
                env, "SERVER_SELECTION_TIMEOUT_MS", defaults.server_selection_timeout_ms
            ),
            max_pool_size=_env_int(env, "MAX_POOL_SIZE", defaults.max_pool_size),
            min_pool_size=_env_int(env, "MIN_POOL_SIZE", defaults.min_pool_size),
            aws_region=env.get("AWS_REGION", defaults.aws_region),
            secret_cache_ttl_seconds=_env_int(
                env, "SECRET_CACHE_TTL_SECONDS", defaults.secret_cache_ttl_seconds
            ),
            include_stack_traces=_env_bool(
                env, "INCLUDE_STACK_TRACES", defaults.include_stack_traces
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for logging.

        Contains secret names only, never secret values.
        """
        return {
            "batch_size": self.batch_size,
            "max_processing_time_ms": self.max_processing_time_ms,
            "progress_update_interval": self.progress_update_interval,
            "max_retries": self.max_retries,
            "retry_base_delay_ms": self.retry_base_delay_ms,
            "retry_max_delay_ms": self.retry_max_delay_ms,
            "source_secret_name": self.source_secret_name,
            "target_secret_name": self.target_secret_name,
            "app_secret_name": self.app_secret_name,
            "db_name": self.db_name,
            "aws_region": self.aws_region,
        }


__all__ = ["EngineSettings"]
