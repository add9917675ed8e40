"""
Configuration management for StoreVault Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_EXPRESSION = "0 2 * * *"  # 2:00 AM every day


class StoreBackend(Enum):
    """Supported document store backends."""

    SQLITE = "sqlite"
    MEMORY = "memory"


class ArtifactBackend(Enum):
    """Supported artifact storage backends."""

    FILESYSTEM = "filesystem"
    S3 = "s3"


def _parse_enum(enum_cls, env_name: str, default: str):
    raw = os.getenv(env_name, default).lower()
    try:
        return enum_cls(raw)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {env_name} '{raw}'. Must be one of: {choices}")


@dataclass(frozen=True)
class StorageConfig:
    """Document store configuration.

    Attributes:
        backend: Which document store backend to use
        data_dir: Directory for the SQLite database file
        db_name: SQLite database file name
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.SQLITE
    data_dir: str = "/var/lib/storevault"
    db_name: str = "store.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            backend=_parse_enum(StoreBackend, "STORE_BACKEND", "sqlite"),
            data_dir=os.getenv("DATA_DIR", "/var/lib/storevault"),
            db_name=os.getenv("SQLITE_DB_NAME", "store.db"),
            wal_mode=os.getenv("SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for artifact storage.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        backup_prefix: Key prefix for backup artifacts
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "storevault-backups"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    backup_prefix: str = "backups"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "storevault-backups"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            backup_prefix=os.getenv("S3_BACKUP_PREFIX", "backups"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class ArtifactConfig:
    """Artifact storage configuration.

    Attributes:
        backend: Where artifacts are written
        backup_dir: Directory for the filesystem backend (defaults under DATA_DIR)
    """

    backend: ArtifactBackend = ArtifactBackend.FILESYSTEM
    backup_dir: str = "/var/lib/storevault/backups"

    @classmethod
    def from_env(cls) -> ArtifactConfig:
        """Load configuration from environment variables."""
        data_dir = os.getenv("DATA_DIR", "/var/lib/storevault")
        return cls(
            backend=_parse_enum(ArtifactBackend, "ARTIFACT_BACKEND", "filesystem"),
            backup_dir=os.getenv("BACKUP_DIR", os.path.join(data_dir, "backups")),
        )


@dataclass(frozen=True)
class ScheduleConfig:
    """Scheduled backup configuration.

    The enabled flag and the active expression live in the persisted
    settings document; these values only supply defaults.

    Attributes:
        default_expression: Cron expression used when settings carry none
        timezone: "local" or "utc", the clock cron expressions are evaluated in
    """

    default_expression: str = DEFAULT_SCHEDULE_EXPRESSION
    timezone: str = "local"

    @classmethod
    def from_env(cls) -> ScheduleConfig:
        """Load configuration from environment variables."""
        return cls(
            default_expression=os.getenv("BACKUP_DEFAULT_SCHEDULE", DEFAULT_SCHEDULE_EXPRESSION),
            timezone=os.getenv("BACKUP_TIMEZONE", "local").lower(),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP control surface configuration.

    Attributes:
        host: Address to bind
        port: Port to bind
        cors_origins: Allowed CORS origins ("*" for any)
        max_body_bytes: Maximum request body size (restore uploads)
    """

    host: str = "0.0.0.0"
    port: int = 8081
    cors_origins: tuple[str, ...] = ("*",)
    max_body_bytes: int = 256 * 1024 * 1024  # 256MB

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8081")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            max_body_bytes=int(os.getenv("HTTP_MAX_BODY_BYTES", str(256 * 1024 * 1024))),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        storage: Document store configuration
        artifacts: Artifact storage configuration
        s3: S3 configuration (if artifacts backend is S3)
        schedule: Scheduled backup defaults
        http: HTTP control surface configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    artifacts: ArtifactConfig = field(default_factory=ArtifactConfig)
    s3: S3Config = field(default_factory=S3Config)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            artifacts=ArtifactConfig.from_env(),
            s3=S3Config.from_env(),
            schedule=ScheduleConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        from .schedule.scheduler import validate_schedule_expression

        if self.artifacts.backend == ArtifactBackend.S3 and not self.s3.bucket:
            raise ValueError("S3_BUCKET is required when ARTIFACT_BACKEND=s3")

        if self.schedule.timezone not in ("local", "utc"):
            raise ValueError(
                f"Invalid BACKUP_TIMEZONE '{self.schedule.timezone}'. Must be one of: local, utc"
            )

        # ValidationError is a ValueError
        validate_schedule_expression(self.schedule.default_expression)

        if self.storage.backend == StoreBackend.MEMORY:
            logger.warning("STORE_BACKEND=memory: all data is lost on process exit")

        if not os.path.exists(self.storage.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.storage.backend.value,
                "data_dir": self.storage.data_dir,
                "artifact_backend": self.artifacts.backend.value,
                "backup_dir": self.artifacts.backup_dir
                if self.artifacts.backend == ArtifactBackend.FILESYSTEM
                else None,
                "s3_bucket": self.s3.bucket if self.artifacts.backend == ArtifactBackend.S3 else None,
                "default_schedule": self.schedule.default_expression,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
