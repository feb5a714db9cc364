"""
Shared configuration management for the Todo service.

Settings are resolved once at startup from, in increasing precedence:
defaults, a YAML file, a ``.env`` file and ``TODO_``-prefixed environment
variables. The resulting object is treated as immutable.
"""

import os
from typing import List, Optional, Tuple, Type

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

CONFIG_FILE_ENV = "TODO_CONFIG_FILE"
DEFAULT_CONFIG_FILE = "config.yaml"

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TODO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment name")
    log_level: str = Field(default="info")
    log_format: str = Field(default="json", description="json or console")

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout: float = Field(default=15.0, gt=0, description="Per-request deadline in seconds")
    shutdown_timeout: float = Field(default=30.0, ge=0, description="Grace period for in-flight requests")

    # Observability
    metrics_enabled: bool = True
    metrics_path: str = "/metrics"
    enable_tracing: bool = False
    otel_exporter: str = "http://localhost:4317"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        if value.lower() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {value!r}")
        return value.lower()

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        if value.lower() not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value.lower()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        yaml_settings = YamlConfigSettingsSource(
            settings_cls,
            yaml_file=os.getenv(CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE),
        )
        # Earlier sources win.
        return init_settings, env_settings, dotenv_settings, yaml_settings


class TodoConfig(BaseConfig):
    """Todo service configuration."""

    # Relational store
    database_url: str = "sqlite+aiosqlite:///todos.db"
    database_timeout: float = Field(default=5.0, gt=0)
    database_echo: bool = False

    # Cache (optional)
    redis_enabled: bool = True
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    redis_timeout: float = Field(default=2.0, gt=0)

    # Event log (optional)
    kafka_enabled: bool = True
    kafka_brokers: str = "localhost:9092"
    kafka_topic: str = "todo-events"
    kafka_publish_timeout: float = Field(default=5.0, gt=0)

    @property
    def kafka_broker_list(self) -> List[str]:
        """Brokers as a list, ignoring blank entries."""
        return [broker.strip() for broker in self.kafka_brokers.split(",") if broker.strip()]

    @property
    def cache_configured(self) -> bool:
        return self.redis_enabled and bool(self.redis_host)

    @property
    def events_configured(self) -> bool:
        return self.kafka_enabled and bool(self.kafka_broker_list)


def get_config(**overrides) -> TodoConfig:
    """Load configuration for the todo service.

    Keyword overrides take precedence over every other source and are mostly
    useful in tests.
    """
    return TodoConfig(**overrides)
