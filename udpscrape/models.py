"""Pydantic models for udpscrape configuration."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class TrackerConfig(BaseModel):
    """Tracker communication configuration."""

    timeout: float = Field(
        default=15.0,
        gt=0.0,
        le=300.0,
        description="Read deadline per attempt in seconds",
    )
    retries: int = Field(
        default=3,
        ge=0,
        le=100,
        description="Additional attempts after a read timeout",
    )
    session_ttl: float = Field(
        default=60.0,
        gt=0.0,
        le=3600.0,
        description="Lifetime of a connection ID in seconds",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(
        default=False,
        description="Use structured (JSON) logging",
    )
    log_correlation_id: bool = Field(
        default=True,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    tracker: TrackerConfig = Field(
        default_factory=TrackerConfig,
        description="Tracker configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
