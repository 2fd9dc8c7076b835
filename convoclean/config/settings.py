"""convoclean configuration settings."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, field_validator


def _csv_env(var_name: str) -> list[str]:
    raw = os.getenv(var_name, "")
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


def _bool_env(var_name: str, default: bool) -> bool:
    raw = os.getenv(var_name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def _optional_path_env(var_name: str) -> Path | None:
    raw = os.getenv(var_name, "").strip()
    return Path(raw) if raw else None


class RecoveryConfig(BaseModel):
    """Recovery engine tuning."""

    context_window: int = Field(
        default_factory=lambda: int(os.getenv("INGEST_CONTEXT_WINDOW", "2"))
    )
    success_threshold: float = 0.3
    method_bonus: float = 0.1
    method_bonus_cap: float = 0.3
    max_workers: int = Field(default_factory=lambda: int(os.getenv("INGEST_MAX_WORKERS", "1")))

    @field_validator("context_window")
    @classmethod
    def _validate_window(cls, value: int) -> int:
        if value < 0:
            raise ValueError("INGEST_CONTEXT_WINDOW must be >= 0")
        return value

    @field_validator("success_threshold", "method_bonus", "method_bonus_cap")
    @classmethod
    def _validate_unit_interval(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("recovery thresholds must lie in [0, 1]")
        return value

    @field_validator("max_workers")
    @classmethod
    def _validate_workers(cls, value: int) -> int:
        if value < 1:
            raise ValueError("INGEST_MAX_WORKERS must be >= 1")
        return value


class TimestampConfig(BaseModel):
    """Timestamp reconstruction behaviour."""

    synthesize_fallback: bool = Field(
        default_factory=lambda: _bool_env("INGEST_SYNTHESIZE_FALLBACK_TIMESTAMP", True)
    )
    fallback_window_days: int = 365

    @field_validator("fallback_window_days")
    @classmethod
    def _validate_window_days(cls, value: int) -> int:
        if value < 1:
            raise ValueError("fallback_window_days must be >= 1")
        return value


class SpeakerConfig(BaseModel):
    """Speaker identification settings.

    Empty identifier lists mean "use the built-in defaults".
    """

    user_identifiers: list[str] = Field(
        default_factory=lambda: _csv_env("INGEST_USER_IDENTIFIERS")
    )
    client_identifiers: list[str] = Field(
        default_factory=lambda: _csv_env("INGEST_CLIENT_IDENTIFIERS")
    )
    profile_path: Path | None = Field(
        default_factory=lambda: _optional_path_env("INGEST_SPEAKER_PROFILE")
    )


class IngestConfig(BaseModel):
    """Root configuration for an ingestion session."""

    recovery: RecoveryConfig = Field(default_factory=RecoveryConfig)
    timestamps: TimestampConfig = Field(default_factory=TimestampConfig)
    speakers: SpeakerConfig = Field(default_factory=SpeakerConfig)
    ledger_path: Path | None = Field(
        default_factory=lambda: _optional_path_env("INGEST_SIGNAL_LEDGER")
    )
    log_level: str = Field(default_factory=lambda: os.getenv("INGEST_LOG_LEVEL", "INFO"))

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level
