"""Structured error telemetry helpers."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Canonical error codes for operational telemetry."""

    STRATEGY_FAILED = "STRATEGY_FAILED"
    TIMESTAMP_ASSEMBLY_FAILED = "TIMESTAMP_ASSEMBLY_FAILED"
    INVALID_ROW = "INVALID_ROW"
    INVALID_INPUT = "INVALID_INPUT"
    SIGNAL_SUBSCRIBER_FAILURE = "SIGNAL_SUBSCRIBER_FAILURE"
    PROFILE_LOAD_FAILED = "PROFILE_LOAD_FAILED"


def emit_structured_error(
    logger: logging.Logger,
    *,
    code: ErrorCode,
    message: str,
    suppressed: bool,
    run_id: str | None = None,
    phase: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Emit a structured telemetry event via logging."""
    logger.error(
        "convoclean_error",
        extra={
            "error_code": code,
            "error_message": message,
            "suppressed": suppressed,
            "run_id": run_id,
            "phase": phase,
            "details": details or {},
        },
    )


def configure_logging(level: str = "INFO") -> None:
    """Install a root handler at the given level if none is configured yet."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
