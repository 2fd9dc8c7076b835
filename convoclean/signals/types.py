"""Signal type definitions for recovery-pipeline observability."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class SignalType(str, Enum):
    """All signal types emitted by the recovery pipeline."""

    ROWS_ANALYZED = "ROWS_ANALYZED"
    ISSUE_DETECTED = "ISSUE_DETECTED"
    STRATEGY_APPLIED = "STRATEGY_APPLIED"
    STRATEGY_FAILED = "STRATEGY_FAILED"
    TIMESTAMP_RECONSTRUCTED = "TIMESTAMP_RECONSTRUCTED"
    SPEAKER_IDENTIFIED = "SPEAKER_IDENTIFIED"
    ROW_RECOVERED = "ROW_RECOVERED"
    RECOVERY_COMPLETE = "RECOVERY_COMPLETE"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    PROFILE_CONFLICT = "PROFILE_CONFLICT"
    CONVERSATION_ASSEMBLED = "CONVERSATION_ASSEMBLED"


class Signal(BaseModel):
    """An immutable signal emitted during a recovery run.

    Every detected issue, applied strategy, and classification decision
    produces a Signal. Signals are append-only and cannot be modified
    after emission.
    """

    sequence: int = Field(description="Monotonic sequence number within the run")
    signal_type: SignalType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    run_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}
