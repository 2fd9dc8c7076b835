"""Recovery data models — corruption issues, corrupted rows, and recovery results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

RawRow = dict[str, Any]


class IssueKind(str, Enum):
    MISSING_FIELD = "missing_field"
    FRAGMENTED_DATA = "fragmented_data"
    MALFORMED_TIMESTAMP = "malformed_timestamp"
    ENCODING_ERROR = "encoding_error"
    STRUCTURE_MISMATCH = "structure_mismatch"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Health deduction per issue, by severity.
SEVERITY_DEDUCTIONS: dict[Severity, float] = {
    Severity.CRITICAL: 0.4,
    Severity.HIGH: 0.25,
    Severity.MEDIUM: 0.15,
    Severity.LOW: 0.05,
}


class CorruptionIssue(BaseModel):
    """One typed problem found in a raw row."""

    kind: IssueKind
    field: str
    severity: Severity
    description: str
    suggested_fix: str | None = None

    model_config = {"frozen": True}


def row_health(issues: list[CorruptionIssue]) -> float:
    """Severity-weighted health in [0, 1]."""
    health = 1.0 - sum(SEVERITY_DEDUCTIONS[issue.severity] for issue in issues)
    return max(0.0, round(health, 6))


class CorruptedRow(BaseModel):
    """A raw row paired with the issues found in it.

    Immutable once produced; this is the unit of work handed to recovery.
    """

    row_index: int
    original_data: RawRow = Field(default_factory=dict)
    issues: list[CorruptionIssue] = Field(default_factory=list)
    health: float = Field(ge=0.0, le=1.0, default=1.0)

    model_config = {"frozen": True}


class RecoveryResult(BaseModel):
    """Outcome of recovering a single row.

    Callers must branch on ``success`` and ``confidence``; a populated
    ``recovered_data`` does not imply the row is usable.
    """

    row_index: int = -1
    success: bool = False
    recovered_data: RawRow = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    methods_used: list[str] = Field(default_factory=list)
    original_issues: list[CorruptionIssue] = Field(default_factory=list)
    remaining_issues: list[CorruptionIssue] = Field(default_factory=list)
    reconstruction_details: list[str] = Field(default_factory=list)


class IssueCount(BaseModel):
    kind: IssueKind
    count: int
    percentage: float


class RecoveryStats(BaseModel):
    """Aggregate counters for an analysis or recovery pass."""

    total_rows: int = 0
    corrupted_rows: int = 0
    recovered_rows: int = 0
    unrecoverable_rows: int = 0
    average_confidence: float = Field(ge=0.0, le=1.0, default=1.0)
    common_issues: list[IssueCount] = Field(default_factory=list)


class AnalysisReport(BaseModel):
    corrupted_rows: list[CorruptedRow] = Field(default_factory=list)
    stats: RecoveryStats = Field(default_factory=RecoveryStats)


class RecoveryReport(BaseModel):
    results: list[RecoveryResult] = Field(default_factory=list)
    stats: RecoveryStats = Field(default_factory=RecoveryStats)
