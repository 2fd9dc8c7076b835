"""Recovery engine — analysis and per-row repair of corrupted export rows.

The engine is the controller; it does not know how to repair anything
itself. It runs the ordered strategies from ``strategies.py`` against each
row, isolates strategy failures, and scores the outcome.

Responsibilities:
- Run the detector over a dataset and summarise what it found
- Apply every strategy in order to the accumulated recovered data
- Record a strategy only when it changed the data
- Contain strategy exceptions to the row and strategy that raised them
- Score confidence from the issues resolved and the strategies used
- Emit Signals at every decision point

MUST NOT:
- Mutate the caller's rows or CorruptedRow values
- Raise on bad input; malformed items become failure results
- Read recovered neighbours; context comes from original rows only
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pydantic import ValidationError

from convoclean.config.settings import RecoveryConfig
from convoclean.pipeline.detector import CorruptionDetector, has_field
from convoclean.pipeline.records import (
    AnalysisReport,
    CorruptedRow,
    CorruptionIssue,
    IssueCount,
    IssueKind,
    RecoveryReport,
    RecoveryResult,
    RecoveryStats,
)
from convoclean.recovery.strategies import (
    STRATEGIES,
    STRATEGY_DETAILS,
    StrategyContext,
)
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType
from convoclean.telemetry.errors import ErrorCode, emit_structured_error
from convoclean.timestamps.reconstructor import TimestampReconstructor

logger = logging.getLogger(__name__)


def issue_counts(issue_lists: Sequence[list[CorruptionIssue]], corrupted: int) -> list[IssueCount]:
    """Count issues per kind, as a percentage of corrupted rows, most common first."""
    counts: Counter[IssueKind] = Counter(i.kind for issues in issue_lists for i in issues)
    denominator = max(corrupted, 1)
    return [
        IssueCount(kind=kind, count=count, percentage=round(count / denominator * 100, 2))
        for kind, count in counts.most_common()
    ]


class RecoveryEngine:
    """Analyzes raw rows and recovers the corrupted ones."""

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        detector: CorruptionDetector | None = None,
        reconstructor: TimestampReconstructor | None = None,
        signals: SignalEmitter | None = None,
    ) -> None:
        self._config = config or RecoveryConfig()
        self._signals = signals
        self._detector = detector or CorruptionDetector(signals=signals)
        self._reconstructor = reconstructor or TimestampReconstructor(signals=signals)

    @property
    def detector(self) -> CorruptionDetector:
        return self._detector

    # --- Analysis ---

    def analyze(self, rows: Any) -> AnalysisReport:
        """Inspect every row and report the ones with at least one issue."""
        if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
            emit_structured_error(
                logger,
                code=ErrorCode.INVALID_INPUT,
                message="analyze() expects a sequence of rows",
                suppressed=True,
                run_id=self._run_id,
                phase="analyze",
                details={"type": type(rows).__name__},
            )
            return AnalysisReport()

        inspected = [self._detector.inspect(row, index) for index, row in enumerate(rows)]
        corrupted = [row for row in inspected if row.issues]
        average_health = (
            sum(row.health for row in corrupted) / len(corrupted) if corrupted else 1.0
        )
        stats = RecoveryStats(
            total_rows=len(inspected),
            corrupted_rows=len(corrupted),
            average_confidence=round(average_health, 6),
            common_issues=issue_counts([row.issues for row in corrupted], len(corrupted)),
        )

        logger.info(
            "Analyzed %d rows, %d corrupted", stats.total_rows, stats.corrupted_rows
        )
        if self._signals is not None:
            self._signals.emit(
                SignalType.ROWS_ANALYZED,
                {
                    "total_rows": stats.total_rows,
                    "corrupted_rows": stats.corrupted_rows,
                    "top_issues": [c.kind.value for c in stats.common_issues[:3]],
                },
            )
        return AnalysisReport(corrupted_rows=corrupted, stats=stats)

    # --- Recovery ---

    def recover(
        self,
        corrupted_rows: Sequence[Any],
        full_dataset: Sequence[Any] | None = None,
        max_workers: int | None = None,
    ) -> RecoveryReport:
        """Recover each row. Result order always matches input order."""
        items = list(corrupted_rows)
        workers = max_workers or self._config.max_workers

        if workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(lambda item: self.recover_row(item, full_dataset), items))
        else:
            results = [self.recover_row(item, full_dataset) for item in items]

        recovered = sum(1 for r in results if r.success)
        average = sum(r.confidence for r in results) / len(results) if results else 0.0
        corrupted_count = sum(1 for r in results if r.original_issues)
        stats = RecoveryStats(
            total_rows=len(results),
            corrupted_rows=corrupted_count,
            recovered_rows=recovered,
            unrecoverable_rows=len(results) - recovered,
            average_confidence=round(average, 6),
            common_issues=issue_counts([r.original_issues for r in results], corrupted_count),
        )

        logger.info(
            "Recovered %d/%d rows (average confidence %.2f)",
            recovered,
            len(results),
            stats.average_confidence,
        )
        if self._signals is not None:
            self._signals.emit_recovery_complete(
                total_rows=stats.total_rows,
                recovered_rows=recovered,
                average_confidence=stats.average_confidence,
            )
        return RecoveryReport(results=results, stats=stats)

    def recover_row(self, item: Any, full_dataset: Sequence[Any] | None = None) -> RecoveryResult:
        """Run every strategy over one row and score the outcome."""
        row = self._coerce(item)
        if row is None:
            return RecoveryResult(
                success=False,
                confidence=0.0,
                reconstruction_details=["Input is not a corrupted row"],
            )

        if not row.issues:
            return RecoveryResult(
                row_index=row.row_index,
                success=has_field(row.original_data, "content"),
                recovered_data=dict(row.original_data),
                confidence=1.0,
            )

        context = StrategyContext(
            row=row,
            reconstructor=self._reconstructor,
            full_dataset=full_dataset,
            context_window=self._config.context_window,
        )
        data = dict(row.original_data)
        methods: list[str] = []
        details: list[str] = []

        for strategy, apply in STRATEGIES:
            try:
                updated = apply(data, context)
            except Exception as exc:
                # One misbehaving strategy must not abort the row
                emit_structured_error(
                    logger,
                    code=ErrorCode.STRATEGY_FAILED,
                    message=str(exc),
                    suppressed=True,
                    run_id=self._run_id,
                    phase=strategy.value,
                    details={"row_index": row.row_index, "exception": type(exc).__name__},
                )
                if self._signals is not None:
                    self._signals.emit(
                        SignalType.STRATEGY_FAILED,
                        {"row_index": row.row_index, "strategy": strategy.value, "error": str(exc)},
                    )
                continue

            if updated is None or updated == data:
                continue
            data = updated
            methods.append(strategy.value)
            details.append(STRATEGY_DETAILS[strategy])
            if self._signals is not None:
                self._signals.emit_strategy_applied(
                    row.row_index, strategy.value, STRATEGY_DETAILS[strategy]
                )

        remaining = self._remaining_issues(row, data)
        confidence = self._confidence(len(row.issues), len(remaining), len(methods))
        success = (
            confidence > self._config.success_threshold
            and has_field(data, "content")
            and (has_field(data, "messageType") or has_field(data, "sender"))
        )

        result = RecoveryResult(
            row_index=row.row_index,
            success=success,
            recovered_data=data,
            confidence=confidence,
            methods_used=methods,
            original_issues=list(row.issues),
            remaining_issues=remaining,
            reconstruction_details=details,
        )
        logger.debug(
            "Row %d recovered=%s confidence=%.2f methods=%s",
            row.row_index,
            success,
            confidence,
            methods,
        )
        if self._signals is not None:
            self._signals.emit(
                SignalType.ROW_RECOVERED,
                {
                    "row_index": row.row_index,
                    "success": success,
                    "confidence": confidence,
                    "methods_used": methods,
                    "remaining_issues": len(remaining),
                },
            )
        return result

    # --- Helpers ---

    @property
    def _run_id(self) -> str | None:
        return self._signals.run_id if self._signals is not None else None

    def _coerce(self, item: Any) -> CorruptedRow | None:
        if isinstance(item, CorruptedRow):
            return item
        if isinstance(item, Mapping):
            try:
                return CorruptedRow.model_validate(item)
            except ValidationError:
                pass
        emit_structured_error(
            logger,
            code=ErrorCode.INVALID_ROW,
            message="Recovery item is not a corrupted row",
            suppressed=True,
            run_id=self._run_id,
            phase="recover",
            details={"type": type(item).__name__},
        )
        return None

    def _remaining_issues(self, row: CorruptedRow, data: dict[str, Any]) -> list[CorruptionIssue]:
        """Re-detect on the recovered data.

        Encoding problems in keys the strategies added are copies of an
        original field, so they are not counted twice.
        """
        added = set(data) - set(row.original_data)
        return [
            issue
            for issue in self._detector.detect(data)
            if not (issue.kind is IssueKind.ENCODING_ERROR and issue.field in added)
        ]

    def _confidence(self, original: int, remaining: int, methods: int) -> float:
        resolution = (original - remaining) / original if original else 1.0
        resolution = min(1.0, max(0.0, resolution))
        bonus = min(self._config.method_bonus * methods, self._config.method_bonus_cap)
        return round(min(1.0, resolution + bonus), 6)
