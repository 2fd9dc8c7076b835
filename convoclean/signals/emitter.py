"""Signal emitter — structured decision tracing for the recovery pipeline.

Handles emission, persistence, and fan-out of Signals. Every component
receives an emitter at construction instead of writing ad hoc log lines.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from convoclean.signals.types import Signal, SignalType
from convoclean.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


class SignalEmitter:
    """Emits, persists, and broadcasts signals for a single run.

    Signals are:
    - Immutable once emitted
    - Assigned monotonic sequence numbers
    - Persisted to a JSONL ledger in append-only mode
    - Delivered to subscribers synchronously, in emission order
    - Logged at DEBUG with the payload attached as structured ``extra``
    """

    def __init__(self, run_id: str | None = None, ledger_path: Path | None = None) -> None:
        self._run_id = run_id or new_run_id()
        self._sequence = 0
        self._ledger_path = ledger_path
        self._subscribers: list[Callable[[Signal], Any]] = []
        self._signals: list[Signal] = []
        self._lock = threading.Lock()

        # Ensure ledger directory exists
        if self._ledger_path:
            self._ledger_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def run_id(self) -> str:
        return self._run_id

    @property
    def signals(self) -> list[Signal]:
        """Return all emitted signals (read-only copy)."""
        with self._lock:
            return list(self._signals)

    def of_type(self, signal_type: SignalType) -> list[Signal]:
        """Return emitted signals of one type, in sequence order."""
        return [s for s in self.signals if s.signal_type == signal_type]

    def subscribe(self, callback: Callable[[Signal], Any]) -> None:
        """Register a subscriber for real-time signal delivery."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[Signal], Any]) -> None:
        """Remove a subscriber."""
        self._subscribers = [s for s in self._subscribers if s != callback]

    def emit(self, signal_type: SignalType, payload: dict[str, Any] | None = None) -> Signal:
        """Emit a signal. This is the ONLY way to create signals.

        Every signal gets:
        - A monotonic sequence number
        - A UTC timestamp
        - Persisted to the ledger
        - Broadcast to all subscribers
        """
        with self._lock:
            self._sequence += 1
            signal = Signal(
                sequence=self._sequence,
                signal_type=signal_type,
                timestamp=datetime.now(timezone.utc),
                run_id=self._run_id,
                payload=payload or {},
            )
            self._signals.append(signal)

            # Persist under the lock so ledger order matches sequence order
            if self._ledger_path:
                self._persist(signal)

        logger.debug(
            signal_type.value,
            extra={"run_id": self._run_id, "sequence": signal.sequence, "payload": signal.payload},
        )
        self._broadcast(signal)
        return signal

    def _persist(self, signal: Signal) -> None:
        """Append signal to the JSONL ledger file."""
        line = signal.model_dump_json() + "\n"
        with open(self._ledger_path, "a", encoding="utf-8") as f:
            f.write(line)

    def _broadcast(self, signal: Signal) -> None:
        """Notify all subscribers of a new signal."""
        for subscriber in list(self._subscribers):
            try:
                subscriber(signal)
            except Exception as exc:
                # Subscribers must not break the emission pipeline
                emit_structured_error(
                    logger,
                    code=ErrorCode.SIGNAL_SUBSCRIBER_FAILURE,
                    message=str(exc),
                    suppressed=True,
                    run_id=self._run_id,
                    details={"signal_type": signal.signal_type.value},
                )

    def emit_strategy_applied(
        self, row_index: int, strategy: str, detail: str, context: dict[str, Any] | None = None
    ) -> Signal:
        """Convenience: emit a STRATEGY_APPLIED signal."""
        return self.emit(
            SignalType.STRATEGY_APPLIED,
            {"row_index": row_index, "strategy": strategy, "detail": detail, **(context or {})},
        )

    def emit_recovery_complete(
        self, total_rows: int, recovered_rows: int, average_confidence: float
    ) -> Signal:
        """Convenience: emit a RECOVERY_COMPLETE signal."""
        return self.emit(
            SignalType.RECOVERY_COMPLETE,
            {
                "total_rows": total_rows,
                "recovered_rows": recovered_rows,
                "average_confidence": average_confidence,
            },
        )

    @staticmethod
    def load_ledger(ledger_path: Path) -> list[Signal]:
        """Load all signals from a JSONL ledger file."""
        signals = []
        if ledger_path.exists():
            with open(ledger_path, encoding="utf-8") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        signals.append(Signal.model_validate_json(line))
        return signals
