"""Conversation assembler — turns raw export rows into an ordered message stream.

Stages:
1. Inspect — every row goes through the detector, clean rows included
2. Recover — rows are repaired against the full dataset
3. Gate — results with ``success=False`` are set aside for manual review
4. Attribute — content is cleaned and the speaker is identified
5. Order — messages are sorted chronologically; undated rows trail in input order
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from convoclean.config.settings import IngestConfig
from convoclean.pipeline.cleaning import clean_text
from convoclean.pipeline.detector import field_value, parse_timestamp
from convoclean.pipeline.records import RecoveryResult
from convoclean.recovery.engine import RecoveryEngine
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType
from convoclean.speakers.identifier import (
    ConversationContext,
    PriorMessage,
    SpeakerIdentifier,
)
from convoclean.speakers.profile import Role
from convoclean.telemetry.errors import ErrorCode, configure_logging, emit_structured_error
from convoclean.timestamps.reconstructor import TimestampReconstructor

logger = logging.getLogger(__name__)

CONTEXT_MESSAGES = 3
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


class ConversationMessage(BaseModel):
    """One accepted, attributed message."""

    row_index: int
    role: Role
    content: str
    timestamp: datetime | None = None
    timestamp_reliable: bool = False
    sender: str | None = None
    message_type: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)
    speaker_confidence: float = Field(ge=0.0, le=1.0)
    recovered: bool = False
    methods_used: list[str] = Field(default_factory=list)


class ConversationSummary(BaseModel):
    total_rows: int = 0
    processed: int = 0
    rejected: int = 0
    reconstructed: int = 0
    date_parse_successes: int = 0
    average_confidence: float = Field(ge=0.0, le=1.0, default=0.0)


class ConversationResult(BaseModel):
    messages: list[ConversationMessage] = Field(default_factory=list)
    rejected: list[RecoveryResult] = Field(default_factory=list)
    summary: ConversationSummary = Field(default_factory=ConversationSummary)


def _optional_text(value: Any) -> str | None:
    text = clean_text(value)
    return text or None


class ConversationAssembler:
    """Runs detection, recovery, and speaker attribution for one export.

    Contract: rows that cannot be recovered are never dropped silently.
    They are returned in ``rejected`` with their recovery result.
    """

    def __init__(
        self,
        config: IngestConfig | None = None,
        engine: RecoveryEngine | None = None,
        identifier: SpeakerIdentifier | None = None,
        signals: SignalEmitter | None = None,
    ) -> None:
        self._config = config or IngestConfig()
        configure_logging(self._config.log_level)
        if signals is None and self._config.ledger_path is not None:
            signals = SignalEmitter(ledger_path=self._config.ledger_path)
        self._signals = signals
        self._engine = engine or RecoveryEngine(
            config=self._config.recovery,
            reconstructor=TimestampReconstructor(self._config.timestamps, signals=signals),
            signals=signals,
        )
        self._identifier = identifier or SpeakerIdentifier.from_config(
            self._config.speakers, signals=signals
        )

    @property
    def identifier(self) -> SpeakerIdentifier:
        return self._identifier

    @property
    def signals(self) -> SignalEmitter | None:
        return self._signals

    def process(self, rows: Any) -> ConversationResult:
        """Assemble an ordered conversation from raw rows."""
        if not isinstance(rows, Sequence) or isinstance(rows, (str, bytes)):
            emit_structured_error(
                logger,
                code=ErrorCode.INVALID_INPUT,
                message="process() expects a sequence of rows",
                suppressed=True,
                run_id=self._signals.run_id if self._signals else None,
                phase="assemble",
                details={"type": type(rows).__name__},
            )
            return ConversationResult()

        inspected = [self._engine.detector.inspect(row, index) for index, row in enumerate(rows)]
        report = self._engine.recover(inspected, full_dataset=rows)

        messages: list[ConversationMessage] = []
        rejected: list[RecoveryResult] = []
        for result in report.results:
            if not result.success:
                rejected.append(result)
                continue
            messages.append(self._attribute(result, messages[-CONTEXT_MESSAGES:]))

        ordered = sorted(
            messages, key=lambda m: (m.timestamp is None, m.timestamp or _EARLIEST)
        )
        summary = ConversationSummary(
            total_rows=len(rows),
            processed=len(ordered),
            rejected=len(rejected),
            reconstructed=sum(1 for m in ordered if m.recovered),
            date_parse_successes=sum(1 for m in ordered if m.timestamp_reliable),
            average_confidence=round(
                sum(m.confidence for m in ordered) / len(ordered), 6
            )
            if ordered
            else 0.0,
        )

        logger.info(
            "Assembled %d messages from %d rows (%d rejected)",
            summary.processed,
            summary.total_rows,
            summary.rejected,
        )
        if self._signals is not None:
            self._signals.emit(SignalType.CONVERSATION_ASSEMBLED, summary.model_dump())
        return ConversationResult(messages=ordered, rejected=rejected, summary=summary)

    def _attribute(
        self, result: RecoveryResult, previous: list[ConversationMessage]
    ) -> ConversationMessage:
        data = result.recovered_data
        content = clean_text(field_value(data, "content"))
        sender = _optional_text(field_value(data, "sender"))
        message_type = _optional_text(field_value(data, "messageType"))

        context = ConversationContext(
            previous_messages=[PriorMessage(role=m.role, content=m.content) for m in previous]
        )
        identification = self._identifier.identify(sender, message_type, content, context)

        timestamp = parse_timestamp(field_value(data, "timestamp"))
        return ConversationMessage(
            row_index=result.row_index,
            role=identification.role,
            content=content,
            timestamp=timestamp,
            timestamp_reliable=timestamp is not None,
            sender=sender,
            message_type=message_type,
            confidence=result.confidence,
            speaker_confidence=identification.confidence,
            recovered=bool(result.methods_used),
            methods_used=list(result.methods_used),
        )


def export_jsonl(result: ConversationResult, path: Path) -> int:
    """Atomically write one message per line. Returns the number written.

    Either the full conversation writes or none of it does.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            for message in result.messages:
                f.write(message.model_dump_json() + "\n")
        temp_path.replace(path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise
    return len(result.messages)


def load_jsonl(path: Path) -> list[ConversationMessage]:
    """Load messages written by ``export_jsonl``."""
    messages = []
    if path.exists():
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    messages.append(ConversationMessage.model_validate_json(line))
    return messages
