"""Corruption detector — inspects one raw export row and reports typed issues.

Pure and side-effect free apart from signal emission: the row passed in is
never mutated. Corruption is reported as data, never raised.
"""

from __future__ import annotations

import logging
import re
import warnings
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

import pandas as pd

from convoclean.pipeline.records import (
    CorruptedRow,
    CorruptionIssue,
    IssueKind,
    Severity,
    row_health,
)
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType

logger = logging.getLogger(__name__)

# Logical field -> known column names across export formats.
FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "messageType": ("messageType", "type", "direction", "message_type", "msg_type", "sent_received"),
    "timestamp": ("timestamp", "date", "time", "datetime", "sent_time", "received_time"),
    "sender": ("sender", "from", "name", "contact", "phone", "number", "name / number"),
    "content": ("content", "message", "text", "body", "msg", "message_content"),
    "recipient": ("recipient", "to", "destination"),
}

LOGICAL_FIELDS = tuple(FIELD_SYNONYMS)

_ENCODING_ARTIFACTS = ("�", "Â", "â€")
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HAS_LETTER = re.compile(r"[A-Za-z]")


def normalize_key(key: Any) -> str:
    """Case- and punctuation-insensitive form of a column name."""
    return re.sub(r"[\s_\-/]", "", str(key).lower())


_NORMALIZED_SYNONYMS: dict[str, frozenset[str]] = {
    logical: frozenset(normalize_key(name) for name in names)
    for logical, names in FIELD_SYNONYMS.items()
}
_ALL_SYNONYMS = frozenset().union(*_NORMALIZED_SYNONYMS.values())


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN from spreadsheet readers
        return True
    return isinstance(value, str) and not value.strip()


def logical_field_of(key: Any) -> str | None:
    """Return the logical field a column name maps to, if any."""
    normalized = normalize_key(key)
    for logical, names in _NORMALIZED_SYNONYMS.items():
        if normalized in names:
            return logical
    return None


def is_recognized_key(key: Any) -> bool:
    return normalize_key(key) in _ALL_SYNONYMS


def field_key(row: Mapping[str, Any], logical: str) -> str | None:
    """Return the first key in ``row`` holding a non-empty value for ``logical``.

    The exact canonical key wins over every alias, including export columns
    such as ``Content`` that only differ from it by case. Remaining synonyms
    are tried in declared order.
    """
    if not is_empty(row.get(logical)):
        return logical
    for name in FIELD_SYNONYMS[logical]:
        target = normalize_key(name)
        for key, value in row.items():
            if normalize_key(key) == target and not is_empty(value):
                return key
    return None


def field_value(row: Mapping[str, Any], logical: str) -> Any:
    key = field_key(row, logical)
    return row[key] if key is not None else None


def has_field(row: Mapping[str, Any], logical: str) -> bool:
    return field_key(row, logical) is not None


def parse_timestamp(value: Any) -> datetime | None:
    """Lenient native date parsing, the way spreadsheet exports are read.

    Naive results are taken as UTC; aware results are converted to UTC.
    """
    if is_empty(value) or isinstance(value, bool):
        return None
    if not isinstance(value, (str, int, float, date)):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(value, errors="coerce")
        except (TypeError, ValueError, OverflowError):
            return None
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.tz_localize("UTC")
    else:
        parsed = parsed.tz_convert("UTC")
    return parsed.to_pydatetime()


def is_parseable_timestamp(value: Any) -> bool:
    return parse_timestamp(value) is not None


def has_encoding_issues(text: str) -> bool:
    return any(marker in text for marker in _ENCODING_ARTIFACTS) or bool(
        _CONTROL_CHARS.search(text)
    )


class CorruptionDetector:
    """Classifies a raw row against the known export field layout."""

    def __init__(self, signals: SignalEmitter | None = None) -> None:
        self._signals = signals

    def detect(self, row: Any) -> list[CorruptionIssue]:
        """Return the issues found in ``row``. Never raises, never mutates."""
        if not isinstance(row, Mapping):
            return [
                CorruptionIssue(
                    kind=IssueKind.STRUCTURE_MISMATCH,
                    field="entire_row",
                    severity=Severity.CRITICAL,
                    description="Row is not a field-name/value mapping",
                )
            ]

        issues: list[CorruptionIssue] = []

        if not has_field(row, "messageType"):
            issues.append(
                CorruptionIssue(
                    kind=IssueKind.MISSING_FIELD,
                    field="messageType",
                    severity=Severity.HIGH,
                    description="Message type/direction field missing",
                    suggested_fix="Infer direction from neighbouring rows",
                )
            )
        if not has_field(row, "timestamp"):
            issues.append(
                CorruptionIssue(
                    kind=IssueKind.MISSING_FIELD,
                    field="timestamp",
                    severity=Severity.HIGH,
                    description="Timestamp field missing",
                    suggested_fix="Reconstruct from timestamp-like fragments",
                )
            )
        if not has_field(row, "content"):
            issues.append(
                CorruptionIssue(
                    kind=IssueKind.MISSING_FIELD,
                    field="content",
                    severity=Severity.CRITICAL,
                    description="Message content field missing",
                )
            )

        if self._looks_fragmented(row):
            issues.append(
                CorruptionIssue(
                    kind=IssueKind.FRAGMENTED_DATA,
                    field="content",
                    severity=Severity.MEDIUM,
                    description="Message content may be fragmented across cells",
                    suggested_fix="Reassemble text fragments into content",
                )
            )

        timestamp = field_value(row, "timestamp")
        if timestamp is not None and not is_parseable_timestamp(timestamp):
            issues.append(
                CorruptionIssue(
                    kind=IssueKind.MALFORMED_TIMESTAMP,
                    field="timestamp",
                    severity=Severity.MEDIUM,
                    description="Timestamp format is invalid or corrupted",
                    suggested_fix="Reconstruct from timestamp-like fragments",
                )
            )

        for key, value in row.items():
            if isinstance(value, str) and has_encoding_issues(value):
                issues.append(
                    CorruptionIssue(
                        kind=IssueKind.ENCODING_ERROR,
                        field=str(key),
                        severity=Severity.LOW,
                        description="Text contains encoding artifacts",
                    )
                )

        return issues

    def inspect(self, row: Any, row_index: int) -> CorruptedRow:
        """Bundle a row with its issues and health score."""
        issues = self.detect(row)
        # Headerless sheet reads key cells by column position
        original = {str(k): v for k, v in row.items()} if isinstance(row, Mapping) else {}
        corrupted = CorruptedRow(
            row_index=row_index,
            original_data=original,
            issues=issues,
            health=row_health(issues),
        )
        if issues and self._signals is not None:
            self._signals.emit(
                SignalType.ISSUE_DETECTED,
                {
                    "row_index": row_index,
                    "issues": [f"{i.kind.value}:{i.field}" for i in issues],
                    "health": corrupted.health,
                },
            )
        return corrupted

    @staticmethod
    def _looks_fragmented(row: Mapping[str, Any]) -> bool:
        """Short stray text outside recognised columns suggests split content.

        Every recognised column is exempt, not only content: short values
        such as "Sent" or "Me" in the type and sender columns would
        otherwise flag clean rows.
        """
        non_empty = [(k, v) for k, v in row.items() if not is_empty(v)]
        if len(non_empty) <= 2:
            return False
        return any(
            isinstance(value, str)
            and len(value.strip()) < 10
            and _HAS_LETTER.search(value)
            and not is_recognized_key(key)
            for key, value in non_empty
        )
