"""Recovery strategy definitions — the ordered repair routines applied per row.

Each strategy takes the accumulated ``recovered_data`` and returns either a
new dict (it changed something) or None (nothing to do). Strategies never
mutate their input.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from convoclean.pipeline.detector import (
    FIELD_SYNONYMS,
    LOGICAL_FIELDS,
    field_value,
    has_field,
    is_empty,
    normalize_key,
)
from convoclean.pipeline.records import CorruptedRow, IssueKind, RawRow
from convoclean.timestamps.reconstructor import TimestampReconstructor


class Strategy(str, Enum):
    """All recovery strategies, in the order they are applied."""

    FIELD_MAPPING = "field_mapping"
    FRAGMENT_RECONSTRUCTION = "fragment_reconstruction"
    TIMESTAMP_RECOVERY = "timestamp_recovery"
    CONTEXTUAL_RECOVERY = "contextual_recovery"
    STRUCTURE_RECOVERY = "structure_recovery"


STRATEGY_DETAILS: dict[Strategy, str] = {
    Strategy.FIELD_MAPPING: "Applied field name mapping",
    Strategy.FRAGMENT_RECONSTRUCTION: "Reconstructed fragmented content",
    Strategy.TIMESTAMP_RECOVERY: "Recovered timestamp information",
    Strategy.CONTEXTUAL_RECOVERY: "Used context from surrounding rows",
    Strategy.STRUCTURE_RECOVERY: "Applied positional column layout",
}

# Known positional layouts, best first. Matched only on an exact value count.
STRUCTURE_LAYOUTS: list[tuple[str, tuple[str, ...]]] = [
    ("standard_4col", ("messageType", "timestamp", "sender", "content")),
    ("extended_5col", ("messageType", "timestamp", "sender", "recipient", "content")),
    ("minimal_3col", ("messageType", "timestamp", "content")),
]

# Columns whose values are never message text.
_METADATA_KEYS = frozenset(
    normalize_key(name)
    for logical in ("messageType", "timestamp", "sender", "recipient")
    for name in FIELD_SYNONYMS[logical]
)

# Columns never searched for timestamp fragments.
_NON_TIMESTAMP_KEYS = frozenset(
    normalize_key(name)
    for logical in ("content", "sender", "recipient", "messageType")
    for name in FIELD_SYNONYMS[logical]
)

TIMESTAMP_HINT = re.compile(
    r"\d{1,2}:\d{2}"
    r"|\b(?:mon|tues|wednes|thurs|fri|satur|sun)day\b"
    r"|\b(?:january|february|march|april|may|june|july|august|september|october|november|december)\b"
    r"|\d{4}"
    r"|\b\d{1,2}/\d{1,2}\b"
    r"|\beastern\b"
    r"|\b(?:am|pm)\b",
    re.IGNORECASE,
)

_SENT_PREFIXES = ("sent", "outgoing", "outbox")
_RECEIVED_PREFIXES = ("received", "incoming", "inbox")


@dataclass(frozen=True)
class StrategyContext:
    """Read-only inputs shared by every strategy for one row."""

    row: CorruptedRow
    reconstructor: TimestampReconstructor
    full_dataset: Sequence[Any] | None = None
    context_window: int = 2


StrategyFn = Callable[[RawRow, StrategyContext], "RawRow | None"]


def _whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


def _content_length(data: Mapping[str, Any]) -> int:
    content = field_value(data, "content")
    return len(str(content)) if content is not None else 0


def apply_field_mapping(data: RawRow, ctx: StrategyContext) -> RawRow | None:
    """Copy the first populated synonym into each missing canonical key."""
    recovered = dict(data)
    changed = False
    for logical in LOGICAL_FIELDS:
        if not is_empty(recovered.get(logical)):
            continue
        value = field_value(recovered, logical)
        if value is not None:
            recovered[logical] = value
            changed = True
    return recovered if changed else None


def reconstruct_fragments(data: RawRow, ctx: StrategyContext) -> RawRow | None:
    """Join stray text cells into content when the row was flagged as fragmented."""
    if not any(i.kind is IssueKind.FRAGMENTED_DATA for i in ctx.row.issues):
        return None

    fragments: list[str] = []
    for key, value in data.items():
        if not isinstance(value, str) or normalize_key(key) in _METADATA_KEYS:
            continue
        text = _whitespace(value)
        if len(text) > 5 and text not in fragments:
            fragments.append(text)

    if len(fragments) < 2:
        return None
    combined = " ".join(fragments)
    if len(combined) <= _content_length(data):
        return None
    return {**data, "content": combined}


def recover_timestamp(data: RawRow, ctx: StrategyContext) -> RawRow | None:
    """Hand every timestamp-looking cell to the reconstructor."""
    fragments: list[str] = []
    for key, value in data.items():
        if not isinstance(value, str) or normalize_key(key) in _NON_TIMESTAMP_KEYS:
            continue
        text = value.strip()
        if text and TIMESTAMP_HINT.search(text) and text not in fragments:
            fragments.append(text)

    if not fragments:
        return None
    result = ctx.reconstructor.reconstruct(fragments)
    if not result.success or result.timestamp is None:
        return None
    if data.get("timestamp") == result.timestamp and data.get("date") == result.timestamp:
        return None
    return {**data, "timestamp": result.timestamp, "date": result.timestamp}


def negate_message_type(message_type: Any) -> str | None:
    """Alternation assumption: the reply to a sent message was received."""
    if not isinstance(message_type, str):
        return None
    normalized = message_type.strip().lower()
    if normalized.startswith(_SENT_PREFIXES):
        return "received"
    if normalized.startswith(_RECEIVED_PREFIXES):
        return "sent"
    return None


def apply_contextual_recovery(data: RawRow, ctx: StrategyContext) -> RawRow | None:
    """Infer type and sender from neighbouring original rows."""
    dataset = ctx.full_dataset
    index = ctx.row.row_index
    if not dataset or not 0 <= index < len(dataset) or ctx.context_window < 1:
        return None

    recovered = dict(data)
    changed = False

    if not has_field(recovered, "messageType"):
        for distance in range(1, ctx.context_window + 1):
            inferred = None
            for neighbour in (index - distance, index + distance):
                if 0 <= neighbour < len(dataset) and isinstance(dataset[neighbour], Mapping):
                    inferred = negate_message_type(field_value(dataset[neighbour], "messageType"))
                    if inferred:
                        break
            if inferred:
                recovered["messageType"] = inferred
                changed = True
                break

    if not has_field(recovered, "sender"):
        start = max(0, index - ctx.context_window)
        stop = min(len(dataset), index + ctx.context_window + 1)
        senders: Counter[str] = Counter()
        for neighbour in dataset[start:stop]:
            if isinstance(neighbour, Mapping):
                sender = field_value(neighbour, "sender")
                if isinstance(sender, (str, int, float)):
                    senders[str(sender).strip()] += 1
        if senders:
            recovered["sender"] = senders.most_common(1)[0][0]
            changed = True

    return recovered if changed else None


def _needs_structure(data: Mapping[str, Any]) -> bool:
    return not has_field(data, "content") or not (
        has_field(data, "messageType") or has_field(data, "sender")
    )


def recover_structure(data: RawRow, ctx: StrategyContext) -> RawRow | None:
    """Assign original values to fields by position, as a last resort."""
    if not _needs_structure(data):
        return None

    values = [v for v in ctx.row.original_data.values() if not is_empty(v)]
    for _name, layout in STRUCTURE_LAYOUTS:
        if len(values) != len(layout):
            continue
        recovered = dict(data)
        changed = False
        for field, value in zip(layout, values):
            if is_empty(recovered.get(field)):
                recovered[field] = value
                changed = True
        return recovered if changed else None
    return None


STRATEGIES: list[tuple[Strategy, StrategyFn]] = [
    (Strategy.FIELD_MAPPING, apply_field_mapping),
    (Strategy.FRAGMENT_RECONSTRUCTION, reconstruct_fragments),
    (Strategy.TIMESTAMP_RECOVERY, recover_timestamp),
    (Strategy.CONTEXTUAL_RECOVERY, apply_contextual_recovery),
    (Strategy.STRUCTURE_RECOVERY, recover_structure),
]
