"""Timestamp reconstructor — synthesizes absolute timestamps from fragments.

Exports frequently split one timestamp across several cells or lines
("Monday, July 29, 2025" / "2:10:11 p.m." / "Eastern Standard Time").
Reconstruction runs a fixed cascade:

1. direct    — one fragment matched against the pattern table
2. multiline — every fragment matched, components merged first-writer-wins
3. fuzzy     — scalar extraction from the concatenated text
4. fallback  — nothing recovered; ``success`` is always False

A fallback result may still carry a synthetic timestamp. Callers must check
``success`` before trusting ``timestamp``.
"""

from __future__ import annotations

import logging
import random
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field

from convoclean.config.settings import TimestampConfig
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType
from convoclean.telemetry.errors import ErrorCode, emit_structured_error
from convoclean.timestamps.patterns import (
    MONTH_INDEX,
    MONTH_REGEX,
    PATTERNS,
    PERIOD_REGEX,
    TIMEZONE_OFFSETS,
    TimestampComponents,
    TimestampPattern,
    expand_year,
    month_name,
    normalize_period,
)

logger = logging.getLogger(__name__)

_QUOTES = re.compile(r"^[\"']+|[\"']+$")
_FUZZY_YEAR = re.compile(r"\b((?:19|20)\d{2})\b")
_FUZZY_DAY = re.compile(r"(?<![:\d/])\b([12]?\d|3[01])(?:st|nd|rd|th)?\b(?![:/]\d)")
_FUZZY_TIME = re.compile(r"(\d{1,2}):(\d{2})")
_FUZZY_NUMERIC_DATE = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}|\d{2}))?\b")

Method = Literal["direct", "multiline", "fuzzy", "fallback"]

DIRECT_CONFIDENCE = 0.9
FUZZY_CONFIDENCE = 0.6
FALLBACK_CONFIDENCE = 0.1


class TimestampReconstructionResult(BaseModel):
    success: bool
    timestamp: str | None = None
    confidence: float = Field(ge=0.0, le=1.0, default=0.0)
    components: TimestampComponents = Field(default_factory=TimestampComponents)
    method: Method = "fallback"
    original_input: list[str] = Field(default_factory=list)


def split_fragments(raw: Any) -> list[str] | None:
    """Normalize either input form into a list of trimmed, non-empty fragments.

    Returns None when the input has the wrong shape entirely.
    """
    if isinstance(raw, str):
        candidates: list[Any] = re.split(r"\r?\n", raw)
    elif isinstance(raw, (list, tuple)):
        candidates = list(raw)
    else:
        return None
    fragments = []
    for item in candidates:
        if isinstance(item, str) and item.strip():
            fragments.append(_QUOTES.sub("", item.strip()).strip())
    return [f for f in fragments if f]


class TimestampReconstructor:
    """Runs the direct → multiline → fuzzy → fallback cascade."""

    def __init__(
        self,
        config: TimestampConfig | None = None,
        signals: SignalEmitter | None = None,
        patterns: list[TimestampPattern] | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._config = config or TimestampConfig()
        self._signals = signals
        self._patterns = sorted(patterns or PATTERNS, key=lambda p: p.priority, reverse=True)
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def reconstruct(self, raw: Any) -> TimestampReconstructionResult:
        """Reconstruct a timestamp from a multi-line string or a list of fragments."""
        fragments = split_fragments(raw)
        if fragments is None:
            logger.debug("Rejected timestamp input of type %s", type(raw).__name__)
            return TimestampReconstructionResult(success=False, method="fallback")

        result = None
        if len(fragments) == 1:
            result = self._direct(fragments[0])
        if result is None and fragments:
            result = self._multiline(fragments)
        if result is None and fragments:
            result = self._fuzzy(fragments)
        if result is None:
            result = self._fallback(fragments)

        if self._signals is not None:
            self._signals.emit(
                SignalType.TIMESTAMP_RECONSTRUCTED,
                {
                    "method": result.method,
                    "success": result.success,
                    "confidence": result.confidence,
                    "fragments": len(fragments),
                },
            )
        return result

    # --- Strategies ---

    def _direct(self, fragment: str) -> TimestampReconstructionResult | None:
        for pattern in self._patterns:
            match = pattern.regex.search(fragment)
            if not match:
                continue
            assembled = self.assemble(self._extract(pattern, match))
            if assembled is not None:
                timestamp, components = assembled
                logger.debug("Direct timestamp match with pattern %s", pattern.name)
                return TimestampReconstructionResult(
                    success=True,
                    timestamp=timestamp,
                    confidence=DIRECT_CONFIDENCE,
                    components=components,
                    method="direct",
                    original_input=[fragment],
                )
        return None

    def _multiline(self, fragments: list[str]) -> TimestampReconstructionResult | None:
        merged: dict[str, Any] = {}
        complete_matches = 0

        for fragment in fragments:
            for pattern in self._patterns:
                match = pattern.regex.search(fragment)
                if not match:
                    continue
                for key, value in self._extract(pattern, match).items():
                    merged.setdefault(key, value)
                if pattern.tier == "complete":
                    complete_matches += 1
                break

        components = TimestampComponents(**merged)
        if components.month is None or components.day is None:
            return None
        assembled = self.assemble(components)
        if assembled is None:
            return None

        timestamp, normalized = assembled
        return TimestampReconstructionResult(
            success=True,
            timestamp=timestamp,
            confidence=self._multiline_confidence(components, complete_matches),
            components=normalized,
            method="multiline",
            original_input=fragments,
        )

    def _fuzzy(self, fragments: list[str]) -> TimestampReconstructionResult | None:
        text = " ".join(fragments).lower()
        found: dict[str, Any] = {}

        year = _FUZZY_YEAR.search(text)
        if year:
            found["year"] = int(year.group(1))

        month = MONTH_REGEX.search(text)
        if month:
            found["month"] = month.group(1)
            day = _FUZZY_DAY.search(text)
            if day and 1 <= int(day.group(1)) <= 31:
                found["day"] = int(day.group(1))
        else:
            numeric = _FUZZY_NUMERIC_DATE.search(text)
            if numeric:
                found.update(self._numeric_date(numeric))

        time = _FUZZY_TIME.search(text)
        if time:
            found["hours"] = int(time.group(1))
            found["minutes"] = int(time.group(2))
            period = PERIOD_REGEX.search(text)
            if period:
                found["period"] = normalize_period(period.group(1))

        components = TimestampComponents(**found)
        if components.month is None or components.day is None:
            return None
        assembled = self.assemble(components)
        if assembled is None:
            return None

        timestamp, normalized = assembled
        return TimestampReconstructionResult(
            success=True,
            timestamp=timestamp,
            confidence=FUZZY_CONFIDENCE,
            components=normalized,
            method="fuzzy",
            original_input=fragments,
        )

    def _fallback(self, fragments: list[str]) -> TimestampReconstructionResult:
        """Last resort. Never successful, optionally synthesizes a recent instant."""
        timestamp = None
        if self._config.synthesize_fallback:
            now = self._clock()
            window = timedelta(days=self._config.fallback_window_days)
            offset = self._rng.uniform(0, window.total_seconds())
            timestamp = (now - window + timedelta(seconds=offset)).isoformat()
        logger.debug("Timestamp fallback used for %d fragment(s)", len(fragments))
        return TimestampReconstructionResult(
            success=False,
            timestamp=timestamp,
            confidence=FALLBACK_CONFIDENCE,
            method="fallback",
            original_input=fragments,
        )

    # --- Assembly ---

    def assemble(
        self, components: TimestampComponents | dict[str, Any]
    ) -> tuple[str, TimestampComponents] | None:
        """Build an ISO-8601 timestamp, or None when any component is out of range.

        Returns the timestamp together with the normalized components
        (24-hour clock, defaults filled in).
        """
        if isinstance(components, dict):
            components = TimestampComponents(**components)

        year = components.year if components.year is not None else self._clock().year
        month = 0
        if components.month is not None:
            resolved = MONTH_INDEX.get(components.month.lower().rstrip("."))
            if resolved is None:
                return None
            month = resolved
        day = components.day if components.day is not None else 1
        hours = components.hours if components.hours is not None else 12
        minutes = components.minutes if components.minutes is not None else 0
        seconds = components.seconds if components.seconds is not None else 0

        if components.period == "PM" and hours < 12:
            hours += 12
        elif components.period == "AM" and hours == 12:
            hours = 0

        if not 1900 <= year <= 2100:
            return None
        if not 0 <= month <= 11 or not 1 <= day <= 31:
            return None
        if not 0 <= hours <= 23 or not 0 <= minutes <= 59 or not 0 <= seconds <= 59:
            return None

        tz = timezone.utc
        if components.timezone:
            offset = TIMEZONE_OFFSETS.get(components.timezone.lower())
            if offset is not None:
                tz = timezone(timedelta(hours=offset))

        try:
            moment = datetime(year, month + 1, day, hours, minutes, seconds, tzinfo=tz)
        except ValueError as exc:
            # Calendar-invalid, e.g. February 30
            emit_structured_error(
                logger,
                code=ErrorCode.TIMESTAMP_ASSEMBLY_FAILED,
                message=str(exc),
                suppressed=True,
                run_id=self._signals.run_id if self._signals is not None else None,
                phase="assemble",
                details={"year": year, "month": month + 1, "day": day},
            )
            return None

        normalized = components.model_copy(
            update={
                "month": month_name(month + 1),
                "year": year,
                "day": day,
                "hours": hours,
                "minutes": minutes,
                "seconds": seconds,
            }
        )
        return moment.isoformat(), normalized

    # --- Helpers ---

    @staticmethod
    def _extract(pattern: TimestampPattern, match: re.Match) -> dict[str, Any]:
        return {k: v for k, v in pattern.extractor(match).items() if v is not None}

    @staticmethod
    def _numeric_date(match: re.Match) -> dict[str, Any]:
        first, second = int(match.group(1)), int(match.group(2))
        # Month-first unless that cannot be a month, then day-first.
        month, day = (first, second) if first <= 12 else (second, first)
        found: dict[str, Any] = {}
        name = month_name(month)
        if name is None or not 1 <= day <= 31:
            return found
        found["month"] = name
        found["day"] = day
        if match.group(3):
            found["year"] = expand_year(match.group(3))
        return found

    @staticmethod
    def _multiline_confidence(components: TimestampComponents, complete_matches: int) -> float:
        confidence = 0.0
        if components.year is not None:
            confidence += 0.25
        if components.month is not None:
            confidence += 0.25
        if components.day is not None:
            confidence += 0.25
        if components.hours is not None:
            confidence += 0.15
        if components.minutes is not None:
            confidence += 0.1
        confidence += 0.1 * complete_matches
        return min(1.0, round(confidence, 6))
