"""Timestamp pattern table — ordered matcher/extractor records.

Each record pairs a compiled regex with an extractor that turns a match into
partial ``TimestampComponents``. The table is evaluated by descending
priority; ``tier="complete"`` marks patterns that capture a full date and
time in one go.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Literal

from pydantic import BaseModel

MONTH_INDEX: dict[str, int] = {
    "january": 0, "jan": 0,
    "february": 1, "feb": 1,
    "march": 2, "mar": 2,
    "april": 3, "apr": 3,
    "may": 4,
    "june": 5, "jun": 5,
    "july": 6, "jul": 6,
    "august": 7, "aug": 7,
    "september": 8, "sep": 8, "sept": 8,
    "october": 9, "oct": 9,
    "november": 10, "nov": 10,
    "december": 11, "dec": 11,
}

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

# Hours offset from UTC. Region names resolve to standard time.
TIMEZONE_OFFSETS: dict[str, int] = {
    "utc": 0, "gmt": 0, "z": 0,
    "est": -5, "edt": -4, "et": -5, "eastern": -5,
    "cst": -6, "cdt": -5, "ct": -6, "central": -6,
    "mst": -7, "mdt": -6, "mt": -7, "mountain": -7,
    "pst": -8, "pdt": -7, "pt": -8, "pacific": -8,
}

_MONTH = (
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b\.?"
)
_WEEKDAY = (
    r"\b(mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:r(?:s(?:day)?)?)?"
    r"|fri(?:day)?|sat(?:urday)?|sun(?:day)?)\b\.?"
)
_ORDINAL = r"(?:st|nd|rd|th)?"
_TIME = r"(\d{1,2}):(\d{2})(?::(\d{2}))?"
_PERIOD = r"(a\.?\s?m\.?|p\.?\s?m\.?)(?![a-z])"
_ZONE = r"(" + "|".join(sorted(TIMEZONE_OFFSETS, key=len, reverse=True)) + r")\b"
_OPT_PERIOD = r"(?:" + _PERIOD + r")?"
_OPT_ZONE = r"(?:" + _ZONE + r")?"


class TimestampComponents(BaseModel):
    """Partial timestamp structure merged across fragments before assembly."""

    day_of_week: str | None = None
    month: str | None = None
    day: int | None = None
    year: int | None = None
    hours: int | None = None
    minutes: int | None = None
    seconds: int | None = None
    period: Literal["AM", "PM"] | None = None
    timezone: str | None = None

    def populated(self) -> dict[str, object]:
        return self.model_dump(exclude_none=True)


Extractor = Callable[[re.Match], dict]


@dataclass(frozen=True)
class TimestampPattern:
    name: str
    regex: re.Pattern
    extractor: Extractor
    priority: int
    tier: Literal["complete", "partial"] = "partial"


def _int(value: str | None) -> int | None:
    return int(value) if value else None


def normalize_period(value: str | None) -> str | None:
    if not value:
        return None
    return re.sub(r"[.\s]", "", value).upper()


def month_name(index: int) -> str | None:
    """Month name for a 1-based month number, or None when out of range."""
    if 1 <= index <= 12:
        return MONTH_NAMES[index - 1]
    return None


def expand_year(value: str) -> int:
    """Two-digit years pivot at 50: 24 -> 2024, 87 -> 1987."""
    year = int(value)
    if len(value) <= 2:
        return 2000 + year if year < 50 else 1900 + year
    return year


def _time(m: re.Match, start: int) -> dict:
    return {
        "hours": int(m.group(start)),
        "minutes": int(m.group(start + 1)),
        "seconds": _int(m.group(start + 2)),
    }


def _numeric_month(value: str) -> str:
    # Out-of-range month numbers keep their digits so assembly rejects them.
    return month_name(int(value)) or value


PATTERNS: list[TimestampPattern] = [
    TimestampPattern(
        name="Complete Standard",
        regex=re.compile(
            _WEEKDAY + r",?\s+" + _MONTH + r"\s+(\d{1,2})" + _ORDINAL + r",?\s+(\d{4}),?\s+"
            + _TIME + r"\s*" + _OPT_PERIOD + r"\s*" + _OPT_ZONE,
            re.IGNORECASE,
        ),
        extractor=lambda m: {
            "day_of_week": m.group(1),
            "month": m.group(2),
            "day": int(m.group(3)),
            "year": int(m.group(4)),
            **_time(m, 5),
            "period": normalize_period(m.group(8)),
            "timezone": m.group(9),
        },
        priority=100,
        tier="complete",
    ),
    TimestampPattern(
        name="Month Date Year Time",
        regex=re.compile(
            _MONTH + r"\s+(\d{1,2})" + _ORDINAL + r",?\s+(\d{4}),?\s+(?:at\s+)?"
            + _TIME + r"\s*" + _OPT_PERIOD + r"\s*" + _OPT_ZONE,
            re.IGNORECASE,
        ),
        extractor=lambda m: {
            "month": m.group(1),
            "day": int(m.group(2)),
            "year": int(m.group(3)),
            **_time(m, 4),
            "period": normalize_period(m.group(7)),
            "timezone": m.group(8),
        },
        priority=95,
        tier="complete",
    ),
    TimestampPattern(
        name="ISO Standard",
        regex=re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})[T\s]" + _TIME + r"(Z)?", re.IGNORECASE),
        extractor=lambda m: {
            "year": int(m.group(1)),
            "month": _numeric_month(m.group(2)),
            "day": int(m.group(3)),
            **_time(m, 4),
            "timezone": m.group(7),
        },
        priority=90,
        tier="complete",
    ),
    TimestampPattern(
        name="Numeric Date Time",
        regex=re.compile(
            r"\b(\d{1,2})/(\d{1,2})/(\d{4}|\d{2}),?\s+" + _TIME + r"\s*" + _OPT_PERIOD,
            re.IGNORECASE,
        ),
        extractor=lambda m: {
            "month": _numeric_month(m.group(1)),
            "day": int(m.group(2)),
            "year": expand_year(m.group(3)),
            **_time(m, 4),
            "period": normalize_period(m.group(7)),
        },
        priority=85,
        tier="complete",
    ),
    TimestampPattern(
        name="Day Month Date Year",
        regex=re.compile(
            _WEEKDAY + r",?\s+" + _MONTH + r"\s+(\d{1,2})" + _ORDINAL + r",?\s+(\d{4})",
            re.IGNORECASE,
        ),
        extractor=lambda m: {
            "day_of_week": m.group(1),
            "month": m.group(2),
            "day": int(m.group(3)),
            "year": int(m.group(4)),
        },
        priority=80,
    ),
    TimestampPattern(
        name="Month Date Year",
        regex=re.compile(_MONTH + r"\s+(\d{1,2})" + _ORDINAL + r",?\s+(\d{4})\b", re.IGNORECASE),
        extractor=lambda m: {
            "month": m.group(1),
            "day": int(m.group(2)),
            "year": int(m.group(3)),
        },
        priority=75,
    ),
    TimestampPattern(
        name="ISO Date",
        regex=re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b"),
        extractor=lambda m: {
            "year": int(m.group(1)),
            "month": _numeric_month(m.group(2)),
            "day": int(m.group(3)),
        },
        priority=74,
    ),
    TimestampPattern(
        name="Numeric Date",
        regex=re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})\b"),
        extractor=lambda m: {
            "month": _numeric_month(m.group(1)),
            "day": int(m.group(2)),
            "year": expand_year(m.group(3)),
        },
        priority=72,
    ),
    TimestampPattern(
        name="Day Month Date",
        regex=re.compile(_WEEKDAY + r",?\s+" + _MONTH + r"\s+(\d{1,2})" + _ORDINAL + r"\b", re.IGNORECASE),
        extractor=lambda m: {
            "day_of_week": m.group(1),
            "month": m.group(2),
            "day": int(m.group(3)),
        },
        priority=70,
    ),
    TimestampPattern(
        name="Month Date",
        regex=re.compile(_MONTH + r"\s+(\d{1,2})" + _ORDINAL + r"\b(?!:)", re.IGNORECASE),
        extractor=lambda m: {"month": m.group(1), "day": int(m.group(2))},
        priority=65,
    ),
    TimestampPattern(
        name="Time with Period",
        regex=re.compile(r"\b" + _TIME + r"\s*" + _PERIOD, re.IGNORECASE),
        extractor=lambda m: {**_time(m, 1), "period": normalize_period(m.group(4))},
        priority=60,
    ),
    TimestampPattern(
        name="Time Only",
        regex=re.compile(r"\b" + _TIME + r"\b"),
        extractor=lambda m: _time(m, 1),
        priority=50,
    ),
    TimestampPattern(
        name="Year Only",
        regex=re.compile(r"^((?:19|20)\d{2})$"),
        extractor=lambda m: {"year": int(m.group(1))},
        priority=30,
    ),
    TimestampPattern(
        name="Month Only",
        regex=re.compile(r"^" + _MONTH + r",?$", re.IGNORECASE),
        extractor=lambda m: {"month": m.group(1)},
        priority=25,
    ),
    TimestampPattern(
        name="Day Only",
        regex=re.compile(r"^(0?[1-9]|[12]\d|3[01])" + _ORDINAL + r",?$", re.IGNORECASE),
        extractor=lambda m: {"day": int(m.group(1))},
        priority=22,
    ),
    TimestampPattern(
        name="Day of Week Only",
        regex=re.compile(r"^" + _WEEKDAY + r",?$", re.IGNORECASE),
        extractor=lambda m: {"day_of_week": m.group(1)},
        priority=20,
    ),
    TimestampPattern(
        name="Timezone Only",
        regex=re.compile(r"^" + _ZONE + r"(?:\s+(?:standard|daylight)\s+time)?$", re.IGNORECASE),
        extractor=lambda m: {"timezone": m.group(1)},
        priority=15,
    ),
]

PATTERNS.sort(key=lambda p: p.priority, reverse=True)

MONTH_REGEX = re.compile(_MONTH, re.IGNORECASE)
PERIOD_REGEX = re.compile(r"\b" + _PERIOD, re.IGNORECASE)
