"""Tests for the timestamp pattern table."""

import pytest

from convoclean.timestamps.patterns import (
    MONTH_INDEX,
    PATTERNS,
    TimestampComponents,
    expand_year,
    month_name,
    normalize_period,
)


def first_match(text):
    for pattern in PATTERNS:
        match = pattern.regex.search(text)
        if match:
            return pattern, pattern.extractor(match)
    return None, None


class TestPatternTable:
    def test_sorted_by_descending_priority(self):
        priorities = [p.priority for p in PATTERNS]
        assert priorities == sorted(priorities, reverse=True)

    def test_names_are_unique(self):
        assert len({p.name for p in PATTERNS}) == len(PATTERNS)

    def test_complete_standard(self):
        pattern, found = first_match("Monday, July 29, 2025 2:10:11 p.m. EST")
        assert pattern.name == "Complete Standard"
        assert pattern.tier == "complete"
        assert found["month"] == "July"
        assert found["day"] == 29
        assert found["year"] == 2025
        assert (found["hours"], found["minutes"], found["seconds"]) == (2, 10, 11)
        assert found["period"] == "PM"
        assert found["timezone"] == "EST"

    def test_iso_standard(self):
        pattern, found = first_match("2024-03-15T10:30:00Z")
        assert pattern.name == "ISO Standard"
        assert found["month"] == "March"
        assert found["timezone"] == "Z"

    def test_numeric_date_with_two_digit_year(self):
        pattern, found = first_match("3/15/24")
        assert pattern.name == "Numeric Date"
        assert found["year"] == 2024

    @pytest.mark.parametrize(
        "text, name",
        [
            ("2:10:11 p.m.", "Time with Period"),
            ("14:05", "Time Only"),
            ("2024", "Year Only"),
            ("March", "Month Only"),
            ("15th", "Day Only"),
            ("Wednesday", "Day of Week Only"),
            ("Eastern Standard Time", "Timezone Only"),
            ("March 15", "Month Date"),
        ],
    )
    def test_single_component_patterns(self, text, name):
        pattern, _ = first_match(text)
        assert pattern.name == name

    def test_month_name_not_matched_inside_words(self):
        pattern, _ = first_match("marching orders")
        assert pattern is None

    def test_weekday_not_matched_inside_words(self):
        pattern, _ = first_match("Sunny")
        assert pattern is None


class TestHelpers:
    def test_month_index_covers_abbreviations(self):
        assert MONTH_INDEX["sept"] == 8
        assert MONTH_INDEX["dec"] == 11
        assert MONTH_INDEX["may"] == 4

    def test_month_name(self):
        assert month_name(1) == "January"
        assert month_name(12) == "December"
        assert month_name(13) is None

    def test_expand_year(self):
        assert expand_year("24") == 2024
        assert expand_year("87") == 1987
        assert expand_year("2001") == 2001

    def test_normalize_period(self):
        assert normalize_period("p.m.") == "PM"
        assert normalize_period("a m") == "AM"
        assert normalize_period(None) is None

    def test_components_populated(self):
        components = TimestampComponents(month="March", day=15)
        assert components.populated() == {"month": "March", "day": 15}
