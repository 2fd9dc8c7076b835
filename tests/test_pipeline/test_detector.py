"""Tests for corruption detection on raw export rows."""

import pytest

from convoclean.pipeline.detector import (
    CorruptionDetector,
    field_value,
    has_encoding_issues,
    has_field,
    is_parseable_timestamp,
    logical_field_of,
    normalize_key,
    parse_timestamp,
)
from convoclean.pipeline.records import IssueKind, Severity
from convoclean.signals.emitter import SignalEmitter
from convoclean.signals.types import SignalType


@pytest.fixture
def detector():
    return CorruptionDetector()


@pytest.fixture
def clean_row():
    return {
        "Type": "Sent",
        "Date": "2024-03-15 10:30",
        "Name / Number": "Me",
        "Content": "On my way now",
    }


def kinds(issues):
    return [(i.kind, i.field) for i in issues]


class TestFieldLookup:
    def test_normalize_key(self):
        assert normalize_key("Name / Number") == "namenumber"
        assert normalize_key("message_type") == "messagetype"
        assert normalize_key(" Sent-Time ") == "senttime"

    def test_logical_field_of(self):
        assert logical_field_of("MESSAGE TYPE") == "messageType"
        assert logical_field_of("Body") == "content"
        assert logical_field_of("Name/Number") == "sender"
        assert logical_field_of("notes") is None

    def test_canonical_key_wins_over_alias(self):
        row = {"message": "alias", "content": "canonical"}
        assert field_value(row, "content") == "canonical"

    def test_canonical_key_wins_over_export_column(self):
        row = {"Content": "Hey are", "Timestamp": "Friday ??", "content": "Hey are you free"}
        row["timestamp"] = "2024-03-15T12:00:00+00:00"
        assert field_value(row, "content") == "Hey are you free"
        assert field_value(row, "timestamp") == "2024-03-15T12:00:00+00:00"

    def test_blank_canonical_key_falls_back_to_export_column(self):
        row = {"Timestamp": "2024-03-15", "timestamp": ""}
        assert field_value(row, "timestamp") == "2024-03-15"

    def test_blank_values_are_not_present(self):
        row = {"type": "   ", "direction": "Received"}
        assert field_value(row, "messageType") == "Received"
        assert not has_field({"type": ""}, "messageType")
        assert not has_field({"type": None}, "messageType")
        assert not has_field({"type": float("nan")}, "messageType")


class TestTimestampParsing:
    def test_parseable_values(self):
        assert is_parseable_timestamp("2024-03-15 10:30")
        assert is_parseable_timestamp("March 15, 2024")

    def test_unparseable_values(self):
        assert not is_parseable_timestamp("gibberish")
        assert not is_parseable_timestamp("")
        assert not is_parseable_timestamp(None)
        assert not is_parseable_timestamp(True)
        assert not is_parseable_timestamp({"nested": 1})

    def test_parse_returns_utc(self):
        parsed = parse_timestamp("2024-03-15T10:30:00-05:00")
        assert parsed.utcoffset().total_seconds() == 0
        assert parsed.hour == 15

    def test_naive_values_are_taken_as_utc(self):
        parsed = parse_timestamp("2024-03-15 10:30")
        assert parsed.tzinfo is not None
        assert parsed.hour == 10


class TestEncodingIssues:
    def test_mojibake_detected(self):
        assert has_encoding_issues("Itâ€™s fine")
        assert has_encoding_issues("Price Â£5")
        assert has_encoding_issues("broken � char")
        assert has_encoding_issues("bell\x07")

    def test_ordinary_whitespace_is_not_an_encoding_issue(self):
        assert not has_encoding_issues("line one\nline two\ttabbed\r\n")


class TestCorruptionDetector:
    def test_clean_row_has_no_issues(self, detector, clean_row):
        assert detector.detect(clean_row) == []

    def test_content_and_valid_timestamp_never_reported_missing(self, detector):
        rows = [
            {"content": "hello there", "timestamp": "2024-01-01T08:00:00"},
            {"Message": "ok", "Date": "3/15/2024"},
            {"Body": "text", "Sent_Time": "2024-03-15 10:30", "junk": "x"},
        ]
        for row in rows:
            missing = {
                i.field for i in detector.detect(row) if i.kind == IssueKind.MISSING_FIELD
            }
            assert "content" not in missing
            assert "timestamp" not in missing

    def test_missing_fields_and_severity(self, detector):
        issues = detector.detect({"sender": "Bob"})
        found = {(i.field, i.severity) for i in issues if i.kind == IssueKind.MISSING_FIELD}
        assert found == {
            ("messageType", Severity.HIGH),
            ("timestamp", Severity.HIGH),
            ("content", Severity.CRITICAL),
        }

    def test_empty_values_count_as_missing(self, detector, clean_row):
        row = {**clean_row, "Type": ""}
        assert (IssueKind.MISSING_FIELD, "messageType") in kinds(detector.detect(row))

    def test_fragmented_data(self, detector, clean_row):
        row = {**clean_row, "Column5": "tomorrow"}
        assert (IssueKind.FRAGMENTED_DATA, "content") in kinds(detector.detect(row))

    def test_short_recognized_values_are_not_fragments(self, detector, clean_row):
        assert all(
            i.kind != IssueKind.FRAGMENTED_DATA for i in detector.detect(clean_row)
        )

    def test_malformed_timestamp(self, detector, clean_row):
        row = {**clean_row, "Date": "sometime last week"}
        issues = detector.detect(row)
        assert (IssueKind.MALFORMED_TIMESTAMP, "timestamp") in kinds(issues)
        assert (IssueKind.MISSING_FIELD, "timestamp") not in kinds(issues)

    def test_encoding_error_per_field(self, detector, clean_row):
        row = {**clean_row, "Content": "Itâ€™s done", "Name / Number": "Jos�"}
        encoding = [i for i in detector.detect(row) if i.kind == IssueKind.ENCODING_ERROR]
        assert {i.field for i in encoding} == {"Content", "Name / Number"}
        assert all(i.severity == Severity.LOW for i in encoding)

    @pytest.mark.parametrize("row", ["a string", None, 42, ["Sent", "hi"]])
    def test_non_mapping_row(self, detector, row):
        issues = detector.detect(row)
        assert len(issues) == 1
        assert issues[0].kind == IssueKind.STRUCTURE_MISMATCH
        assert issues[0].severity == Severity.CRITICAL
        assert issues[0].field == "entire_row"

    def test_detect_does_not_mutate(self, detector, clean_row):
        row = {**clean_row, "Type": ""}
        snapshot = dict(row)
        detector.detect(row)
        assert row == snapshot

    def test_inspect_bundles_health(self, detector):
        corrupted = detector.inspect({"type": "Sent", "date": "2024-03-15"}, 7)
        assert corrupted.row_index == 7
        assert corrupted.health == pytest.approx(0.6)
        assert corrupted.original_data == {"type": "Sent", "date": "2024-03-15"}

    def test_inspect_positional_keys(self, detector):
        corrupted = detector.inspect({0: "Sent", 1: "2024-03-15", 2: "hello"}, 0)
        assert corrupted.original_data == {"0": "Sent", "1": "2024-03-15", "2": "hello"}
        assert (IssueKind.MISSING_FIELD, "content") in kinds(corrupted.issues)

    def test_inspect_emits_issue_signal(self, clean_row):
        signals = SignalEmitter(run_id="run_detect")
        detector = CorruptionDetector(signals=signals)
        detector.inspect(clean_row, 0)
        detector.inspect({"sender": "Bob"}, 1)
        emitted = signals.of_type(SignalType.ISSUE_DETECTED)
        assert len(emitted) == 1
        assert emitted[0].payload["row_index"] == 1
