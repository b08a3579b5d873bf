"""Tests for condition evaluation."""

import pytest

from mail_intelligence.conditions import compile_pattern, evaluate, matches_all
from mail_intelligence.errors import PatternError
from mail_intelligence.models import (
    Attachment,
    Condition,
    ConditionField,
    ConditionOperator,
    Message,
)


def cond(field: str, operator: str, value: str = "") -> Condition:
    return Condition.from_dict({"field": field, "operator": operator, "value": value})


@pytest.fixture
def message() -> Message:
    return Message(
        id="m1",
        sender="Alerts@Bank.com",
        to=["me@example.com", "partner@example.com"],
        subject="Your Statement is ready",
        snippet="Balance: $1,204.00",
        date="2026-03-15T09:30:00Z",
        category="financial",
        size=2048,
    )


class TestTextOperators:
    def test_contains_is_case_insensitive(self, message):
        assert evaluate(message, cond("from", "contains", "@BANK.com"))
        assert not evaluate(message, cond("from", "contains", "@shop.com"))

    def test_to_joins_recipients(self, message):
        assert evaluate(message, cond("to", "contains", "partner@"))

    def test_equals(self, message):
        assert evaluate(message, cond("category", "equals", "Financial"))
        assert not evaluate(message, cond("category", "equals", "fin"))

    def test_starts_and_ends_with(self, message):
        assert evaluate(message, cond("subject", "startsWith", "your statement"))
        assert evaluate(message, cond("subject", "endsWith", "READY"))
        assert not evaluate(message, cond("subject", "startsWith", "statement"))

    def test_body_falls_back_to_snippet(self, message):
        assert evaluate(message, cond("body", "contains", "balance"))
        message.body = "Full body text"
        assert not evaluate(message, cond("body", "contains", "balance"))


class TestRegex:
    def test_regex_matches(self, message):
        assert evaluate(message, cond("subject", "regex", r"statement\s+is"))

    def test_malformed_regex_never_matches(self, message, caplog):
        assert evaluate(message, cond("subject", "regex", "([")) is False
        assert "condition treated as not matching" in caplog.text

    def test_compile_pattern_raises_pattern_error(self):
        with pytest.raises(PatternError) as exc_info:
            compile_pattern("([")
        assert exc_info.value.pattern == "(["


class TestDates:
    def test_before_and_after(self, message):
        assert evaluate(message, cond("date", "before", "2026-04-01T00:00:00Z"))
        assert evaluate(message, cond("date", "after", "2026-03-01"))
        assert not evaluate(message, cond("date", "after", "2026-04-01T00:00:00Z"))

    def test_offsets_compare_by_instant(self, message):
        # 10:00+02:00 is 08:00 UTC, before the message's 09:30 UTC
        assert evaluate(message, cond("date", "after", "2026-03-15T10:00:00+02:00"))

    def test_unparseable_dates_compare_as_text(self, message):
        assert evaluate(message, cond("date", "before", "zzz"))


class TestNumbers:
    def test_size_comparisons(self, message):
        assert evaluate(message, cond("size", "greaterThan", "1024"))
        assert evaluate(message, cond("size", "lessThan", "4096"))
        assert not evaluate(message, cond("size", "greaterThan", "2048"))

    def test_non_numeric_value_is_false(self, message):
        assert not evaluate(message, cond("size", "greaterThan", "big"))
        assert not evaluate(message, cond("size", "lessThan", "big"))

    def test_empty_value_counts_as_zero(self, message):
        assert evaluate(message, cond("size", "greaterThan", ""))


def test_has_attachment(message):
    assert evaluate(message, cond("hasAttachment", "equals", "false"))
    message.attachments = [Attachment(id="a1", name="report.pdf", size=10)]
    assert evaluate(message, cond("hasAttachment", "equals", "true"))


def test_unknown_field_and_operator_are_preserved_and_false(message):
    condition = cond("priority", "contains", "x")
    assert condition.field is ConditionField.UNKNOWN
    assert condition.to_dict()["field"] == "priority"
    assert not evaluate(message, condition)

    condition = cond("subject", "fuzzy", "statement")
    assert condition.operator is ConditionOperator.UNKNOWN
    assert condition.to_dict()["operator"] == "fuzzy"
    assert not evaluate(message, condition)


def test_matches_all(message):
    assert matches_all(message, [])
    assert matches_all(
        message, [cond("from", "contains", "bank"), cond("subject", "contains", "statement")]
    )
    assert not matches_all(
        message, [cond("from", "contains", "bank"), cond("subject", "contains", "invoice")]
    )
