"""Evaluation of rule conditions against a single message.

Every condition evaluates to a plain bool. Unknown fields or operators and
malformed regular expressions evaluate to False instead of raising.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Union

from .errors import PatternError
from .models import Condition, ConditionField, ConditionOperator, Message, parse_date

logger = logging.getLogger(__name__)

FieldValue = Union[str, int, bool]


def field_value(message: Message, field: ConditionField) -> FieldValue | None:
    """Extract the value a condition on ``field`` is tested against.

    Returns None for fields this version does not know.
    """
    if field is ConditionField.FROM:
        return (message.sender or "").lower()
    if field is ConditionField.TO:
        return " ".join(message.to or []).lower()
    if field is ConditionField.SUBJECT:
        return (message.subject or "").lower()
    if field is ConditionField.BODY:
        return (message.body or message.snippet or "").lower()
    if field is ConditionField.CATEGORY:
        return (message.category or "").lower()
    if field is ConditionField.DATE:
        return message.date or ""
    if field is ConditionField.HAS_ATTACHMENT:
        return len(message.attachments) > 0
    if field is ConditionField.SIZE:
        return message.size or 0
    return None


def _as_text(value: FieldValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(value: FieldValue | str) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    text = value.strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return None


def compile_pattern(pattern: str) -> re.Pattern:
    """Compile a user-supplied condition pattern, case-insensitive.

    Raises PatternError when the pattern is malformed.
    """
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise PatternError(pattern, str(exc)) from exc


def _compare_dates(field_text: str, condition_text: str) -> int | None:
    """Return -1/0/1 comparing two ISO-8601 timestamps, or None if either won't parse."""
    left, right = parse_date(field_text), parse_date(condition_text)
    if left is None or right is None:
        return None
    return (left > right) - (left < right)


def _chronological(field_text: str, condition_value: str) -> int:
    ordering = _compare_dates(field_text, condition_value)
    if ordering is not None:
        return ordering
    # Unparseable operands: fall back to plain string ordering.
    lowered = condition_value.lower()
    return (field_text > lowered) - (field_text < lowered)


def evaluate(message: Message, condition: Condition) -> bool:
    value = field_value(message, condition.field)
    if value is None:
        return False

    operator = condition.operator
    expected = (condition.value or "").lower()
    text = _as_text(value)

    if operator is ConditionOperator.CONTAINS:
        return expected in text.lower()
    if operator is ConditionOperator.EQUALS:
        return text.lower() == expected
    if operator is ConditionOperator.STARTS_WITH:
        return text.lower().startswith(expected)
    if operator is ConditionOperator.ENDS_WITH:
        return text.lower().endswith(expected)
    if operator is ConditionOperator.REGEX:
        try:
            return compile_pattern(condition.value or "").search(text) is not None
        except PatternError as exc:
            logger.warning("%s; condition treated as not matching", exc)
            return False
    if operator is ConditionOperator.BEFORE:
        return _chronological(text, condition.value or "") < 0
    if operator is ConditionOperator.AFTER:
        return _chronological(text, condition.value or "") > 0
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        left, right = _as_number(value), _as_number(condition.value or "")
        if left is None or right is None:
            return False
        if operator is ConditionOperator.GREATER_THAN:
            return left > right
        return left < right
    return False


def matches_all(message: Message, conditions: Iterable[Condition]) -> bool:
    """AND-combine conditions. An empty condition list matches every message."""
    return all(evaluate(message, c) for c in conditions)
