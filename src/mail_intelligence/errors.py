"""Exception taxonomy for Mail Intelligence."""

from __future__ import annotations


class MailIntelligenceError(Exception):
    """Base class for all package errors."""


class ValidationError(MailIntelligenceError):
    """A request referenced missing data or carried unsupported fields."""


class RuleNotFoundError(ValidationError):
    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule not found: {rule_id}")
        self.rule_id = rule_id


class PatternError(MailIntelligenceError):
    """A rule condition carries a malformed regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern


class ActionExecutionError(MailIntelligenceError):
    """A single side effect against a single message failed."""

    def __init__(self, action: str, message_id: str, reason: str) -> None:
        super().__init__(f"{action} failed for {message_id}: {reason}")
        self.action = action
        self.message_id = message_id
        self.reason = reason


class ProviderUnavailable(ActionExecutionError):
    """The remote mailbox could not be reached or did not answer in time."""
