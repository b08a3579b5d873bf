"""Data models for Mail Intelligence."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .constants import BASE_IMPORTANCE, UNCATEGORIZED


def parse_date(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for empty or unparseable text.
    """
    if not value:
        return None
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format a datetime as a zero-padded UTC ISO-8601 string ending in Z."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def sender_domain(address: str | None) -> str:
    """Return the lower-cased domain of an email address, or '' if it has none."""
    if not address or "@" not in address:
        return ""
    return address.rsplit("@", 1)[1].strip().strip(">").lower()


# --- Closed vocabularies ---


class _Vocabulary(str, Enum):
    """String enum that maps unrecognized values to its UNKNOWN member."""

    @classmethod
    def _missing_(cls, value: object) -> _Vocabulary:
        return cls.UNKNOWN  # type: ignore[attr-defined]


class ConditionField(_Vocabulary):
    FROM = "from"
    TO = "to"
    SUBJECT = "subject"
    BODY = "body"
    CATEGORY = "category"
    DATE = "date"
    HAS_ATTACHMENT = "hasAttachment"
    SIZE = "size"
    UNKNOWN = "unknown"


class ConditionOperator(_Vocabulary):
    CONTAINS = "contains"
    EQUALS = "equals"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"
    BEFORE = "before"
    AFTER = "after"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    UNKNOWN = "unknown"


class ActionType(_Vocabulary):
    MOVE = "move"
    LABEL = "label"
    ARCHIVE = "archive"
    DELETE = "delete"
    MARK_READ = "markRead"
    MARK_UNREAD = "markUnread"
    CATEGORIZE = "categorize"
    UNKNOWN = "unknown"


class CleanupType(_Vocabulary):
    DUPLICATE = "duplicate"
    INACTIVE_SUBSCRIPTION = "inactive_subscription"
    SPAM = "spam"
    LARGE_ATTACHMENT = "large_attachment"
    OLD_TRANSACTIONAL = "old_transactional"
    UNREAD_NEWSLETTERS = "unread_newsletters"
    UNKNOWN = "unknown"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


# --- Messages ---


@dataclass
class Attachment:
    id: str
    name: str = ""
    mime_type: str = ""
    size: int = 0


@dataclass
class Message:
    """A stored email message as seen by the intelligence layer."""

    id: str
    account_id: str = ""
    sender: str = ""  # address only
    sender_name: str = ""
    to: list[str] = field(default_factory=list)
    cc: list[str] = field(default_factory=list)
    subject: str = ""
    snippet: str = ""
    body: str = ""
    date: str = ""  # ISO-8601
    is_read: bool = False
    is_starred: bool = False
    labels: list[str] = field(default_factory=list)
    category: str = UNCATEGORIZED
    importance: float = BASE_IMPORTANCE
    attachments: list[Attachment] = field(default_factory=list)
    unsubscribe_link: str | None = None
    size: int = 0

    @property
    def has_unsubscribe(self) -> bool:
        return bool(self.unsubscribe_link)

    @property
    def domain(self) -> str:
        return sender_domain(self.sender)

    @property
    def attachment_bytes(self) -> int:
        return sum(a.size or 0 for a in self.attachments)

    @property
    def timestamp(self) -> datetime | None:
        return parse_date(self.date)

    @classmethod
    def from_dict(cls, data: dict) -> Message:
        attachments = [
            Attachment(
                id=str(a.get("id", "")),
                name=a.get("name", ""),
                mime_type=a.get("mime_type", ""),
                size=int(a.get("size") or 0),
            )
            for a in data.get("attachments") or []
        ]
        return cls(
            id=str(data["id"]),
            account_id=data.get("account_id", ""),
            sender=data.get("sender", ""),
            sender_name=data.get("sender_name", ""),
            to=list(data.get("to") or []),
            cc=list(data.get("cc") or []),
            subject=data.get("subject", ""),
            snippet=data.get("snippet", ""),
            body=data.get("body", ""),
            date=data.get("date", ""),
            is_read=bool(data.get("is_read", False)),
            is_starred=bool(data.get("is_starred", False)),
            labels=list(data.get("labels") or []),
            category=data.get("category") or UNCATEGORIZED,
            importance=float(data.get("importance", BASE_IMPORTANCE)),
            attachments=attachments,
            unsubscribe_link=data.get("unsubscribe_link") or None,
            size=int(data.get("size") or 0),
        )


@dataclass
class ClassificationResult:
    category: str
    confidence: float
    importance: float
    keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CategoryDefinition:
    """One category of the classifier table. Patterns are compiled case-insensitive."""

    id: str
    name: str
    patterns: tuple[re.Pattern, ...] = ()
    sender_patterns: tuple[re.Pattern, ...] = ()
    keywords: tuple[str, ...] = ()
    weight: float = 1.0


# --- Rules ---


@dataclass
class Condition:
    field: ConditionField
    operator: ConditionOperator
    value: str = ""
    # Original strings, kept so unknown values survive a save.
    raw_field: str = field(default="", repr=False, compare=False)
    raw_operator: str = field(default="", repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "field": self.raw_field or self.field.value,
            "operator": self.raw_operator or self.operator.value,
            "value": self.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Condition:
        raw_field = str(data.get("field", ""))
        raw_operator = str(data.get("operator", ""))
        return cls(
            field=ConditionField(raw_field),
            operator=ConditionOperator(raw_operator),
            value="" if data.get("value") is None else str(data.get("value")),
            raw_field=raw_field,
            raw_operator=raw_operator,
        )


@dataclass
class Action:
    type: ActionType
    value: str | None = None
    raw_type: str = field(default="", repr=False, compare=False)

    def describe(self) -> str:
        name = self.raw_type or self.type.value
        return f"{name} {self.value}" if self.value else name

    def to_dict(self) -> dict:
        data: dict = {"type": self.raw_type or self.type.value}
        if self.value is not None:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> Action:
        raw_type = str(data.get("type", ""))
        value = data.get("value")
        return cls(
            type=ActionType(raw_type),
            value=None if value is None else str(value),
            raw_type=raw_type,
        )


@dataclass
class Rule:
    """A user-authored automation rule. Conditions are AND-combined."""

    id: str = ""
    name: str = ""
    enabled: bool = True
    conditions: list[Condition] = field(default_factory=list)
    actions: list[Action] = field(default_factory=list)
    priority: int = 0
    hit_count: int = 0
    last_hit: str | None = None
    provider: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "priority": self.priority,
            "hit_count": self.hit_count,
            "last_hit": self.last_hit,
            "provider": self.provider,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Rule:
        return cls(
            id=data.get("id") or "",
            name=data.get("name", ""),
            enabled=bool(data.get("enabled", True)),
            conditions=[Condition.from_dict(c) for c in data.get("conditions") or []],
            actions=[Action.from_dict(a) for a in data.get("actions") or []],
            priority=int(data.get("priority") or 0),
            hit_count=int(data.get("hit_count") or 0),
            last_hit=data.get("last_hit"),
            provider=data.get("provider"),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
        )


@dataclass
class RuleSuggestion:
    id: str
    rule: Rule  # unsaved
    confidence: float
    reason: str
    sample_messages: list[Message] = field(default_factory=list)


@dataclass
class SenderRuleSuggestion:
    pattern: str
    category: str
    confidence: float


@dataclass
class ActionOutcome:
    """Result of one side effect against one message."""

    message_id: str
    action: str
    ok: bool
    error: str | None = None


@dataclass
class RuleApplication:
    message_id: str
    actions: list[Action] = field(default_factory=list)
    matched_rule_ids: list[str] = field(default_factory=list)
    outcomes: list[ActionOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if not o.ok]


# --- Cleanup ---


@dataclass
class CleanupSuggestion:
    id: str
    type: CleanupType
    title: str
    description: str
    email_ids: list[str] = field(default_factory=list)
    priority: Priority = Priority.MEDIUM
    action: str = ""
    estimated_bytes: int | None = None


@dataclass
class DuplicateGroup:
    """Messages sharing subject, sender and snippet prefix; newest first."""

    key: str
    messages: list[Message] = field(default_factory=list)

    @property
    def canonical(self) -> Message:
        return self.messages[0]

    @property
    def removable(self) -> list[Message]:
        return self.messages[1:]

    @property
    def subject(self) -> str:
        return self.canonical.subject

    @property
    def sender(self) -> str:
        return self.canonical.sender


@dataclass
class SubscriptionInfo:
    domain: str
    message_count: int
    last_date: str
    read_rate: int  # percent
    has_unsubscribe: bool
    active: bool


@dataclass
class SubscriptionAnalysis:
    total: int = 0
    active: int = 0
    inactive: int = 0
    subscriptions: list[SubscriptionInfo] = field(default_factory=list)


@dataclass
class ActionReport:
    """Aggregate result of a bulk cleanup action. Never all-or-nothing."""

    action: str
    success: bool
    message: str = ""
    affected: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    not_attempted: list[str] = field(default_factory=list)
    outcomes: list[ActionOutcome] = field(default_factory=list)


@dataclass
class UnsubscribeResult:
    processed: int = 0
    skipped: int = 0
    links: list[str] = field(default_factory=list)
    errors: list[ActionOutcome] = field(default_factory=list)
