"""Export rules for other providers and cleanup findings to CSV or JSON."""

from __future__ import annotations

import csv
import json

from .errors import ValidationError
from .models import (
    ActionType,
    CleanupSuggestion,
    ConditionField,
    Rule,
    SubscriptionAnalysis,
)

PROVIDER_TARGETS = ("gmail", "outlook")

_GMAIL_CRITERIA = {
    ConditionField.FROM: "from",
    ConditionField.TO: "to",
    ConditionField.SUBJECT: "subject",
}

_GMAIL_FLAGS = {
    ActionType.ARCHIVE: "shouldArchive",
    ActionType.MARK_READ: "shouldMarkAsRead",
    ActionType.DELETE: "shouldTrash",
}


def _gmail_filter(rule: Rule) -> dict:
    criteria = [
        f"{_GMAIL_CRITERIA[c.field]}:{c.value}" for c in rule.conditions if c.field in _GMAIL_CRITERIA
    ]
    actions = []
    for action in rule.actions:
        if action.type in _GMAIL_FLAGS:
            actions.append(_GMAIL_FLAGS[action.type])
        elif action.type is ActionType.LABEL:
            actions.append(f"label:{action.value}")
    return {"name": rule.name, "criteria": " ".join(criteria), "actions": actions}


def _outlook_rule(rule: Rule) -> dict:
    return {
        "displayName": rule.name,
        "sequence": rule.priority,
        "isEnabled": rule.enabled,
        "conditions": [
            {"type": c.to_dict()["field"], "value": c.value, "operation": c.to_dict()["operator"]}
            for c in rule.conditions
        ],
        "actions": [{"action": a.to_dict()["type"], "value": a.value} for a in rule.actions],
    }


def export_rules_for_provider(rules: list[Rule], target: str) -> str:
    """Translate rules into a provider's filter format, as JSON text.

    The conversion is lossy on purpose: for Gmail only from/to/subject
    criteria and archive/markRead/delete/label actions are carried over,
    and everything else is dropped without warning.
    """
    if target == "gmail":
        return json.dumps([_gmail_filter(r) for r in rules], indent=2)
    if target == "outlook":
        return json.dumps([_outlook_rule(r) for r in rules], indent=2)
    raise ValidationError(f"Unknown export target {target!r}; expected one of {PROVIDER_TARGETS}")


def export_rules_json(rules: list[Rule]) -> str:
    return json.dumps([r.to_dict() for r in rules], indent=2)


def parse_rules_json(text: str) -> list[Rule]:
    """Parse exported rules. Ids and hit statistics are reset for re-import."""
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValidationError("Rules file must contain a JSON list")
    rules = []
    for item in data:
        rule = Rule.from_dict(item)
        rule.id = ""
        rule.hit_count = 0
        rule.last_hit = None
        rule.created_at = ""
        rules.append(rule)
    return rules


def export_suggestions(suggestions: list[CleanupSuggestion], format: str, output_path: str) -> None:
    """Export cleanup suggestions to a file.

    Args:
        suggestions: Suggestions in display order.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
    """
    rows = [
        {
            "id": s.id,
            "type": s.type.value,
            "priority": s.priority.value,
            "title": s.title,
            "description": s.description,
            "email_count": len(s.email_ids),
            "estimated_bytes": s.estimated_bytes or 0,
            "email_ids": s.email_ids,
        }
        for s in suggestions
    ]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=list(rows[0]) if rows else ["id"])
            writer.writeheader()
            for row in rows:
                writer.writerow({**row, "email_ids": " ".join(row["email_ids"])})
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(rows, f, indent=2)
    else:
        raise ValidationError(f"Unknown format {format!r}")


def export_subscriptions(analysis: SubscriptionAnalysis, format: str, output_path: str) -> None:
    fieldnames = ["domain", "message_count", "last_date", "read_rate", "has_unsubscribe", "active"]
    rows = [{name: getattr(s, name) for name in fieldnames} for s in analysis.subscriptions]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump(
                {
                    "total": analysis.total,
                    "active": analysis.active,
                    "inactive": analysis.inactive,
                    "subscriptions": rows,
                },
                f,
                indent=2,
            )
    else:
        raise ValidationError(f"Unknown format {format!r}")
