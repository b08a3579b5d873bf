"""Rule engine: evaluates automation rules against messages and mines rule suggestions."""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable

from .classifier import dominant
from .conditions import matches_all
from .constants import (
    DOMAIN_SUGGESTION_MIN_MESSAGES,
    FINANCE_FOLDER,
    FINANCIAL_SUGGESTION_CONFIDENCE,
    FINANCIAL_SUGGESTION_MIN_MESSAGES,
    MARKETING_ARCHIVE_AGE_DAYS,
    MARKETING_ARCHIVE_CONFIDENCE,
    MARKETING_ARCHIVE_MIN_MESSAGES,
    MAX_RULE_SUGGESTIONS,
    PROVIDER_CALL_TIMEOUT,
    RULE_SUGGESTION_SCAN_LIMIT,
    RULE_TEST_SAMPLE,
    RULE_TEST_WINDOW,
    SENDER_RULE_MIN_SHARE,
    SUGGESTION_SAMPLE_LIMIT,
    UNCATEGORIZED,
)
from .errors import ActionExecutionError, RuleNotFoundError, ValidationError
from .export import export_rules_for_provider, parse_rules_json
from .gateway import ProviderGateway, call_provider
from .models import (
    Action,
    ActionOutcome,
    ActionType,
    Condition,
    ConditionField,
    ConditionOperator,
    Message,
    Rule,
    RuleApplication,
    RuleSuggestion,
    to_iso,
    utcnow,
)
from .store import EmailStore, MessageFilter

logger = logging.getLogger(__name__)

# Fields a user may change through update_rule. Hit statistics belong to the engine.
EDITABLE_FIELDS = {"name", "enabled", "conditions", "actions", "priority", "provider"}


@dataclass
class RuleTestResult:
    matching_messages: list[Message] = field(default_factory=list)
    total_matches: int = 0


def _as_condition(value: Condition | dict) -> Condition:
    return value if isinstance(value, Condition) else Condition.from_dict(value)


def _as_action(value: Action | dict) -> Action:
    return value if isinstance(value, Action) else Action.from_dict(value)


def order_for_evaluation(rules: Iterable[Rule]) -> list[Rule]:
    """Enabled rules, highest priority first; equal priorities keep creation order."""
    return sorted((r for r in rules if r.enabled), key=lambda r: -r.priority)


class RuleEngine:
    """Applies stored rules to messages and performs their actions.

    Actions run best-effort: each failure is logged and reported in the
    returned outcomes, and never stops the remaining actions or rules.

    With ``dry_run`` set, matches and outcomes are reported as usual but
    nothing is written to the store: no category or read-state changes
    and no hit statistics.
    """

    def __init__(
        self,
        store: EmailStore,
        gateway: ProviderGateway,
        known_categories: Iterable[str] | None = None,
        call_timeout: float | None = PROVIDER_CALL_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.known_categories = (
            None if known_categories is None else {*known_categories, UNCATEGORIZED}
        )
        self.call_timeout = call_timeout
        self.clock = clock
        self.dry_run = dry_run

    # --- CRUD ---

    def create_rule(
        self,
        name: str,
        conditions: Iterable[Condition | dict],
        actions: Iterable[Action | dict],
        priority: int = 0,
        provider: str | None = None,
    ) -> Rule:
        rule = Rule(
            name=name,
            enabled=True,
            conditions=[_as_condition(c) for c in conditions],
            actions=[_as_action(a) for a in actions],
            priority=priority or 0,
            provider=provider,
            hit_count=0,
        )
        saved = self.store.save_rule(rule)
        logger.info("Created rule %s (%s)", saved.id, saved.name)
        return saved

    def update_rule(self, rule_id: str, **updates: Any) -> Rule:
        unsupported = set(updates) - EDITABLE_FIELDS
        if unsupported:
            raise ValidationError(f"Cannot update rule fields: {', '.join(sorted(unsupported))}")

        rule = self.store.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        if "conditions" in updates:
            updates["conditions"] = [_as_condition(c) for c in updates["conditions"]]
        if "actions" in updates:
            updates["actions"] = [_as_action(a) for a in updates["actions"]]
        for key, value in updates.items():
            setattr(rule, key, value)
        return self.store.save_rule(rule)

    def set_enabled(self, rule_id: str, enabled: bool) -> Rule:
        return self.update_rule(rule_id, enabled=enabled)

    def delete_rule(self, rule_id: str) -> None:
        if self.store.get_rule(rule_id) is None:
            raise RuleNotFoundError(rule_id)
        self.store.delete_rule(rule_id)
        logger.info("Deleted rule %s", rule_id)

    def get_rules(self) -> list[Rule]:
        return self.store.get_rules()

    def import_rules(self, text: str) -> list[Rule]:
        """Save rules from an exported JSON document as new rules."""
        return [self.store.save_rule(rule) for rule in parse_rules_json(text)]

    def export_rules_for_provider(self, target: str) -> str:
        return export_rules_for_provider(self.store.get_rules(), target)

    # --- evaluation ---

    async def apply_rules_to_message(self, message: Message) -> RuleApplication:
        """Run every matching enabled rule against one message, in a single pass.

        A categorize action does not re-trigger rules that were already
        evaluated; later rules still see the category the message came in with.
        """
        result = RuleApplication(message_id=message.id)

        for rule in order_for_evaluation(self.store.get_rules()):
            if not matches_all(message, rule.conditions):
                continue

            result.actions.extend(rule.actions)
            result.matched_rule_ids.append(rule.id)
            if not self.dry_run:
                self._record_hit(rule.id)
            result.outcomes.extend(await self.execute_actions(message, rule.actions))

        return result

    async def apply_rules_to_messages(self, messages: Iterable[Message]) -> list[RuleApplication]:
        return [await self.apply_rules_to_message(m) for m in messages]

    def _record_hit(self, rule_id: str) -> None:
        # Re-read and write back with no await in between, so concurrent
        # applications of the same rule cannot interleave their updates.
        rule = self.store.get_rule(rule_id)
        if rule is None:
            return
        rule.hit_count += 1
        rule.last_hit = to_iso(self.clock())
        self.store.save_rule(rule)

    async def execute_actions(self, message: Message, actions: Iterable[Action]) -> list[ActionOutcome]:
        outcomes = []
        for action in actions:
            name = action.raw_type or action.type.value
            try:
                await self._execute(message, action)
            except ActionExecutionError as exc:
                logger.error("Rule action %s failed for %s: %s", name, message.id, exc.reason)
                outcomes.append(ActionOutcome(message.id, name, ok=False, error=exc.reason))
            except Exception as exc:  # noqa: BLE001
                logger.exception("Rule action %s failed for %s", name, message.id)
                outcomes.append(ActionOutcome(message.id, name, ok=False, error=str(exc)))
            else:
                outcomes.append(ActionOutcome(message.id, name, ok=True))
        return outcomes

    async def _execute(self, message: Message, action: Action) -> None:
        kind = action.type
        account, msg_id = message.account_id, message.id

        if kind is ActionType.MOVE:
            if not action.value:
                raise ActionExecutionError("move", msg_id, "no target folder")
            folder = action.value
            await call_provider(
                lambda: self.gateway.move(account, msg_id, folder), "move", msg_id, self.call_timeout
            )
        elif kind is ActionType.ARCHIVE:
            await call_provider(
                lambda: self.gateway.archive(account, msg_id), "archive", msg_id, self.call_timeout
            )
        elif kind is ActionType.DELETE:
            await call_provider(
                lambda: self.gateway.delete(account, msg_id), "delete", msg_id, self.call_timeout
            )
        elif kind in (ActionType.MARK_READ, ActionType.MARK_UNREAD):
            if self.dry_run:
                logger.info("[dry run] %s %s", kind.value, msg_id)
            else:
                self.store.mark_read([msg_id], kind is ActionType.MARK_READ)
        elif kind is ActionType.CATEGORIZE:
            category = (action.value or "").strip()
            if not category:
                raise ActionExecutionError("categorize", msg_id, "no category given")
            if self.known_categories is not None and category not in self.known_categories:
                raise ActionExecutionError("categorize", msg_id, f"unknown category {category!r}")
            if self.dry_run:
                logger.info("[dry run] categorize %s as %s", msg_id, category)
            else:
                self.store.update_category(msg_id, category)
        elif kind is ActionType.LABEL:
            # Labels are not written back yet; the action is accepted and ignored.
            logger.debug("label action ignored for %s", msg_id)
        else:
            raise ActionExecutionError(action.raw_type or "unknown", msg_id, "unsupported action")

    def test_rule(self, rule_id: str, window: int = RULE_TEST_WINDOW) -> RuleTestResult:
        """Dry run: count recent messages the rule would match. Nothing is executed."""
        rule = self.store.get_rule(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)

        messages = self.store.get_messages(MessageFilter(limit=window))
        matching = [m for m in messages if matches_all(m, rule.conditions)]
        return RuleTestResult(
            matching_messages=matching[:RULE_TEST_SAMPLE],
            total_matches=len(matching),
        )

    # --- suggestions ---

    def get_suggestions(self) -> list[RuleSuggestion]:
        messages = self.store.get_messages(MessageFilter(limit=RULE_SUGGESTION_SCAN_LIMIT))
        return suggest_rules(messages, now=self.clock())


def suggest_rules(messages: list[Message], now: datetime) -> list[RuleSuggestion]:
    """Propose rules from observed sender/category patterns, best first."""
    suggestions: list[RuleSuggestion] = []

    by_domain: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        if message.domain:
            by_domain[message.domain].append(message)

    for domain, domain_messages in by_domain.items():
        if len(domain_messages) < DOMAIN_SUGGESTION_MIN_MESSAGES:
            continue

        category, count = dominant(Counter(m.category for m in domain_messages))
        share = count / len(domain_messages)
        samples = domain_messages[:SUGGESTION_SAMPLE_LIMIT]
        from_domain = Condition(ConditionField.FROM, ConditionOperator.CONTAINS, f"@{domain}")

        if share > SENDER_RULE_MIN_SHARE and category != UNCATEGORIZED:
            suggestions.append(
                RuleSuggestion(
                    id=f"categorize-{domain}",
                    rule=Rule(
                        name=f"Auto-categorize @{domain}",
                        conditions=[from_domain],
                        actions=[Action(ActionType.CATEGORIZE, category)],
                    ),
                    confidence=share,
                    reason=(
                        f"{count} of {len(domain_messages)} emails from @{domain} "
                        f"are in the {category} category"
                    ),
                    sample_messages=samples,
                )
            )

        if category == "marketing" and len(domain_messages) > MARKETING_ARCHIVE_MIN_MESSAGES:
            cutoff = to_iso(now - timedelta(days=MARKETING_ARCHIVE_AGE_DAYS))
            suggestions.append(
                RuleSuggestion(
                    id=f"archive-{domain}",
                    rule=Rule(
                        name=f"Archive old emails from @{domain}",
                        conditions=[
                            Condition(ConditionField.FROM, ConditionOperator.CONTAINS, f"@{domain}"),
                            Condition(ConditionField.DATE, ConditionOperator.BEFORE, cutoff),
                        ],
                        actions=[Action(ActionType.ARCHIVE)],
                    ),
                    confidence=MARKETING_ARCHIVE_CONFIDENCE,
                    reason=(
                        f"You have {len(domain_messages)} marketing emails from @{domain}. "
                        "Consider archiving older ones."
                    ),
                    sample_messages=samples,
                )
            )

    financial = [m for m in messages if m.category == "financial"]
    financial_domains = {m.domain for m in financial if m.domain}
    if len(financial) > FINANCIAL_SUGGESTION_MIN_MESSAGES and financial_domains:
        suggestions.append(
            RuleSuggestion(
                id="finance-statements",
                rule=Rule(
                    name=f"Move bank statements to {FINANCE_FOLDER} folder",
                    conditions=[
                        Condition(ConditionField.CATEGORY, ConditionOperator.EQUALS, "financial"),
                        Condition(ConditionField.SUBJECT, ConditionOperator.CONTAINS, "statement"),
                    ],
                    actions=[Action(ActionType.MOVE, FINANCE_FOLDER), Action(ActionType.MARK_READ)],
                    priority=5,
                ),
                confidence=FINANCIAL_SUGGESTION_CONFIDENCE,
                reason=(
                    "Automatically organize bank statements from "
                    f"{len(financial_domains)} financial institutions"
                ),
                sample_messages=financial[:SUGGESTION_SAMPLE_LIMIT],
            )
        )

    suggestions.sort(key=lambda s: -s.confidence)
    return suggestions[:MAX_RULE_SUGGESTIONS]
