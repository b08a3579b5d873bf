"""Cleanup analysis: duplicates, dormant subscriptions, bulky and aged mail."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from .constants import (
    ACTIVE_READ_RATE,
    CLEANUP_SCAN_LIMIT,
    DUPLICATE_SNIPPET_CHARS,
    INACTIVE_SUBSCRIPTION_DAYS,
    LARGE_ATTACHMENT_BYTES,
    MARKETING_VOLUME_THRESHOLD,
    OLD_TRANSACTIONAL_DAYS,
    PROVIDER_CALL_TIMEOUT,
    UNREAD_NEWSLETTER_THRESHOLD,
    UNSUBSCRIBE_DELAY,
)
from .errors import ActionExecutionError
from .gateway import ProviderGateway, call_provider
from .models import (
    ActionOutcome,
    ActionReport,
    CleanupSuggestion,
    CleanupType,
    DuplicateGroup,
    Message,
    Priority,
    SubscriptionAnalysis,
    SubscriptionInfo,
    UnsubscribeResult,
    utcnow,
)
from .store import EmailStore, MessageFilter

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _newest_first(messages: Iterable[Message]) -> list[Message]:
    """Sort by date descending. Undated messages sort last; ties keep input order."""
    return sorted(messages, key=lambda m: m.timestamp or _EPOCH, reverse=True)


def format_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    if num_bytes < 1024 * 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):.1f} MB"
    return f"{num_bytes / (1024 * 1024 * 1024):.1f} GB"


def duplicate_key(message: Message) -> str:
    return "|".join(
        [
            (message.subject or "").lower().strip(),
            (message.sender or "").lower(),
            (message.snippet or "")[:DUPLICATE_SNIPPET_CHARS].lower(),
        ]
    )


def find_duplicates(messages: Iterable[Message]) -> list[DuplicateGroup]:
    """Group messages sharing subject, sender and snippet prefix; the newest is kept."""
    groups: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        groups[duplicate_key(message)].append(message)

    return [
        DuplicateGroup(key=key, messages=_newest_first(members))
        for key, members in groups.items()
        if len(members) > 1
    ]


def _group_by_domain(messages: Iterable[Message]) -> dict[str, list[Message]]:
    groups: dict[str, list[Message]] = defaultdict(list)
    for message in messages:
        groups[message.domain or (message.sender or "").lower()].append(message)
    return groups


def find_inactive_subscriptions(
    messages: Iterable[Message],
    now: datetime | None = None,
    max_age_days: int = INACTIVE_SUBSCRIPTION_DAYS,
) -> list[Message]:
    """Return the newest message of every marketing sender never read in ``max_age_days``.

    Only marketing messages carrying an unsubscribe link are considered.
    """
    cutoff = (now or utcnow()) - timedelta(days=max_age_days)
    candidates = [m for m in messages if m.category == "marketing" and m.has_unsubscribe]

    inactive: list[Message] = []
    for domain_messages in _group_by_domain(candidates).values():
        if any(m.is_read for m in domain_messages):
            continue
        newest = _newest_first(domain_messages)[0]
        if newest.timestamp is not None and newest.timestamp < cutoff:
            inactive.append(newest)
    return inactive


def find_large_attachments(
    messages: Iterable[Message], min_size: int = LARGE_ATTACHMENT_BYTES
) -> list[Message]:
    return [m for m in messages if m.attachment_bytes >= min_size]


def analyze_subscriptions(messages: Iterable[Message]) -> SubscriptionAnalysis:
    """Per-domain read statistics for marketing senders, busiest domain first."""
    marketing = [m for m in messages if m.category == "marketing"]

    subscriptions = []
    for domain, domain_messages in _group_by_domain(marketing).items():
        read = sum(1 for m in domain_messages if m.is_read)
        read_rate = round(read / len(domain_messages) * 100)
        subscriptions.append(
            SubscriptionInfo(
                domain=domain,
                message_count=len(domain_messages),
                last_date=_newest_first(domain_messages)[0].date,
                read_rate=read_rate,
                has_unsubscribe=any(m.has_unsubscribe for m in domain_messages),
                active=read_rate > ACTIVE_READ_RATE,
            )
        )

    subscriptions.sort(key=lambda s: -s.message_count)
    active = sum(1 for s in subscriptions if s.active)
    return SubscriptionAnalysis(
        total=len(subscriptions),
        active=active,
        inactive=len(subscriptions) - active,
        subscriptions=subscriptions,
    )


def build_suggestions(messages: list[Message], now: datetime) -> list[CleanupSuggestion]:
    """Turn cleanup findings over one snapshot into ranked suggestions."""
    suggestions: list[CleanupSuggestion] = []

    duplicates = find_duplicates(messages)
    if duplicates:
        removable = [m for g in duplicates for m in g.removable]
        suggestions.append(
            CleanupSuggestion(
                id="duplicates",
                type=CleanupType.DUPLICATE,
                title=f"{len(removable)} duplicate emails found",
                description=(
                    f"Found {len(duplicates)} groups of duplicate emails that can be cleaned up."
                ),
                email_ids=[m.id for m in removable],
                estimated_bytes=sum(m.size for m in removable),
                priority=Priority.MEDIUM,
                action="Remove duplicates",
            )
        )

    inactive = find_inactive_subscriptions(messages, now=now)
    if inactive:
        suggestions.append(
            CleanupSuggestion(
                id="inactive-subscriptions",
                type=CleanupType.INACTIVE_SUBSCRIPTION,
                title=f"{len(inactive)} inactive subscriptions",
                description=(
                    f"Newsletters and subscriptions you haven't opened in over "
                    f"{INACTIVE_SUBSCRIPTION_DAYS} days."
                ),
                email_ids=[m.id for m in inactive],
                priority=Priority.HIGH,
                action="Unsubscribe all",
            )
        )

    marketing = [m for m in messages if m.category == "marketing"]
    if len(marketing) > MARKETING_VOLUME_THRESHOLD:
        suggestions.append(
            CleanupSuggestion(
                id="marketing-cleanup",
                type=CleanupType.SPAM,
                title=f"{len(marketing)} promotional emails",
                description="Clean up old promotional emails to reduce inbox clutter.",
                email_ids=[m.id for m in marketing],
                estimated_bytes=sum(m.size for m in marketing),
                priority=Priority.MEDIUM,
                action="Archive all",
            )
        )

    large = find_large_attachments(messages)
    if large:
        total = sum(m.attachment_bytes for m in large)
        suggestions.append(
            CleanupSuggestion(
                id="large-attachments",
                type=CleanupType.LARGE_ATTACHMENT,
                title=f"{len(large)} emails with large attachments",
                description=(
                    f"Emails with attachments over {format_size(LARGE_ATTACHMENT_BYTES)}, "
                    f"consuming {format_size(total)}."
                ),
                email_ids=[m.id for m in large],
                estimated_bytes=total,
                priority=Priority.LOW,
                action="Download & archive",
            )
        )

    year_ago = now - timedelta(days=OLD_TRANSACTIONAL_DAYS)
    old_shopping = [
        m
        for m in messages
        if m.category == "shopping" and m.timestamp is not None and m.timestamp < year_ago
    ]
    if old_shopping:
        suggestions.append(
            CleanupSuggestion(
                id="old-transactional",
                type=CleanupType.OLD_TRANSACTIONAL,
                title=f"{len(old_shopping)} old receipts & confirmations",
                description="Shopping receipts and order confirmations older than 1 year.",
                email_ids=[m.id for m in old_shopping],
                estimated_bytes=sum(m.size for m in old_shopping),
                priority=Priority.LOW,
                action="Archive all",
            )
        )

    unread_newsletters = [m for m in marketing if not m.is_read]
    if len(unread_newsletters) > UNREAD_NEWSLETTER_THRESHOLD:
        suggestions.append(
            CleanupSuggestion(
                id="unread-newsletters",
                type=CleanupType.UNREAD_NEWSLETTERS,
                title=f"{len(unread_newsletters)} unread newsletters",
                description="Newsletters you never opened - consider unsubscribing.",
                email_ids=[m.id for m in unread_newsletters],
                priority=Priority.MEDIUM,
                action="Review & unsubscribe",
            )
        )

    # sorted() is stable, so equal priorities keep generation order.
    return sorted(suggestions, key=lambda s: s.priority.rank)


class CleanupEngine:
    """Runs cleanup scans over the store and performs bulk remediation.

    With ``dry_run`` set, local read state is left untouched; remote
    actions go to whatever gateway was given.
    """

    def __init__(
        self,
        store: EmailStore,
        gateway: ProviderGateway,
        call_timeout: float | None = PROVIDER_CALL_TIMEOUT,
        unsubscribe_delay: float = UNSUBSCRIBE_DELAY,
        clock: Callable[[], datetime] = utcnow,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.call_timeout = call_timeout
        self.unsubscribe_delay = unsubscribe_delay
        self.clock = clock
        self.dry_run = dry_run

    def _snapshot(self, account_id: str | None = None) -> list[Message]:
        return self.store.get_messages(
            MessageFilter(account_id=account_id, limit=CLEANUP_SCAN_LIMIT)
        )

    def get_suggestions(self, account_id: str | None = None) -> list[CleanupSuggestion]:
        return build_suggestions(self._snapshot(account_id), now=self.clock())

    def find_duplicates(self, account_id: str | None = None) -> list[DuplicateGroup]:
        return find_duplicates(self._snapshot(account_id))

    def find_inactive_subscriptions(self, account_id: str | None = None) -> list[Message]:
        return find_inactive_subscriptions(self._snapshot(account_id), now=self.clock())

    def find_large_attachments(
        self, min_size: int = LARGE_ATTACHMENT_BYTES, account_id: str | None = None
    ) -> list[Message]:
        return find_large_attachments(self._snapshot(account_id), min_size=min_size)

    def get_subscription_analysis(self, account_id: str | None = None) -> SubscriptionAnalysis:
        return analyze_subscriptions(
            self.store.get_messages(MessageFilter(account_id=account_id, category="marketing"))
        )

    # --- side effects ---

    async def execute_action(
        self,
        action_type: str,
        email_ids: list[str],
        deadline: float | None = None,
    ) -> ActionReport:
        """Dispatch a bulk cleanup action, reporting per-id results.

        ``deadline`` bounds the whole batch in seconds; ids not reached when
        it expires are reported as not attempted. Issued actions stay applied.
        """
        ids = list(email_ids or [])

        if action_type in ("archive", "delete"):
            return await self._remote_batch(action_type, ids, deadline)

        if action_type == "mark_read":
            if self.dry_run:
                logger.info("[dry run] mark %d emails as read", len(ids))
            else:
                self.store.mark_read(ids, True)
            return ActionReport(
                action=action_type,
                success=True,
                message=f"Marked {len(ids)} emails as read",
                affected=len(ids),
            )

        if action_type == "unsubscribe":
            result = await self.bulk_unsubscribe(ids)
            return ActionReport(
                action=action_type,
                success=True,
                message=f"Opened unsubscribe links for {result.processed} emails",
                affected=result.processed,
                failed=len(result.errors),
                skipped=result.skipped,
                outcomes=result.errors,
            )

        if action_type == "download_attachments":
            return ActionReport(action=action_type, success=True, message="Nothing to download")

        return ActionReport(action=action_type, success=False, message="Unknown action type")

    async def _remote_batch(
        self, action_type: str, ids: list[str], deadline: float | None
    ) -> ActionReport:
        report = ActionReport(action=action_type, success=True)
        method = self.gateway.archive if action_type == "archive" else self.gateway.delete
        started = time.monotonic()

        for index, message_id in enumerate(ids):
            if deadline is not None and time.monotonic() - started >= deadline:
                report.cancelled = True
                report.not_attempted = ids[index:]
                logger.warning(
                    "%s batch stopped at deadline; %d ids not attempted",
                    action_type,
                    len(report.not_attempted),
                )
                break

            message = self.store.get_message(message_id)
            if message is None:
                report.skipped += 1
                report.outcomes.append(
                    ActionOutcome(message_id, action_type, ok=False, error="message not found")
                )
                continue

            account = message.account_id
            try:
                await call_provider(
                    lambda: method(account, message_id),
                    action_type,
                    message_id,
                    self.call_timeout,
                )
            except ActionExecutionError as exc:
                logger.error("%s failed for %s: %s", action_type, message_id, exc.reason)
                report.failed += 1
                report.outcomes.append(
                    ActionOutcome(message_id, action_type, ok=False, error=exc.reason)
                )
            else:
                report.affected += 1
                report.outcomes.append(ActionOutcome(message_id, action_type, ok=True))

        verb = "Archived" if action_type == "archive" else "Deleted"
        report.message = f"{verb} {report.affected} of {len(ids)} emails"
        if report.failed:
            report.message += f" ({report.failed} failed)"
        if report.cancelled:
            report.message += f", {len(report.not_attempted)} not attempted"
        return report

    async def bulk_unsubscribe(self, email_ids: list[str]) -> UnsubscribeResult:
        """Open the unsubscribe link of every message that has one.

        Links are opened one at a time with ``unsubscribe_delay`` seconds in
        between. Messages without a link are counted as skipped.
        """
        result = UnsubscribeResult()

        for message_id in email_ids:
            message = self.store.get_message(message_id)
            link = message.unsubscribe_link if message else None
            if not link:
                result.skipped += 1
                continue

            if result.processed and self.unsubscribe_delay > 0:
                await asyncio.sleep(self.unsubscribe_delay)

            result.processed += 1
            result.links.append(link)
            try:
                await call_provider(
                    lambda: self.gateway.open_external_link(link),
                    "unsubscribe",
                    message_id,
                    self.call_timeout,
                )
            except ActionExecutionError as exc:
                logger.error("Could not open unsubscribe link for %s: %s", message_id, exc.reason)
                result.errors.append(
                    ActionOutcome(message_id, "unsubscribe", ok=False, error=exc.reason)
                )

        return result
