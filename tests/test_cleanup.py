"""Tests for the cleanup module."""

import asyncio

import pytest

from conftest import NOW, FailingGateway, clock, days_ago
from mail_intelligence.cleanup import (
    CleanupEngine,
    analyze_subscriptions,
    build_suggestions,
    find_duplicates,
    find_inactive_subscriptions,
    find_large_attachments,
    format_size,
)
from mail_intelligence.models import Attachment, CleanupType, Message, Priority


@pytest.fixture
def engine(store, gateway) -> CleanupEngine:
    return CleanupEngine(store, gateway, unsubscribe_delay=0, clock=clock)


def dup(id: str, age: float, snippet: str = "Your weekly summary is here for the week of March") -> Message:
    return Message(
        id=id,
        sender="digest@news.example",
        subject="Weekly summary",
        snippet=snippet,
        date=days_ago(age),
    )


class TestDuplicates:
    def test_newest_is_canonical(self):
        messages = [dup("a", 10), dup("b", 2), dup("c", 5)]
        groups = find_duplicates(messages)

        assert len(groups) == 1
        assert groups[0].canonical.id == "b"
        assert [m.id for m in groups[0].removable] == ["c", "a"]

    def test_idempotent(self):
        messages = [dup("a", 10), dup("b", 2), dup("c", 5), dup("solo", 1, snippet="different")]
        first = find_duplicates(messages)
        second = find_duplicates(messages)
        assert [[m.id for m in g.messages] for g in first] == [
            [m.id for m in g.messages] for g in second
        ]

    def test_only_snippet_prefix_counts(self):
        base = "x" * 50
        messages = [dup("a", 1, snippet=base + " tail one"), dup("b", 2, snippet=base + " tail two")]
        assert len(find_duplicates(messages)) == 1

    def test_subject_case_and_whitespace_ignored(self):
        other = dup("b", 2)
        other.subject = "  WEEKLY SUMMARY "
        assert len(find_duplicates([dup("a", 1), other])) == 1

    def test_undated_messages_sort_last(self):
        undated = dup("undated", 0)
        undated.date = ""
        groups = find_duplicates([undated, dup("dated", 400)])
        assert groups[0].canonical.id == "dated"

    def test_singletons_are_not_groups(self):
        assert find_duplicates([dup("a", 1)]) == []


def subscription(id: str, age: float, domain: str = "shop.example", **fields) -> Message:
    return Message(
        id=id,
        sender=f"news@{domain}",
        subject=f"Deals {id}",
        date=days_ago(age),
        category=fields.pop("category", "marketing"),
        unsubscribe_link=fields.pop("unsubscribe_link", f"https://{domain}/unsub/{id}"),
        **fields,
    )


class TestInactiveSubscriptions:
    def test_dormant_unread_sender(self):
        messages = [subscription(f"s{i}", 120 + i) for i in range(6)]
        inactive = find_inactive_subscriptions(messages, now=NOW)
        assert [m.id for m in inactive] == ["s0"]

    def test_any_read_message_keeps_sender_active(self):
        messages = [subscription(f"s{i}", 120 + i) for i in range(6)]
        messages[3].is_read = True
        assert find_inactive_subscriptions(messages, now=NOW) == []

    def test_recent_mail_keeps_sender_active(self):
        messages = [subscription("old", 200), subscription("recent", 30)]
        assert find_inactive_subscriptions(messages, now=NOW) == []

    def test_requires_marketing_and_unsubscribe_link(self):
        messages = [
            subscription("no-link", 200, unsubscribe_link=None),
            subscription("shopping", 200, domain="store.example", category="shopping"),
        ]
        assert find_inactive_subscriptions(messages, now=NOW) == []


def test_large_attachment_threshold_is_inclusive():
    exact = Message(id="exact", attachments=[Attachment(id="1", size=3 * 1024 * 1024)] * 2)
    small = Message(id="small", attachments=[Attachment(id="2", size=1024)])
    assert [m.id for m in find_large_attachments([exact, small], min_size=6 * 1024 * 1024)] == [
        "exact"
    ]


def test_subscription_analysis():
    messages = [subscription(f"a{i}", i + 1, domain="busy.example") for i in range(4)]
    messages[0].is_read = True
    messages += [subscription("q0", 5, domain="quiet.example")]
    messages.append(Message(id="personal", sender="friend@example.com", category="social"))

    analysis = analyze_subscriptions(messages)

    assert analysis.total == 2
    assert analysis.active == 1
    assert analysis.inactive == 1
    busy, quiet = analysis.subscriptions
    assert busy.domain == "busy.example"
    assert busy.message_count == 4
    assert busy.read_rate == 25
    assert busy.active is True
    assert busy.last_date == days_ago(1)
    assert quiet.read_rate == 0
    assert quiet.active is False


class TestSuggestions:
    def test_marketing_volume_produces_single_spam_suggestion(self, engine, store, make_messages):
        store.save_messages(make_messages(60, category="marketing", is_read=True))

        suggestions = engine.get_suggestions()

        assert len(suggestions) == 1
        spam = suggestions[0]
        assert spam.type is CleanupType.SPAM
        assert spam.priority is Priority.MEDIUM
        assert len(spam.email_ids) == 60

    def test_unread_marketing_volume_adds_newsletter_suggestion(self, engine, store, make_messages):
        store.save_messages(make_messages(60, category="marketing"))

        suggestions = engine.get_suggestions()

        spam = [s for s in suggestions if s.type is CleanupType.SPAM]
        assert len(spam) == 1
        assert len(spam[0].email_ids) == 60
        assert [s.type for s in suggestions] == [CleanupType.SPAM, CleanupType.UNREAD_NEWSLETTERS]
        assert len(suggestions[1].email_ids) == 60

    def test_sorted_by_priority(self, make_messages):
        messages = [subscription(f"s{i}", 120 + i) for i in range(3)]
        messages += [dup("d1", 1), dup("d2", 2)]
        messages.append(
            Message(
                id="big",
                subject="Photos",
                date=days_ago(3),
                attachments=[Attachment(id="x", size=6 * 1024 * 1024)],
            )
        )
        messages.append(
            Message(id="receipt", subject="Order shipped", category="shopping", date=days_ago(400))
        )

        suggestions = build_suggestions(messages, now=NOW)

        assert [s.id for s in suggestions] == [
            "inactive-subscriptions",
            "duplicates",
            "large-attachments",
            "old-transactional",
        ]
        assert suggestions[1].email_ids == ["d2"]
        assert suggestions[2].estimated_bytes == 6 * 1024 * 1024

    def test_unread_newsletters(self, make_messages):
        messages = make_messages(21, category="marketing")
        suggestions = build_suggestions(messages, now=NOW)
        assert [s.type for s in suggestions] == [CleanupType.UNREAD_NEWSLETTERS]
        assert len(suggestions[0].email_ids) == 21

    def test_clean_mailbox(self, engine):
        assert engine.get_suggestions() == []

    def test_account_scope(self, engine, store, make_messages):
        store.save_messages(make_messages(60, category="marketing", is_read=True, account_id="work"))
        assert engine.get_suggestions(account_id="home") == []
        assert len(engine.get_suggestions(account_id="work")) == 1


class TestExecuteAction:
    def test_archive_reports_per_id(self, engine, store, gateway, make_messages):
        store.save_messages(make_messages(3))
        ids = ["shop.example-000", "missing", "shop.example-002"]

        report = asyncio.run(engine.execute_action("archive", ids))

        assert report.success is True
        assert report.affected == 2
        assert report.skipped == 1
        assert report.message == "Archived 2 of 3 emails"
        assert [c.message_id for c in gateway.calls] == ["shop.example-000", "shop.example-002"]
        assert gateway.methods() == ["archive", "archive"]

    def test_failures_are_counted_not_raised(self, store, make_messages):
        store.save_messages(make_messages(2))
        engine = CleanupEngine(store, FailingGateway(), clock=clock)

        report = asyncio.run(engine.execute_action("delete", ["shop.example-000", "shop.example-001"]))

        assert report.failed == 2
        assert report.affected == 0
        assert all(o.error == "mailbox unreachable" for o in report.outcomes)
        assert report.message == "Deleted 0 of 2 emails (2 failed)"

    def test_expired_deadline_leaves_ids_unattempted(self, engine, store, gateway, make_messages):
        store.save_messages(make_messages(3))
        ids = [m.id for m in make_messages(3)]

        report = asyncio.run(engine.execute_action("archive", ids, deadline=0))

        assert report.cancelled is True
        assert report.not_attempted == ids
        assert gateway.calls == []

    def test_mark_read(self, engine, store, make_messages):
        store.save_messages(make_messages(2))
        report = asyncio.run(engine.execute_action("mark_read", ["shop.example-000"]))
        assert report.affected == 1
        assert store.get_message("shop.example-000").is_read is True
        assert store.get_message("shop.example-001").is_read is False

    def test_mark_read_dry_run_leaves_store(self, store, gateway, make_messages):
        store.save_messages(make_messages(2))
        engine = CleanupEngine(store, gateway, clock=clock, dry_run=True)

        report = asyncio.run(engine.execute_action("mark_read", ["shop.example-000"]))

        assert report.affected == 1
        assert store.get_message("shop.example-000").is_read is False

    def test_unsubscribe(self, engine, store, gateway):
        store.save_messages([subscription("s1", 1), subscription("s2", 2, unsubscribe_link=None)])
        report = asyncio.run(engine.execute_action("unsubscribe", ["s1", "s2"]))
        assert report.affected == 1
        assert report.skipped == 1
        assert gateway.methods() == ["open_external_link"]

    def test_download_attachments_is_a_no_op(self, engine):
        report = asyncio.run(engine.execute_action("download_attachments", ["x"]))
        assert report.success is True

    def test_unknown_action(self, engine):
        report = asyncio.run(engine.execute_action("shred", ["x"]))
        assert report.success is False
        assert report.message == "Unknown action type"


class TestBulkUnsubscribe:
    def test_processed_and_skipped_cover_all_ids(self, engine, store):
        store.save_messages(
            [subscription("s1", 1), subscription("s2", 2, unsubscribe_link=None), subscription("s3", 3)]
        )

        result = asyncio.run(engine.bulk_unsubscribe(["s1", "s2", "s3", "missing"]))

        assert result.processed == 2
        assert result.skipped == 2
        assert result.links == ["https://shop.example/unsub/s1", "https://shop.example/unsub/s3"]

    def test_link_failures_are_collected(self, store):
        store.save_messages([subscription("s1", 1), subscription("s2", 2)])
        engine = CleanupEngine(store, FailingGateway(), unsubscribe_delay=0, clock=clock)

        result = asyncio.run(engine.bulk_unsubscribe(["s1", "s2"]))

        assert result.processed == 2
        assert [e.message_id for e in result.errors] == ["s1", "s2"]

    def test_waits_between_links_only(self, store, gateway, monkeypatch):
        store.save_messages([subscription("s1", 1), subscription("s2", 2), subscription("s3", 3)])
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("mail_intelligence.cleanup.asyncio.sleep", fake_sleep)
        engine = CleanupEngine(store, gateway, unsubscribe_delay=1.5, clock=clock)

        asyncio.run(engine.bulk_unsubscribe(["s1", "s2", "s3"]))

        assert delays == [1.5, 1.5]


@pytest.mark.parametrize(
    "num_bytes,expected",
    [(512, "512 B"), (2048, "2.0 KB"), (5 * 1024 * 1024, "5.0 MB"), (3 * 1024**3, "3.0 GB")],
)
def test_format_size(num_bytes, expected):
    assert format_size(num_bytes) == expected
