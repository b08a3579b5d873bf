"""Shared fixtures for tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from mail_intelligence.gateway import DryRunGateway
from mail_intelligence.models import Message, to_iso
from mail_intelligence.store import SqliteEmailStore

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> str:
    return to_iso(NOW - timedelta(days=days))


def clock() -> datetime:
    return NOW


class FailingGateway(DryRunGateway):
    """Gateway whose remote mutations always fail."""

    async def archive(self, account_id: str, message_id: str) -> None:
        raise RuntimeError("archive rejected")

    async def delete(self, account_id: str, message_id: str) -> None:
        raise ConnectionError("mailbox unreachable")

    async def open_external_link(self, url: str) -> None:
        raise ConnectionError("no browser")


class SlowGateway(DryRunGateway):
    async def archive(self, account_id: str, message_id: str) -> None:
        await asyncio.sleep(1)


@pytest.fixture
def bank_message() -> Message:
    return Message(
        id="msg_bank_001",
        account_id="acct-1",
        sender="alerts@bank.com",
        sender_name="Bank Alerts",
        to=["me@example.com"],
        subject="Your statement is ready",
        snippet="View your monthly account activity online.",
        date=days_ago(2),
    )


@pytest.fixture
def newsletter_message() -> Message:
    return Message(
        id="msg_nl_001",
        account_id="acct-1",
        sender="news@shop.example",
        sender_name="Shop Example",
        subject="Flash sale: 40% off everything",
        snippet="Shop now before it's gone. Unsubscribe here.",
        date=days_ago(10),
        category="marketing",
        unsubscribe_link="https://shop.example/unsubscribe?u=1",
    )


@pytest.fixture
def store(tmp_path) -> SqliteEmailStore:
    with SqliteEmailStore(db_path=tmp_path / "mail.db") as s:
        yield s


@pytest.fixture
def gateway() -> DryRunGateway:
    return DryRunGateway()


@pytest.fixture
def make_messages():
    """Build ``count`` messages from one sender with distinct subjects."""

    def _make(count: int, sender: str = "news@shop.example", **fields) -> list[Message]:
        prefix = fields.pop("prefix", sender.split("@")[-1])
        age = fields.pop("age_days", 1)
        return [
            Message(
                id=f"{prefix}-{i:03d}",
                account_id=fields.get("account_id", "acct-1"),
                sender=sender,
                subject=f"Message number {i}",
                snippet=f"Body of message {i}",
                date=days_ago(age + i),
                **{k: v for k, v in fields.items() if k != "account_id"},
            )
            for i in range(count)
        ]

    return _make
