"""Tests for provider gateways."""

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from mail_intelligence.errors import ActionExecutionError, ProviderUnavailable
from mail_intelligence.gateway import DryRunGateway, GmailGateway, call_provider


def test_dry_run_records_calls():
    gateway = DryRunGateway()

    async def run():
        await gateway.archive("acct", "m1")
        await gateway.move("acct", "m2", "Finance")
        await gateway.mark_read("acct", "m3", True)

    asyncio.run(run())

    assert gateway.methods() == ["archive", "move", "mark_read"]
    assert gateway.calls[1].argument == "Finance"


class TestCallProvider:
    def test_timeout_becomes_provider_unavailable(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(ProviderUnavailable) as exc_info:
            asyncio.run(call_provider(slow, "archive", "m1", timeout=0.01))
        assert exc_info.value.message_id == "m1"

    def test_connection_error_becomes_provider_unavailable(self):
        async def broken():
            raise ConnectionError("reset by peer")

        with pytest.raises(ProviderUnavailable, match="reset by peer"):
            asyncio.run(call_provider(broken, "delete", "m1"))

    def test_other_errors_become_action_errors(self):
        async def rejected():
            raise ValueError("bad label")

        with pytest.raises(ActionExecutionError) as exc_info:
            asyncio.run(call_provider(rejected, "move", "m1"))
        assert not isinstance(exc_info.value, ProviderUnavailable)
        assert exc_info.value.reason == "bad label"


@pytest.fixture
def service():
    svc = MagicMock()
    svc.users().labels().list().execute.return_value = {
        "labels": [{"id": "Label_1", "name": "Finance"}]
    }
    return svc


def test_gmail_archive_removes_inbox_label(service):
    gateway = GmailGateway(lambda account_id: service)

    asyncio.run(gateway.archive("acct", "m1"))

    service.users().messages().modify.assert_called_with(
        userId="me", id="m1", body={"addLabelIds": [], "removeLabelIds": ["INBOX"]}
    )


def test_gmail_delete_trashes(service):
    gateway = GmailGateway(lambda account_id: service)
    asyncio.run(gateway.delete("acct", "m1"))
    service.users().messages().trash.assert_called_with(userId="me", id="m1")


def test_gmail_move_uses_existing_label(service):
    gateway = GmailGateway(lambda account_id: service)

    asyncio.run(gateway.move("acct", "m1", "Finance"))

    service.users().messages().modify.assert_called_with(
        userId="me", id="m1", body={"addLabelIds": ["Label_1"], "removeLabelIds": ["INBOX"]}
    )
    service.users().labels().create.assert_not_called()


def test_gmail_move_creates_missing_label(service):
    service.users().labels().create().execute.return_value = {"id": "Label_9"}
    gateway = GmailGateway(lambda account_id: service)

    asyncio.run(gateway.move("acct", "m1", "Travel"))

    service.users().messages().modify.assert_called_with(
        userId="me", id="m1", body={"addLabelIds": ["Label_9"], "removeLabelIds": ["INBOX"]}
    )


def test_gmail_services_are_cached_per_account(service):
    factory = MagicMock(return_value=service)
    gateway = GmailGateway(factory)

    async def run():
        await gateway.mark_read("a", "m1", True)
        await gateway.mark_read("a", "m2", False)
        await gateway.archive("b", "m3")

    asyncio.run(run())

    assert [c.args for c in factory.call_args_list] == [("a",), ("b",)]


def test_open_link_refused():
    gateway = GmailGateway(lambda account_id: None, open_link=lambda url: False)
    with pytest.raises(ConnectionError):
        asyncio.run(gateway.open_external_link("https://shop.example/u"))


def test_gmail_calls_for_one_account_stay_serialized_after_timeout():
    """A timed-out call keeps the account busy until its worker thread finishes."""
    guard = threading.Lock()
    running = 0
    peak = 0

    def slow_execute():
        nonlocal running, peak
        with guard:
            running += 1
            peak = max(peak, running)
        time.sleep(0.3)
        with guard:
            running -= 1
        return {}

    service = MagicMock()
    service.users().messages().modify().execute.side_effect = slow_execute
    gateway = GmailGateway(lambda account_id: service)

    async def run():
        with pytest.raises(ProviderUnavailable):
            await call_provider(lambda: gateway.archive("acct", "m1"), "archive", "m1", timeout=0.05)
        await gateway.archive("acct", "m2")

    asyncio.run(run())

    assert peak == 1


def test_gmail_service_is_built_in_a_worker_thread(service):
    threads = []

    def factory(account_id):
        threads.append(threading.current_thread())
        return service

    asyncio.run(GmailGateway(factory).archive("acct", "m1"))

    assert len(threads) == 1
    assert threads[0] is not threading.main_thread()
