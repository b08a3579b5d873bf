"""Provider gateways: remote mailbox side effects (archive, delete, move, read state)."""

from __future__ import annotations

import asyncio
import logging
import threading
import webbrowser
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from googleapiclient.discovery import Resource
from googleapiclient.errors import HttpError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from mail_intelligence.constants import PROVIDER_CALL_TIMEOUT
from mail_intelligence.errors import ActionExecutionError, ProviderUnavailable

logger = logging.getLogger(__name__)


class ProviderGateway(Protocol):
    """Side effects against a remote mailbox. Every method may fail independently."""

    async def archive(self, account_id: str, message_id: str) -> None: ...

    async def delete(self, account_id: str, message_id: str) -> None: ...

    async def move(self, account_id: str, message_id: str, folder: str) -> None: ...

    async def mark_read(self, account_id: str, message_id: str, read: bool) -> None: ...

    async def open_external_link(self, url: str) -> None: ...


async def call_provider(
    call: Callable[[], Awaitable[None]],
    action: str,
    message_id: str,
    timeout: float | None = PROVIDER_CALL_TIMEOUT,
) -> None:
    """Await one gateway call under a timeout, normalizing its failures.

    Raises ProviderUnavailable on timeout or transport errors and
    ActionExecutionError for anything else the provider rejects.
    """
    try:
        await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProviderUnavailable(action, message_id, f"no answer within {timeout}s") from exc
    except (ConnectionError, OSError) as exc:
        raise ProviderUnavailable(action, message_id, str(exc)) from exc
    except ActionExecutionError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise ActionExecutionError(action, message_id, str(exc)) from exc


@dataclass
class GatewayCall:
    method: str
    account_id: str = ""
    message_id: str = ""
    argument: str | bool | None = None


@dataclass
class DryRunGateway:
    """Records requested side effects without touching any mailbox."""

    calls: list[GatewayCall] = field(default_factory=list)

    def _record(self, call: GatewayCall) -> None:
        logger.info("[dry run] %s %s %s", call.method, call.message_id, call.argument or "")
        self.calls.append(call)

    async def archive(self, account_id: str, message_id: str) -> None:
        self._record(GatewayCall("archive", account_id, message_id))

    async def delete(self, account_id: str, message_id: str) -> None:
        self._record(GatewayCall("delete", account_id, message_id))

    async def move(self, account_id: str, message_id: str, folder: str) -> None:
        self._record(GatewayCall("move", account_id, message_id, folder))

    async def mark_read(self, account_id: str, message_id: str, read: bool) -> None:
        self._record(GatewayCall("mark_read", account_id, message_id, read))

    async def open_external_link(self, url: str) -> None:
        self._record(GatewayCall("open_external_link", argument=url))

    def methods(self) -> list[str]:
        return [c.method for c in self.calls]


# --- Gmail ---


def _is_retryable_http_error(exc: BaseException) -> bool:
    return isinstance(exc, HttpError) and exc.resp.status in (429, 500, 503)


_gmail_retry = retry(
    retry=retry_if_exception(_is_retryable_http_error),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)


class GmailGateway:
    """ProviderGateway over the Gmail API, one authorized service per account.

    The blocking Google client runs in worker threads. Calls for the same
    account hold a per-account thread lock for as long as the client is in
    use, so a call abandoned on timeout still finishes before the next one
    for that account starts. Services are built inside the worker as well,
    since building one may refresh a token or open the OAuth flow.
    """

    def __init__(
        self,
        service_factory: Callable[[str], Resource],
        open_link: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self._service_factory = service_factory
        self._open_link = open_link
        self._services: dict[str, Resource] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._label_ids: dict[tuple[str, str], str] = {}

    def _service(self, account_id: str) -> Resource:
        if account_id not in self._services:
            self._services[account_id] = self._service_factory(account_id)
        return self._services[account_id]

    def _call_locked(
        self, lock: threading.Lock, account_id: str, func: Callable[..., None], *args: Any
    ) -> None:
        with lock:
            func(self._service(account_id), *args)

    async def _run(self, account_id: str, func: Callable[..., None], *args: Any) -> None:
        lock = self._locks.setdefault(account_id, threading.Lock())
        await asyncio.to_thread(self._call_locked, lock, account_id, func, *args)

    @staticmethod
    @_gmail_retry
    def _modify(service: Resource, message_id: str, add: list[str], remove: list[str]) -> None:
        service.users().messages().modify(
            userId="me",
            id=message_id,
            body={"addLabelIds": add, "removeLabelIds": remove},
        ).execute()

    @staticmethod
    @_gmail_retry
    def _trash(service: Resource, message_id: str) -> None:
        service.users().messages().trash(userId="me", id=message_id).execute()

    @_gmail_retry
    def _label_id(self, service: Resource, account_id: str, name: str) -> str:
        key = (account_id, name)
        if key in self._label_ids:
            return self._label_ids[key]

        labels = service.users().labels().list(userId="me").execute().get("labels", [])
        for label in labels:
            self._label_ids[(account_id, label["name"])] = label["id"]

        if key not in self._label_ids:
            created = service.users().labels().create(
                userId="me",
                body={"name": name, "labelListVisibility": "labelShow"},
            ).execute()
            self._label_ids[key] = created["id"]
        return self._label_ids[key]

    def _move(self, service: Resource, account_id: str, message_id: str, folder: str) -> None:
        label_id = self._label_id(service, account_id, folder)
        self._modify(service, message_id, [label_id], ["INBOX"])

    async def archive(self, account_id: str, message_id: str) -> None:
        await self._run(account_id, self._modify, message_id, [], ["INBOX"])

    async def delete(self, account_id: str, message_id: str) -> None:
        await self._run(account_id, self._trash, message_id)

    async def move(self, account_id: str, message_id: str, folder: str) -> None:
        await self._run(account_id, self._move, account_id, message_id, folder)

    async def mark_read(self, account_id: str, message_id: str, read: bool) -> None:
        if read:
            await self._run(account_id, self._modify, message_id, [], ["UNREAD"])
        else:
            await self._run(account_id, self._modify, message_id, ["UNREAD"], [])

    async def open_external_link(self, url: str) -> None:
        opened = await asyncio.to_thread(self._open_link, url)
        if not opened:
            raise ConnectionError(f"No handler accepted {url}")
