"""MailWatcher: poll one IMAP account and announce new mail."""

from __future__ import annotations

import asyncio
import contextlib
import imaplib

import structlog

from .config import RunConfig
from .imap_client import AsyncImapClient, NewMail
from .interface import Watcher
from .models import AccountDescriptor, WatcherStatus
from .notifier import Notifier
from .retry import with_retry

logger = structlog.get_logger()

# Failures that end the current connection but not the watcher.
RECONNECTABLE: tuple[type[BaseException], ...] = (imaplib.IMAP4.abort, OSError)


class StopRequested(Exception):
    """disconnect() was called while the watcher was still connecting."""


class MailWatcher(Watcher):
    """Watcher for a single :class:`AccountDescriptor`.

    Runs a connect / poll / wait cycle as one asyncio task.  Dropped
    connections are retried with backoff; anything else (bad credentials,
    a missing mailbox, retries used up) is reported once through the
    ``error`` event and ends the task.
    """

    def __init__(self, account: AccountDescriptor, notifier: Notifier, settings: RunConfig) -> None:
        super().__init__(account.id)
        self.account = account
        self.status = WatcherStatus.STARTING
        self._notifier = notifier
        self._settings = settings
        self._client = AsyncImapClient(
            account,
            socket_timeout=account.socket_timeout or settings.socket_timeout,
        )
        self._stop_requested = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.messages_announced = 0

    @property
    def notification_timeout(self) -> float:
        if self.account.notification_timeout is not None:
            return self.account.notification_timeout
        return self._settings.notification_timeout

    @property
    def error_timeout(self) -> float:
        if self.account.error_timeout is not None:
            return self.account.error_timeout
        return self._settings.error_timeout

    @property
    def poll_interval(self) -> float:
        if self.account.poll_interval is not None:
            return self.account.poll_interval
        return self._settings.poll_interval_seconds

    # ------------------------------------------------------------------
    # Watcher interface
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"watcher {self.id} already started")
        self._task = asyncio.create_task(self._run(), name=f"watcher:{self.id}")

    def disconnect(self) -> None:
        logger.debug("watcher_disconnect_requested", account=self.id)
        self._stop_requested.set()

    async def join(self) -> None:
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            self._task.result()

    def abort(self) -> None:
        if self._task is not None:
            self._task.cancel()

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        @with_retry(
            self._settings.retry,
            retryable_exceptions=RECONNECTABLE,
            stop_event=self._stop_requested,
        )
        async def _attempt() -> None:
            if self._stop_requested.is_set():
                raise StopRequested
            await self._connect_unless_stopped()

        await _attempt()

    async def _connect_unless_stopped(self) -> None:
        """One connect attempt, abandoned as soon as :meth:`disconnect` is called."""
        connect = asyncio.ensure_future(self._client.connect())
        stop = asyncio.ensure_future(self._stop_requested.wait())
        try:
            await asyncio.wait({connect, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
            if not connect.done():
                # The blocking connect keeps running in its thread.
                connect.add_done_callback(self._drop_late_connection)
        if not connect.done():
            raise StopRequested
        connect.result()

    def _drop_late_connection(self, connect: asyncio.Future[None]) -> None:
        if not connect.cancelled() and connect.exception() is None:
            self._client.drop()

    async def _wait(self, seconds: float) -> None:
        """Sleep for *seconds* or until :meth:`disconnect` is called."""
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._stop_requested.wait(), timeout=seconds)

    async def _announce(self, mail: NewMail) -> None:
        logger.info("new_mail", account=self.id, uid=mail.uid, sender=mail.sender)
        await self._notifier.new_mail(
            self.id,
            mail.sender,
            mail.subject,
            timeout=self.notification_timeout,
        )
        self.messages_announced += 1

    async def _watch(self) -> None:
        await self._connect()
        if not self._client.has_baseline:
            await self._client.mark_baseline()
        self.status = WatcherStatus.WATCHING
        logger.info("watcher_started", account=self.id, poll_interval=self.poll_interval)

        while not self._stop_requested.is_set():
            try:
                batch = await self._client.poll_new_messages()
            except RECONNECTABLE as exc:
                self.status = WatcherStatus.RECONNECTING
                logger.warning("imap_connection_lost", account=self.id, error=str(exc))
                await self._client.disconnect()
                await self._connect()
                self.status = WatcherStatus.WATCHING
                continue

            for mail in batch:
                await self._announce(mail)
            await self._wait(self.poll_interval)

    async def _fail(self, message: str) -> None:
        self.status = WatcherStatus.FAILED
        self._emit_error(message)
        await self._notifier.error(self.id, message, timeout=self.error_timeout)

    async def _run(self) -> None:
        try:
            await self._watch()
        except asyncio.CancelledError:
            self._client.drop()
            logger.warning("watcher_aborted", account=self.id)
            raise
        except StopRequested:
            logger.info("watcher_stopped_while_connecting", account=self.id)
        except RECONNECTABLE as exc:
            if self._stop_requested.is_set():
                logger.info("watcher_stopped_while_connecting", account=self.id, error=str(exc))
            else:
                await self._fail(f"cannot reach {self.account.host}: {exc}")
        except imaplib.IMAP4.error as exc:
            await self._fail(f"IMAP error on {self.account.host}: {exc}")
        except Exception as exc:
            logger.exception("watcher_crashed", account=self.id)
            await self._fail(f"unexpected {type(exc).__name__}: {exc}")
        finally:
            await self._client.disconnect()
            if self.status != WatcherStatus.FAILED:
                self.status = WatcherStatus.STOPPED
            logger.info("watcher_stopped", account=self.id, status=self.status.value)
