"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
import ssl
from dataclasses import dataclass
from email.header import decode_header, make_header
from email.parser import BytesHeaderParser

import structlog

from .models import AccountDescriptor

logger = structlog.get_logger()

HEADER_FETCH = "(BODY.PEEK[HEADER.FIELDS (FROM SUBJECT)])"


@dataclass
class NewMail:
    """Headers of a message that arrived since the last poll."""

    uid: int
    sender: str
    subject: str


def _decode(value: str | None) -> str:
    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (UnicodeDecodeError, LookupError):
        return value


class AsyncImapClient:
    """Async-friendly IMAP client for a single account.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop.  The client
    remembers the highest UID it has seen across reconnects.
    """

    def __init__(self, account: AccountDescriptor, *, socket_timeout: float) -> None:
        self._account = account
        self._socket_timeout = socket_timeout
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._last_uid: int | None = None

    @property
    def last_uid(self) -> int | None:
        return self._last_uid

    @property
    def has_baseline(self) -> bool:
        return self._last_uid is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect, login, and select the configured mailbox."""
        await asyncio.to_thread(self._connect_sync)
        logger.info(
            "imap_connected",
            account=self._account.id,
            host=self._account.host,
            mailbox=self._account.mailbox,
        )

    def _connect_sync(self) -> None:
        account = self._account
        if account.no_ssl:
            conn = imaplib.IMAP4(account.host, account.effective_port, timeout=self._socket_timeout)
        else:
            context = ssl.create_default_context(cafile=account.certificate)
            conn = imaplib.IMAP4_SSL(
                account.host,
                account.effective_port,
                ssl_context=context,
                timeout=self._socket_timeout,
            )
        try:
            conn.login(account.username, account.password.get_secret_value())
            status, data = conn.select(account.mailbox, readonly=True)
            if status != "OK":
                raise imaplib.IMAP4.error(
                    f"cannot select mailbox {account.mailbox!r}: {data[0]!r}"
                )
        except BaseException:
            conn.shutdown()
            raise
        self._conn = conn

    async def disconnect(self) -> None:
        """Close mailbox and logout."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            logger.info("imap_disconnected", account=self._account.id)

    def drop(self) -> None:
        """Close the socket right away, without a LOGOUT round trip."""
        if self._conn is not None:
            try:
                self._conn.shutdown()
            except OSError:
                pass
            self._conn = None
            logger.info("imap_dropped", account=self._account.id)

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        try:
            self._conn.close()
        except (imaplib.IMAP4.error, OSError):
            pass
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def mark_baseline(self) -> int:
        """Treat everything currently in the mailbox as already seen."""
        assert self._conn is not None, "Not connected"
        uids = await asyncio.to_thread(self._search_uids, "ALL")
        self._last_uid = max(uids, default=0)
        logger.debug("imap_baseline", account=self._account.id, last_uid=self._last_uid)
        return self._last_uid

    async def poll_new_messages(self) -> list[NewMail]:
        """Fetch headers of messages with a UID above the last seen one.

        Updates ``last_uid`` after each successful poll.
        """
        assert self._conn is not None, "Not connected"
        assert self._last_uid is not None, "Baseline not set"
        return await asyncio.to_thread(self._poll_sync)

    # ------------------------------------------------------------------
    # Synchronous helpers (run in thread)
    # ------------------------------------------------------------------

    def _search_uids(self, criteria: str) -> list[int]:
        assert self._conn is not None
        status, data = self._conn.uid("SEARCH", None, criteria)
        if status != "OK":
            raise imaplib.IMAP4.error(f"UID SEARCH failed: {data!r}")
        if not data or not data[0]:
            return []
        return [int(uid) for uid in data[0].split()]

    def _poll_sync(self) -> list[NewMail]:
        assert self._conn is not None and self._last_uid is not None
        # Re-issue NOOP so the server reports mailbox changes.
        self._conn.noop()

        # "n:*" always matches the highest UID, even when it is below n.
        candidates = [
            uid
            for uid in self._search_uids(f"UID {self._last_uid + 1}:*")
            if uid > self._last_uid
        ]
        results: list[NewMail] = []
        parser = BytesHeaderParser()

        for uid in sorted(candidates):
            status, msg_data = self._conn.uid("FETCH", str(uid), HEADER_FETCH)
            if status != "OK" or not msg_data or not isinstance(msg_data[0], tuple):
                logger.debug("imap_fetch_skipped", account=self._account.id, uid=uid)
                continue

            headers = parser.parsebytes(msg_data[0][1])
            results.append(
                NewMail(
                    uid=uid,
                    sender=_decode(headers.get("From")),
                    subject=_decode(headers.get("Subject")),
                )
            )

        if candidates:
            self._last_uid = max(candidates)

        logger.debug(
            "imap_poll_complete",
            account=self._account.id,
            fetched=len(results),
            last_uid=self._last_uid,
        )
        return results
