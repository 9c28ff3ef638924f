"""Desktop notifications through ``notify-send``."""

from __future__ import annotations

import asyncio

import structlog

logger = structlog.get_logger()

APP_NAME = "mailwatch"


class Notifier:
    """Raise desktop alerts.

    Best effort: when ``notify-send`` is not installed a single warning is
    logged and later alerts are dropped.  Any other failure to run it is
    logged as a warning and never raised to the caller.
    """

    def __init__(self, command: str = "notify-send") -> None:
        self._command = command
        self._available = True

    async def notify(
        self,
        summary: str,
        body: str = "",
        *,
        timeout: float,
        urgency: str = "normal",
    ) -> None:
        """Show one alert; *timeout* is in seconds, ``0`` keeps it until dismissed."""
        if not self._available:
            return

        args = [
            "-a",
            APP_NAME,
            "-u",
            urgency,
            "-t",
            str(int(timeout * 1000)),
            summary,
        ]
        if body:
            args.append(body)

        try:
            proc = await asyncio.create_subprocess_exec(
                self._command,
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            self._available = False
            logger.warning("notifier_unavailable", command=self._command)
            return
        except OSError as exc:
            logger.warning("notification_failed", command=self._command, error=str(exc))
            return

        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            logger.warning(
                "notification_failed",
                command=self._command,
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace").strip(),
            )

    async def new_mail(self, account_id: str, sender: str, subject: str, *, timeout: float) -> None:
        await self.notify(
            f"New mail ({account_id})",
            f"From: {sender}\n{subject or '(no subject)'}",
            timeout=timeout,
        )

    async def error(self, account_id: str, message: str, *, timeout: float) -> None:
        await self.notify(
            f"Mail watcher stopped ({account_id})",
            message,
            timeout=timeout,
            urgency="critical",
        )
