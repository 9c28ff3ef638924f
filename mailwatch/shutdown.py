"""The run-wide shutdown signal and SIGTERM / SIGHUP wiring."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable

import structlog

logger = structlog.get_logger()


class ShutdownSignal:
    """One-shot broadcast: fires at most once per run.

    :meth:`fire` may be called any number of times from any task on the
    loop; only the first call records a reason and wakes :meth:`wait`.
    The check and the set happen without yielding to the loop, so two
    callers can never both see themselves as first.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: str | None = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def fire(self, reason: str) -> bool:
        """Fire the signal.  Returns *True* only for the call that fired it."""
        if self._event.is_set():
            return False
        self._reason = reason
        self._event.set()
        return True

    async def wait(self) -> str:
        """Block until the signal has fired and return the first reason."""
        await self._event.wait()
        assert self._reason is not None
        return self._reason


def install_signal_handlers(
    trigger: Callable[[str], object],
    signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGHUP),
) -> None:
    """Register handlers that call *trigger* with the signal name.

    Call this once from the running event loop.  SIGINT is left alone;
    ``asyncio.run`` turns it into cancellation of the main task, the
    forced-stop path.
    """
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.info("shutdown_signal_received", signal=sig.name)
        trigger(f"signal:{sig.name}")

    for sig in signals:
        loop.add_signal_handler(sig, _handle, sig)
