"""Supervisor: starts every watcher, arbitrates shutdown, tears down in order."""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Sequence

import structlog

from .interface import Control, Watcher
from .shutdown import ShutdownSignal

logger = structlog.get_logger()

EXIT_OK = 0


class Supervisor:
    """Owns the watchers and the external control endpoint for one run.

    Shutdown can be requested by any watcher's ``error`` event, by the
    control endpoint's ``disconnect`` event, or by an OS signal.  All of
    them go through :meth:`trigger_shutdown`, which fires a
    :class:`ShutdownSignal` at most once; teardown happens only in
    :meth:`run`, after its single wait, so it runs exactly once.

    Teardown order:

    1. ``disconnect()`` every watcher
    2. ``join()`` every watcher
    3. ``join()`` the control endpoint

    A single watcher's fatal error stops the whole run.
    """

    def __init__(self, control: Control) -> None:
        self._control = control
        self._shutdown = ShutdownSignal()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.fired

    def trigger_shutdown(self, reason: str) -> bool:
        """Request shutdown.  Only the first call has any effect."""
        fired = self._shutdown.fire(reason)
        if fired:
            logger.info("shutdown_triggered", reason=reason)
        else:
            logger.debug(
                "shutdown_already_triggered",
                reason=reason,
                first_reason=self._shutdown.reason,
            )
        return fired

    def _on_watcher_error(self, watcher: Watcher, message: str) -> None:
        logger.error("watcher_failed", account=watcher.id, error=message)
        self.trigger_shutdown(f"watcher:{watcher.id}")

    def _on_external_disconnect(self) -> None:
        self.trigger_shutdown("external")

    async def run(self, watchers: Sequence[Watcher]) -> int:
        """Run until shutdown is triggered, then tear everything down.

        Blocks the calling task for the whole run.  If that task is
        cancelled (Ctrl-C in the foreground) every watcher and the control
        endpoint are aborted without the orderly disconnect, and the
        cancellation is re-raised.
        """
        if not watchers:
            raise ValueError("Supervisor.run() needs at least one watcher")

        # Subscribe before anything starts so no event can be missed.
        self._control.on_disconnect(self._on_external_disconnect)
        for watcher in watchers:
            watcher.on_error(functools.partial(self._on_watcher_error, watcher))

        logger.info("supervisor_starting", watchers=[w.id for w in watchers])
        self._control.start()
        for watcher in watchers:
            watcher.start()

        try:
            reason = await self._shutdown.wait()
        except asyncio.CancelledError:
            logger.warning("supervisor_interrupted")
            await self._abort(watchers)
            raise

        logger.info("supervisor_stopping", reason=reason)
        for watcher in watchers:
            watcher.disconnect()
        for watcher in watchers:
            await watcher.join()
        await self._control.join()

        logger.info("supervisor_stopped", reason=reason)
        return EXIT_OK

    async def _abort(self, watchers: Sequence[Watcher]) -> None:
        for watcher in watchers:
            watcher.abort()
        self._control.abort()
        results = await asyncio.gather(
            *(watcher.join() for watcher in watchers),
            self._control.join(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning("abort_join_failed", error=str(result))
