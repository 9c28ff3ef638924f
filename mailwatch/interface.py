"""Watcher and Control: the ABCs the supervisor drives."""

from __future__ import annotations

import abc
from collections.abc import Callable

ErrorCallback = Callable[[str], None]
DisconnectCallback = Callable[[], None]


class Watcher(abc.ABC):
    """Abstract interface for one long-running account watcher.

    A watcher owns a single account connection and runs as its own task.
    It reports fatal problems through the ``error`` event; whoever
    subscribes decides what happens next.  Subscribe before calling
    :meth:`start`.
    """

    def __init__(self, watcher_id: str) -> None:
        self.id = watcher_id
        self._error_callbacks: list[ErrorCallback] = []

    def on_error(self, callback: ErrorCallback) -> None:
        """Subscribe *callback* to the ``error(message)`` event."""
        self._error_callbacks.append(callback)

    def _emit_error(self, message: str) -> None:
        for callback in list(self._error_callbacks):
            callback(message)

    @abc.abstractmethod
    def start(self) -> None:
        """Start the watcher task.  Must be called from the running loop."""
        ...

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Ask the watcher to stop.  Returns immediately."""
        ...

    @abc.abstractmethod
    async def join(self) -> None:
        """Wait until the watcher task has fully exited."""
        ...

    @abc.abstractmethod
    def abort(self) -> None:
        """Stop immediately, skipping the orderly disconnect."""
        ...


class Control(abc.ABC):
    """Abstract interface for the external stop channel of a running instance."""

    def __init__(self) -> None:
        self._disconnect_callbacks: list[DisconnectCallback] = []

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """Subscribe *callback* to the ``disconnect`` event."""
        self._disconnect_callbacks.append(callback)

    def _emit_disconnect(self) -> None:
        for callback in list(self._disconnect_callbacks):
            callback()

    @abc.abstractmethod
    def start(self) -> None:
        """Start listening for stop requests."""
        ...

    @abc.abstractmethod
    async def join(self) -> None:
        """Stop listening and wait until the listener has exited."""
        ...

    @abc.abstractmethod
    def abort(self) -> None:
        """Tear the listener down immediately."""
        ...
