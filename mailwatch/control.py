"""External control: a local HTTP endpoint that asks a running instance to stop.

The running instance serves a tiny FastAPI app with uvicorn on the
supervisor's event loop.  ``mailwatch --stop`` uses :class:`ControlClient`
to POST to it from a separate process.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from collections.abc import Iterator

import httpx
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .config import ControlConfig
from .interface import Control

logger = structlog.get_logger()

SERVICE_NAME = "mailwatch"


class ControlError(Exception):
    """The stop channel could not be set up, or a stop request was refused."""


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves process signals to the caller."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def create_control_app(control: ExternalControl) -> FastAPI:
    """Build the FastAPI app with ``/shutdown`` and ``/health`` routes."""
    app = FastAPI(title=f"{SERVICE_NAME} control", docs_url=None, redoc_url=None, openapi_url=None)

    @app.post("/shutdown")
    async def shutdown() -> JSONResponse:
        control.request_disconnect()
        return JSONResponse({"accepted": True}, status_code=202)

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"service": SERVICE_NAME, "running": control.is_serving})

    return app


class ExternalControl(Control):
    """Server side of the stop channel.

    :meth:`start` binds the listening socket synchronously so that a port
    already in use (usually another running instance) fails before any
    watcher is started.
    """

    def __init__(self, config: ControlConfig) -> None:
        super().__init__()
        self._config = config
        self._server: _EmbeddedServer | None = None
        self._task: asyncio.Task[None] | None = None
        self._stopping = False
        self._port: int | None = None

    @property
    def port(self) -> int | None:
        """Port actually bound, once started (useful with port 0)."""
        return self._port

    @property
    def is_serving(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopping

    def request_disconnect(self) -> None:
        logger.info("external_stop_requested")
        self._emit_disconnect()

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self._config.host, self._config.port))
        except OSError as exc:
            sock.close()
            raise ControlError(
                f"cannot listen on {self._config.host}:{self._config.port} "
                f"({exc.strerror}), is another instance running?"
            ) from exc
        self._port = sock.getsockname()[1]
        return sock

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("control already started")

        sock = self._bind()
        config = uvicorn.Config(
            create_control_app(self),
            log_config=None,
            log_level="warning",
            lifespan="off",
            access_log=False,
        )
        self._server = _EmbeddedServer(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]), name="external-control")
        self._task.add_done_callback(self._on_serve_done)
        logger.info("control_listening", host=self._config.host, port=self._port)

    def _on_serve_done(self, task: asyncio.Task[None]) -> None:
        if self._stopping:
            return
        # Listener exited without join(): handled as a stop request.
        logger.error(
            "control_listener_exited",
            error=None if task.cancelled() or task.exception() is None else str(task.exception()),
        )
        self._emit_disconnect()

    async def join(self) -> None:
        if self._task is None:
            return
        self._stopping = True
        assert self._server is not None
        self._server.should_exit = True
        await asyncio.wait({self._task})
        if not self._task.cancelled():
            self._task.result()
        logger.info("control_stopped")

    def abort(self) -> None:
        self._stopping = True
        if self._task is not None:
            self._task.cancel()


class ControlClient:
    """Client side of the stop channel, used by ``mailwatch --stop``."""

    def __init__(self, config: ControlConfig) -> None:
        self._config = config

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._config.base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
        )

    async def send_shutdown(self) -> bool:
        """Ask the running instance to shut down.

        Returns *False* if nothing is listening.  Raises
        :class:`ControlError` if something answered but did not accept the
        request.
        """
        try:
            async with self._client() as client:
                response = await client.post("/shutdown")
        except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
            logger.debug("control_unreachable", url=self._config.base_url, error=str(exc))
            return False
        except httpx.TransportError as exc:
            raise ControlError(f"stop request to {self._config.base_url} failed: {exc}") from exc

        if response.status_code != 202:
            raise ControlError(
                f"{self._config.base_url} answered {response.status_code} "
                "but did not accept the stop request"
            )
        logger.debug("control_stop_sent", url=self._config.base_url)
        return True

    async def is_running(self) -> bool:
        """Return *True* if a mailwatch instance answers on the control port."""
        try:
            async with self._client() as client:
                response = await client.get("/health")
        except httpx.TransportError:
            return False
        if not response.is_success:
            return False
        try:
            return response.json().get("service") == SERVICE_NAME
        except ValueError:
            return False
