"""Tenacity retry wrapper driven by RetryConfig."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_when_event_set,
    wait_exponential,
)

from .config import RetryConfig

logger = structlog.get_logger()


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome is not None else None
    logger.warning(
        "retrying",
        operation=getattr(state.fn, "__qualname__", repr(state.fn)),
        attempt=state.attempt_number,
        wait_seconds=round(state.next_action.sleep, 2) if state.next_action else None,
        error=str(exc),
    )


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = (OSError,),
    stop_event: asyncio.Event | None = None,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    Only *retryable_exceptions* are retried; anything else propagates on
    the first failure.  Once the attempts are used up the last exception
    is re-raised unchanged.

    With *stop_event*, the backoff sleep ends as soon as the event is set,
    and a failure seen while it is set is re-raised instead of retried.
    The attempt that follows an interrupted sleep still runs, so the
    wrapped function should check the event itself.

    Usage::

        @with_retry(settings.retry, retryable_exceptions=(OSError,))
        async def connect() -> None: ...
    """
    stop = stop_after_attempt(config.max_attempts)
    extra: dict[str, object] = {}
    if stop_event is not None:
        stop = stop | stop_when_event_set(stop_event)

        async def _sleep(seconds: float) -> None:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=seconds)

        extra["sleep"] = _sleep

    return retry(
        stop=stop,
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        before_sleep=_log_retry,
        reraise=True,
        **extra,
    )
