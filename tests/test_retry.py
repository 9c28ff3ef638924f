"""Tests for mailwatch.retry."""

from __future__ import annotations

import asyncio
import imaplib
import time

import pytest
from structlog.testing import capture_logs

from mailwatch.config import RetryConfig
from mailwatch.retry import with_retry


@pytest.fixture
def config() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_wait_seconds=0.01, max_wait_seconds=0.1)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_succeeds_first_try(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            return "ok"

        assert await fn() == "ok"
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionResetError("transient")
            return "recovered"

        assert await fn() == "recovered"
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries_and_reraises(self, config: RetryConfig):
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise TimeoutError("still down")

        with pytest.raises(TimeoutError, match="still down"):
            await fn()
        assert call_count == 3

    @pytest.mark.asyncio
    async def test_non_retryable_fails_immediately(self, config: RetryConfig):
        call_count = 0

        @with_retry(config, retryable_exceptions=(imaplib.IMAP4.abort, OSError))
        async def fn():
            nonlocal call_count
            call_count += 1
            raise imaplib.IMAP4.error("AUTHENTICATIONFAILED")

        with pytest.raises(imaplib.IMAP4.error):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_logs_each_retry(self, config: RetryConfig):
        @with_retry(config)
        async def fn():
            raise OSError("refused")

        with capture_logs() as logs:
            with pytest.raises(OSError):
                await fn()

        retries = [e for e in logs if e["event"] == "retrying"]
        assert [e["attempt"] for e in retries] == [1, 2]
        assert retries[0]["error"] == "refused"
        assert retries[0]["log_level"] == "warning"

    @pytest.mark.asyncio
    async def test_single_attempt(self):
        config = RetryConfig(max_attempts=1, initial_wait_seconds=0.01, max_wait_seconds=0.1)
        call_count = 0

        @with_retry(config)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise OSError("fail")

        with pytest.raises(OSError):
            await fn()
        assert call_count == 1

    @pytest.mark.asyncio
    async def test_stop_event_ends_backoff(self):
        config = RetryConfig(max_attempts=5, initial_wait_seconds=10.0, max_wait_seconds=10.0)
        stop = asyncio.Event()
        call_count = 0

        @with_retry(config, stop_event=stop)
        async def fn():
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                asyncio.get_running_loop().call_later(0.05, stop.set)
            raise OSError("refused")

        started = time.monotonic()
        with pytest.raises(OSError, match="refused"):
            await asyncio.wait_for(fn(), 2)

        assert time.monotonic() - started < 2
        assert call_count == 2

    @pytest.mark.asyncio
    async def test_stop_event_already_set_skips_retry(self, config: RetryConfig):
        stop = asyncio.Event()
        stop.set()
        call_count = 0

        @with_retry(config, stop_event=stop)
        async def fn():
            nonlocal call_count
            call_count += 1
            raise OSError("refused")

        with pytest.raises(OSError):
            await fn()
        assert call_count == 1
