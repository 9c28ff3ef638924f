"""Tests for mailwatch.logging."""

from __future__ import annotations

import json
import logging

import structlog

from mailwatch.logging import setup_logging


class TestSetupLogging:
    def test_json_mode(self):
        setup_logging(json=True, level="INFO")
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1

    def test_console_mode(self):
        setup_logging(json=False, level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG

    def test_level_case_insensitive(self):
        setup_logging(level="warning")
        assert logging.getLogger().level == logging.WARNING

    def test_replaces_existing_handlers(self):
        root = logging.getLogger()
        root.addHandler(logging.StreamHandler())
        root.addHandler(logging.StreamHandler())
        assert len(root.handlers) >= 2
        setup_logging()
        assert len(root.handlers) == 1

    def test_structlog_produces_output(self):
        setup_logging(json=True, level="DEBUG")
        logger = structlog.get_logger("test_logger")
        logger.info("test_event", key="value")

    def test_log_file(self, tmp_path):
        path = tmp_path / "logs" / "mailwatch.log"
        setup_logging(json=True, level="INFO", log_file=str(path))
        try:
            structlog.get_logger("mailwatch").info("detached", pid=42)
            logging.getLogger("uvicorn.error").warning("stdlib line")
            for handler in logging.getLogger().handlers:
                handler.flush()

            lines = [json.loads(line) for line in path.read_text().splitlines()]
        finally:
            setup_logging()

        assert lines[0]["event"] == "detached"
        assert lines[0]["pid"] == 42
        assert lines[1]["event"] == "stdlib line"
        assert lines[1]["level"] == "warning"
