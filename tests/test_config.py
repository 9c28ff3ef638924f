"""Tests for mailwatch.config and mailwatch.models."""

from __future__ import annotations

import pytest
from pydantic import SecretStr, ValidationError

from mailwatch.config import ControlConfig, RetryConfig, RunConfig
from mailwatch.models import AccountDescriptor


class TestControlConfig:
    def test_defaults(self):
        cfg = ControlConfig()
        assert cfg.host == "127.0.0.1"
        assert cfg.port == 8765
        assert cfg.base_url == "http://127.0.0.1:8765"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MAILWATCH_CONTROL_PORT", "9999")
        assert ControlConfig().port == 9999


class TestRetryConfig:
    def test_defaults(self):
        cfg = RetryConfig()
        assert cfg.max_attempts == 5
        assert cfg.initial_wait_seconds == 1.0
        assert cfg.max_wait_seconds == 60.0
        assert cfg.multiplier == 2.0

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MAILWATCH_RETRY_MAX_ATTEMPTS", "7")
        assert RetryConfig().max_attempts == 7


class TestRunConfig:
    def test_defaults(self):
        cfg = RunConfig()
        assert cfg.notification_timeout == 10.0
        assert cfg.error_timeout == 0.0
        assert cfg.poll_interval_seconds == 60.0
        assert cfg.verbose is False
        assert cfg.log_level == "INFO"
        assert isinstance(cfg.control, ControlConfig)
        assert isinstance(cfg.retry, RetryConfig)

    def test_verbose_level(self):
        assert RunConfig(verbose=True).log_level == "DEBUG"

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("MAILWATCH_NOTIFICATION_TIMEOUT", "3")
        monkeypatch.setenv("MAILWATCH_CONFIG_PATH", "/etc/mailwatch.conf")
        cfg = RunConfig()
        assert cfg.notification_timeout == 3.0
        assert cfg.config_path == "/etc/mailwatch.conf"

    def test_with_defaults_returns_new_object(self):
        cfg = RunConfig(poll_interval_seconds=5.0)
        updated = cfg.with_defaults({"notification_timeout": "4"})
        assert updated.notification_timeout == 4.0
        assert updated.poll_interval_seconds == 5.0
        assert cfg.notification_timeout == 10.0

    def test_with_defaults_keeps_nested(self):
        cfg = RunConfig(control=ControlConfig(port=1234))
        assert cfg.with_defaults({}).control.port == 1234

    def test_with_defaults_rejects_unknown(self):
        with pytest.raises(ValueError, match="unknown run settings"):
            RunConfig().with_defaults({"colour": "blue"})

    def test_with_defaults_validates(self):
        with pytest.raises(ValidationError):
            RunConfig().with_defaults({"notification_timeout": "soon"})


class TestAccountDescriptor:
    def test_port_defaults(self):
        tls = AccountDescriptor(id="a", host="h", username="u", password="p")
        plain = AccountDescriptor(id="b", host="h", username="u", password="p", no_ssl=True)
        custom = AccountDescriptor(id="c", host="h", username="u", password="p", port=1993)
        assert tls.effective_port == 993
        assert plain.effective_port == 143
        assert custom.effective_port == 1993

    def test_password_is_secret(self):
        acct = AccountDescriptor(id="a", host="h", username="u", password="hunter2")
        assert isinstance(acct.password, SecretStr)
        assert "hunter2" not in repr(acct)

    def test_frozen(self):
        acct = AccountDescriptor(id="a", host="h", username="u", password="p")
        with pytest.raises(ValidationError):
            acct.host = "other"

    def test_host_required(self):
        with pytest.raises(ValidationError):
            AccountDescriptor(id="a", host="", username="u", password="p")
