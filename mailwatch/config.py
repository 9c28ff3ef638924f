"""Run configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars; the
CLI applies its flags on top and the config file's global section is folded
in once at startup with :meth:`RunConfig.with_defaults`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import Field
from pydantic_settings import BaseSettings


class ControlConfig(BaseSettings):
    """Where the stop endpoint of a running instance listens."""

    model_config = {"env_prefix": "MAILWATCH_CONTROL_"}

    host: str = Field(default="127.0.0.1", description="Listen address of the stop endpoint")
    port: int = Field(default=8765, description="Listen port of the stop endpoint")
    timeout_seconds: float = Field(
        default=5.0,
        description="HTTP timeout used by the --stop client",
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class RetryConfig(BaseSettings):
    """Reconnect backoff settings driven by Tenacity."""

    model_config = {"env_prefix": "MAILWATCH_RETRY_"}

    max_attempts: int = Field(default=5, description="Connection attempts before giving up")
    initial_wait_seconds: float = Field(
        default=1.0,
        description="Initial backoff wait in seconds",
    )
    max_wait_seconds: float = Field(
        default=60.0,
        description="Maximum backoff wait in seconds",
    )
    multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")


class RunConfig(BaseSettings):
    """Process-wide settings for one run.

    Per-account values in :class:`~mailwatch.models.AccountDescriptor`
    take precedence over the timeouts defined here.
    """

    model_config = {"env_prefix": "MAILWATCH_"}

    config_path: str = Field(
        default="~/.config/mailwatch/accounts.conf",
        description="Account configuration file",
    )
    notification_timeout: float = Field(
        default=10.0,
        ge=0,
        description="Seconds a new-mail alert stays visible",
    )
    error_timeout: float = Field(
        default=0.0,
        ge=0,
        description="Seconds an error alert stays visible (0 = until dismissed)",
    )
    socket_timeout: float = Field(default=60.0, gt=0, description="IMAP socket timeout")
    poll_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Seconds between mailbox polls",
    )
    verbose: bool = Field(default=False, description="Enable DEBUG logging")
    json_logs: bool = Field(default=False, description="Emit JSON log lines")
    log_file: str = Field(
        default="~/.cache/mailwatch/mailwatch.log",
        description="Log destination when running in the background",
    )

    control: ControlConfig = Field(default_factory=ControlConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.verbose else "INFO"

    def with_defaults(self, defaults: Mapping[str, Any]) -> RunConfig:
        """Return a copy with the config file's global defaults applied."""
        unknown = set(defaults) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"unknown run settings: {', '.join(sorted(unknown))}")
        return type(self).model_validate({**self.model_dump(), **defaults})
