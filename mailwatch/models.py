"""Data models shared across the watcher, supervisor and config loader."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, SecretStr

IMAPS_PORT = 993
IMAP_PORT = 143


class WatcherStatus(str, Enum):
    """Runtime status of a single account watcher."""

    STARTING = "starting"
    WATCHING = "watching"
    RECONNECTING = "reconnecting"
    FAILED = "failed"
    STOPPED = "stopped"


class AccountDescriptor(BaseModel):
    """One mail account to watch.

    Built once by the config loader and never mutated afterwards; the
    :class:`~mailwatch.watcher.MailWatcher` constructed from it owns it.
    """

    model_config = {"frozen": True}

    id: str = Field(description="Account id used in logs and notifications")
    host: str = Field(min_length=1, description="IMAP server hostname")
    port: int | None = Field(
        default=None,
        description="IMAP server port (993 with TLS, 143 without)",
    )
    username: str = Field(min_length=1, description="IMAP login username")
    password: SecretStr = Field(description="IMAP login password")
    mailbox: str = Field(default="INBOX", description="Mailbox to watch")
    certificate: str | None = Field(
        default=None,
        description="CA certificate file used to verify the server",
    )
    no_ssl: bool = Field(default=False, description="Connect without TLS")
    work_account: bool = Field(
        default=False,
        description="Only watched when work mode is requested",
    )
    notification_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds a new-mail alert stays visible",
    )
    error_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Seconds an error alert stays visible",
    )
    socket_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Socket timeout for IMAP operations",
    )
    poll_interval: float | None = Field(
        default=None,
        gt=0,
        description="Seconds between mailbox polls",
    )

    @property
    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return IMAP_PORT if self.no_ssl else IMAPS_PORT
