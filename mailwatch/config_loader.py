"""Account configuration file parsing.

The file is line oriented. Each non-blank, non-comment line is one
``field value`` token (``field = value`` also works); flags such as
``no_ssl`` take no value. Options before the first ``account`` line are
global defaults, every ``account [id]`` line opens a new account block::

    notification_timeout 8

    account personal
    host imap.example.com
    username alice
    password hunter2

    account office
    host mail.corp.example
    user alice@corp.example
    pass s3cret
    certificate ~/certs/corp-ca.pem
    work_account
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from .models import AccountDescriptor

logger = structlog.get_logger()

ACCOUNT_START = "account"

ACCOUNT_FIELDS = frozenset(
    {
        "id",
        "host",
        "port",
        "username",
        "password",
        "mailbox",
        "certificate",
        "no_ssl",
        "work_account",
        "notification_timeout",
        "error_timeout",
        "socket_timeout",
        "poll_interval",
    }
)
FLAG_FIELDS = frozenset({"no_ssl", "work_account"})
GLOBAL_FIELDS = frozenset({"notification_timeout"})
REQUIRED_FIELDS = ("host", "username", "password")

ALIASES = {
    "user": "username",
    "pass": "password",
    "cert": "certificate",
    "box": "mailbox",
}


class ConfigError(Exception):
    """The account configuration is unusable."""

    def __init__(self, message: str, line: int | None = None) -> None:
        self.line = line
        super().__init__(f"line {line}: {message}" if line is not None else message)


@dataclass(frozen=True)
class Token:
    field: str
    value: str
    line: int


@dataclass
class LoadedConfig:
    """Result of parsing a configuration source."""

    accounts: list[AccountDescriptor] = field(default_factory=list)
    defaults: dict[str, Any] = field(default_factory=dict)


def tokenize(lines: Iterable[str]) -> Iterator[Token]:
    """Split configuration text into ``(field, value)`` tokens."""
    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        name, *rest_of_line = line.split(None, 1)
        value = rest_of_line[0] if rest_of_line else ""
        if "=" in name:
            name, _, rest = name.partition("=")
            value = f"{rest} {value}"
        elif value.lstrip().startswith("="):
            value = value.lstrip()[1:]

        yield Token(field=name.strip().lower(), value=value.strip(), line=number)


@dataclass
class _PendingAccount:
    line: int
    values: dict[str, Any] = field(default_factory=dict)


class _Parser:
    """State machine: global section, then one pending account at a time."""

    def __init__(self) -> None:
        self.result = LoadedConfig()
        self._pending: _PendingAccount | None = None
        self._seen_ids: set[str] = set()

    def feed(self, token: Token) -> None:
        if token.field == ACCOUNT_START:
            self._flush()
            self._pending = _PendingAccount(line=token.line)
            if token.value:
                self._pending.values["id"] = token.value
            return

        name = ALIASES.get(token.field, token.field)

        if self._pending is None:
            self._feed_global(name, token)
            return

        if name not in ACCOUNT_FIELDS:
            raise ConfigError(f"unknown field {token.field!r}", token.line)
        if name in self._pending.values:
            raise ConfigError(f"field {name!r} given twice", token.line)

        if name in FLAG_FIELDS:
            self._pending.values[name] = token.value or True
        elif not token.value:
            raise ConfigError(f"field {name!r} needs a value", token.line)
        elif name == "certificate":
            self._pending.values[name] = os.path.expanduser(token.value)
        else:
            self._pending.values[name] = token.value

    def finish(self) -> LoadedConfig:
        self._flush()
        return self.result

    def _feed_global(self, name: str, token: Token) -> None:
        if name in GLOBAL_FIELDS:
            if not token.value:
                raise ConfigError(f"option {name!r} needs a value", token.line)
            if name in self.result.defaults:
                raise ConfigError(f"option {name!r} given twice", token.line)
            self.result.defaults[name] = token.value
        elif name in ACCOUNT_FIELDS:
            raise ConfigError(
                f"field {token.field!r} appears before the first {ACCOUNT_START!r} line",
                token.line,
            )
        else:
            raise ConfigError(f"unknown option {token.field!r}", token.line)

    def _flush(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return

        values = pending.values
        missing = [name for name in REQUIRED_FIELDS if name not in values]
        if missing:
            raise ConfigError(
                f"account is missing required field(s): {', '.join(missing)}",
                pending.line,
            )

        certificate = values.get("certificate")
        if certificate is not None and not os.path.isfile(certificate):
            raise ConfigError(f"certificate file {certificate!r} does not exist", pending.line)

        values.setdefault("id", f"{values['username']}@{values['host']}")
        if values["id"] in self._seen_ids:
            raise ConfigError(f"duplicate account id {values['id']!r}", pending.line)

        try:
            account = AccountDescriptor(**values)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
            )
            raise ConfigError(f"invalid account: {problems}", pending.line) from exc

        self._seen_ids.add(account.id)
        self.result.accounts.append(account)


def parse_config(lines: Iterable[str]) -> LoadedConfig:
    """Parse configuration text into account descriptors and global defaults."""
    parser = _Parser()
    for token in tokenize(lines):
        parser.feed(token)
    return parser.finish()


def load_config(path: str) -> LoadedConfig:
    """Read and parse the configuration file at *path*."""
    resolved = os.path.expanduser(path)
    try:
        with open(resolved, encoding="utf-8") as fh:
            loaded = parse_config(fh)
    except OSError as exc:
        raise ConfigError(f"cannot read {resolved}: {exc.strerror}") from exc

    logger.debug("config_loaded", path=resolved, accounts=len(loaded.accounts))
    return loaded


def select_accounts(
    accounts: Sequence[AccountDescriptor],
    *,
    include_work: bool,
) -> list[AccountDescriptor]:
    """Drop work accounts unless work mode was requested.

    Raises :class:`ConfigError` if nothing is left to watch.
    """
    selected = [a for a in accounts if include_work or not a.work_account]
    if not selected:
        if accounts:
            raise ConfigError("no accounts to watch (all are work accounts, use --work)")
        raise ConfigError("no accounts configured")
    return selected
