"""Command-line entry point.

Usage::

    mailwatch                 # detach and watch all non-work accounts
    mailwatch -f -v           # stay in the foreground with debug logging
    mailwatch --work          # also watch accounts flagged work_account
    mailwatch --stop          # ask the running instance to shut down
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Sequence

import structlog

from .config import RunConfig
from .config_loader import ConfigError, load_config, select_accounts
from .control import ControlClient, ControlError, ExternalControl
from .daemon import detach
from .logging import setup_logging
from .models import AccountDescriptor
from .notifier import Notifier
from .shutdown import install_signal_handlers
from .supervisor import EXIT_OK, Supervisor
from .watcher import MailWatcher

logger = structlog.get_logger()

EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailwatch",
        description="Watch IMAP accounts and show a desktop alert for new mail.",
    )
    parser.add_argument(
        "-f",
        "--foreground",
        action="store_true",
        help="stay in the foreground instead of detaching",
    )
    parser.add_argument(
        "-w",
        "--work",
        action="store_true",
        help="also watch accounts marked work_account",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument(
        "--stop",
        action="store_true",
        help="ask a running instance to shut down and exit",
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="account configuration file")
    parser.add_argument("--json-logs", action="store_true", help="emit JSON log lines")
    return parser


async def send_stop(settings: RunConfig) -> int:
    """The ``--stop`` path: no watchers, one request, then exit."""
    client = ControlClient(settings.control)
    try:
        sent = await client.send_shutdown()
    except ControlError as exc:
        print(f"could not send shutdown signal: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if not sent:
        print("could not send shutdown signal, no server running?", file=sys.stderr)
        return EXIT_FAILURE

    print("shutdown signal sent")
    return EXIT_OK


async def watch(accounts: Sequence[AccountDescriptor], settings: RunConfig) -> int:
    """Build the watcher set and hand it to the supervisor."""
    notifier = Notifier()
    watchers = [MailWatcher(account, notifier, settings) for account in accounts]
    supervisor = Supervisor(ExternalControl(settings.control))
    install_signal_handlers(supervisor.trigger_shutdown)
    return await supervisor.run(watchers)


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    overrides: dict[str, object] = {}
    if args.verbose:
        overrides["verbose"] = True
    if args.json_logs:
        overrides["json_logs"] = True
    if args.config:
        overrides["config_path"] = args.config
    settings = RunConfig().model_copy(update=overrides)

    setup_logging(json=settings.json_logs, level=settings.log_level)

    if args.stop:
        return asyncio.run(send_stop(settings))

    try:
        loaded = load_config(settings.config_path)
        settings = settings.with_defaults(loaded.defaults)
        accounts = select_accounts(loaded.accounts, include_work=args.work)
    except (ConfigError, ValueError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    if asyncio.run(ControlClient(settings.control).is_running()):
        print("mailwatch is already running (use --stop to end it)", file=sys.stderr)
        return EXIT_FAILURE

    if not args.foreground:
        log_file = os.path.abspath(os.path.expanduser(settings.log_file))
        print(f"mailwatch running in the background, logging to {log_file}")
        detach()
        setup_logging(json=settings.json_logs, level=settings.log_level, log_file=log_file)
        logger.info("detached", pid=os.getpid())

    try:
        return asyncio.run(watch(accounts, settings))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return EXIT_OK
    except ControlError as exc:
        logger.error("control_unavailable", error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception:
        logger.exception("unexpected_error")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
