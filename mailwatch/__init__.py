"""mailwatch: desktop alerts for new mail on one or more IMAP accounts.

Public API re-exported here for convenience::

    from mailwatch import MailWatcher, Supervisor, load_config
"""

from .config import ControlConfig, RetryConfig, RunConfig
from .config_loader import ConfigError, LoadedConfig, load_config, parse_config, select_accounts
from .control import ControlClient, ControlError, ExternalControl, create_control_app
from .imap_client import AsyncImapClient, NewMail
from .interface import Control, Watcher
from .logging import setup_logging
from .models import AccountDescriptor, WatcherStatus
from .notifier import Notifier
from .retry import with_retry
from .shutdown import ShutdownSignal, install_signal_handlers
from .supervisor import Supervisor
from .watcher import MailWatcher

__all__ = [
    "AccountDescriptor",
    "AsyncImapClient",
    "ConfigError",
    "Control",
    "ControlClient",
    "ControlConfig",
    "ControlError",
    "ExternalControl",
    "LoadedConfig",
    "MailWatcher",
    "NewMail",
    "Notifier",
    "RetryConfig",
    "RunConfig",
    "ShutdownSignal",
    "Supervisor",
    "Watcher",
    "WatcherStatus",
    "create_control_app",
    "install_signal_handlers",
    "load_config",
    "parse_config",
    "select_accounts",
    "setup_logging",
    "with_retry",
]
