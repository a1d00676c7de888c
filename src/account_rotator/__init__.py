import logging

from .accounts import Account, AccountStore
from .client import AccountContext, RotatingAccountClient
from .error_handler import (
    AllAccountsFailedError,
    CredentialRefreshError,
    NoAccountsConfiguredError,
)
from .providers import CredentialRefresher, RefreshOutcome
from .usage import (
    RuntimeState,
    SelectionEngine,
    StateStorage,
    UsageTracker,
    parse_rate_limit_headers,
)

lib_logger = logging.getLogger("account_rotator")
if not lib_logger.handlers:
    lib_logger.addHandler(logging.NullHandler())

__all__ = [
    "Account",
    "AccountContext",
    "AccountStore",
    "AllAccountsFailedError",
    "CredentialRefreshError",
    "CredentialRefresher",
    "NoAccountsConfiguredError",
    "RefreshOutcome",
    "RotatingAccountClient",
    "RuntimeState",
    "SelectionEngine",
    "StateStorage",
    "UsageTracker",
    "parse_rate_limit_headers",
]
