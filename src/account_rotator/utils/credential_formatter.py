"""
Utility for formatting accounts for display in logs and the CLI.

Account names are safe to show; tokens are masked to their last
characters so that log files never carry a usable credential.
"""

import time
from datetime import datetime
from typing import Optional

from ..error_handler import mask_credential


def format_expiry(expires_at: Optional[float], now: Optional[float] = None) -> str:
    """
    Describe when a credential expires.

    Examples:
        >>> format_expiry(None)
        "unknown"
        >>> format_expiry(time.time() - 10)
        "expired"
    """
    if not expires_at:
        return "unknown"
    now = time.time() if now is None else now
    if expires_at <= now:
        return "expired"
    return datetime.fromtimestamp(expires_at).strftime("%b %d %H:%M")


def format_account_for_display(account, now: Optional[float] = None) -> str:
    """
    Format an account for display in logs.

    Args:
        account: Account with name, access, refresh and expires_at

    Returns:
        A display-safe one-line description
    """
    return (
        f"{account.name} (access {mask_credential(account.access)}, "
        f"refresh {mask_credential(account.refresh)}, "
        f"expires {format_expiry(account.expires_at, now)})"
    )
