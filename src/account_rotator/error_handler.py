# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from typing import Optional


class NoAccountsConfiguredError(Exception):
    """Raised when a call is attempted with an empty account list."""


class CredentialRefreshError(Exception):
    """A credential refresh exchange failed for a single account."""

    def __init__(
        self,
        account_name: str,
        status_code: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.account_name = account_name
        self.status_code = status_code
        super().__init__(
            message
            or f"Token refresh failed for {account_name}: {status_code or 'no response'}"
        )


class AllAccountsFailedError(CredentialRefreshError):
    """
    Every account failed to produce a usable credential.

    Carries the last account tried and its status code.
    """

    def __init__(self, account_name: str, status_code: Optional[int], tried: int):
        self.tried = tried
        super().__init__(
            account_name,
            status_code,
            f"All {tried} accounts failed to refresh; last tried "
            f"{account_name} ({status_code or 'no response'})",
        )


def is_transient_status(status_code: Optional[int]) -> bool:
    """Checks if a refresh failure is worth retrying against the same account."""
    if status_code is None:
        return True
    return status_code == 429 or 500 <= status_code < 600


def mask_credential(credential: Optional[str], style: str = "short") -> str:
    """
    Mask a token for log output.

    "short" keeps the last 4 characters, "full" keeps the first 6 and last 4.
    """
    if not credential:
        return "<none>"
    if style == "full" and len(credential) > 14:
        return f"{credential[:6]}...{credential[-4:]}"
    return f"...{credential[-4:]}"
