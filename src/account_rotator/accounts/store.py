# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Account list storage.

Loads the canonical account file, migrating from legacy locations when
it is missing or empty, and saves through the atomic-write helpers.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..core.constants import (
    ACCOUNTS_FILE_NAME,
    LEGACY_ACCOUNTS_FILE_NAME,
    LEGACY_AUTH_FILE_NAME,
)
from ..utils.paths import get_data_dir
from ..utils.resilient_io import read_json, safe_write_json
from .types import Account

lib_logger = logging.getLogger("account_rotator")


def extract_account_records(data: Any) -> List[Any]:
    """
    Pull the raw account records out of any known file shape.

    Accepted shapes:
    - ``{"accounts": [...]}`` (canonical)
    - ``{"anthropic": {"multiAccounts": {"accounts": [...]}}}`` (auth.json)
    - ``[...]`` (bare list)
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        return []

    if isinstance(data.get("accounts"), list):
        return data["accounts"]

    provider = data.get("anthropic")
    if isinstance(provider, dict):
        multi = provider.get("multiAccounts")
        if isinstance(multi, dict) and isinstance(multi.get("accounts"), list):
            return multi["accounts"]

    return []


def normalize_accounts(records: Sequence[Any]) -> List[Account]:
    """Normalize raw records, merging duplicate names within one source."""
    accounts = [a for a in (Account.from_record(r) for r in records) if a]
    return merge_accounts([accounts])


def _prefer(candidate: Account, incumbent: Account) -> bool:
    """True if ``candidate`` should replace ``incumbent`` for the same name."""
    if bool(candidate.refresh) != bool(incumbent.refresh):
        return bool(candidate.refresh)
    return (candidate.expires_at or 0) > (incumbent.expires_at or 0)


def merge_accounts(sources: Sequence[Sequence[Account]]) -> List[Account]:
    """
    Merge account lists by name.

    Sources are given highest priority first. For each name the record
    with a refresh token wins over one without, then the later expiry,
    then the higher-priority source. Order is first appearance.
    """
    merged: Dict[str, Account] = {}
    for accounts in sources:
        for account in accounts:
            incumbent = merged.get(account.name)
            if incumbent is None or _prefer(account, incumbent):
                merged[account.name] = account
    return list(merged.values())


class AccountStore:
    """
    Persistence for the account list.

    The canonical file is the only one ever written. Legacy files are
    read once, merged, and the result becomes canonical.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        legacy_paths: Optional[Sequence[Union[str, Path]]] = None,
    ):
        """
        Initialize the store.

        Args:
            file_path: Canonical accounts file
            legacy_paths: Older locations, highest priority first
        """
        self.file_path = Path(file_path)
        self.legacy_paths = [Path(p) for p in (legacy_paths or [])]
        # Last content read or written, so saves keep its extra top-level keys
        self._raw: Any = None

    @classmethod
    def for_data_dir(cls, data_dir: Optional[Union[str, Path]] = None) -> "AccountStore":
        """Create a store using the standard file names under ``data_dir``."""
        base = get_data_dir(data_dir)
        return cls(
            base / ACCOUNTS_FILE_NAME,
            legacy_paths=[
                base / LEGACY_AUTH_FILE_NAME,
                base / LEGACY_ACCOUNTS_FILE_NAME,
            ],
        )

    async def load(self) -> List[Account]:
        """
        Load the account list.

        Returns:
            Accounts in preference order (index 0 is the primary)
        """
        raw = await read_json(self.file_path, default=None)
        self._raw = raw
        accounts = normalize_accounts(extract_account_records(raw))

        if accounts:
            if self._payload(accounts, raw) != raw:
                lib_logger.info(f"Normalizing account records in {self.file_path.name}")
                await self.save(accounts, base=raw)
            return accounts

        sources = []
        for legacy_path in self.legacy_paths:
            legacy_raw = await read_json(legacy_path, default=None)
            legacy_accounts = normalize_accounts(extract_account_records(legacy_raw))
            if legacy_accounts:
                lib_logger.debug(
                    f"Found {len(legacy_accounts)} accounts in legacy file {legacy_path}"
                )
                sources.append(legacy_accounts)

        merged = merge_accounts(sources)
        if merged:
            lib_logger.info(
                f"Migrated {len(merged)} accounts from {len(sources)} legacy "
                f"source(s) into {self.file_path.name}"
            )
            await self.save(merged, base=raw)
        return merged

    async def save(self, accounts: Sequence[Account], base: Any = None) -> bool:
        """
        Save the account list atomically.

        Args:
            accounts: Accounts in preference order
            base: File content whose extra keys are kept; defaults to the
                content last read or written by this store

        Returns:
            True if written, False if the write failed
        """
        payload = self._payload(accounts, self._raw if base is None else base)
        saved = await safe_write_json(
            self.file_path,
            payload,
            lib_logger,
            secure_permissions=True,
        )
        if saved:
            self._raw = payload
            lib_logger.debug(f"Saved {len(accounts)} accounts to {self.file_path}")
        return saved

    async def upsert(self, account: Account) -> List[Account]:
        """Add an account, or replace the one with the same name, and save."""
        accounts = await self.load()
        for index, existing in enumerate(accounts):
            if existing.name == account.name:
                accounts[index] = account
                lib_logger.info(f"Updated account {account.name}")
                break
        else:
            accounts.append(account)
            lib_logger.info(f"Added account {account.name}")

        await self.save(accounts)
        return accounts

    @staticmethod
    def _payload(accounts: Sequence[Account], base: Any) -> Dict[str, Any]:
        payload = dict(base) if isinstance(base, dict) and "accounts" in base else {}
        payload["accounts"] = [account.to_record() for account in accounts]
        return payload
