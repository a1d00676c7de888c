# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Per-call orchestration.

Ties the account store, state storage, usage tracker, selection engine
and credential refresher together around a single outbound call.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, Union

import httpx
from filelock import FileLock

from ..accounts.store import AccountStore
from ..accounts.types import Account
from ..error_handler import AllAccountsFailedError, NoAccountsConfiguredError
from ..providers.anthropic_auth_base import CredentialRefresher
from ..usage.config import update_config
from ..usage.persistence.storage import StateStorage
from ..usage.selection.engine import SelectionEngine
from ..usage.tracking.engine import UsageTracker, parse_rate_limit_headers
from ..usage.types import RuntimeState, UsageObservation

lib_logger = logging.getLogger("account_rotator")


class AccountContext:
    """
    Handle for one in-flight call.

    Exposes the chosen account and collects the response telemetry that
    is written back when the context exits.
    """

    def __init__(self, account: Account):
        self.account = account
        self.observation: Optional[UsageObservation] = None

    def auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.account.access}"}

    def record_response(self, headers: Any, now: Optional[float] = None) -> UsageObservation:
        """Parse rate-limit headers from the upstream response."""
        self.observation = parse_rate_limit_headers(headers or {}, observed_at=now)
        return self.observation


class RotatingAccountClient:
    """
    Chooses an account for each call and keeps the shared files current.

    Each read-modify-write of the state runs under an asyncio lock for
    callers in this process and a file lock for other processes. The
    upstream call itself runs outside both.
    """

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        account_store: Optional[AccountStore] = None,
        state_storage: Optional[StateStorage] = None,
        refresher: Optional[CredentialRefresher] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        selection: Optional[SelectionEngine] = None,
    ):
        self.account_store = account_store or AccountStore.for_data_dir(data_dir)
        self.state_storage = state_storage or StateStorage.for_data_dir(data_dir)
        self.tracker = UsageTracker()
        self.selection = selection or SelectionEngine()
        self.refresher = refresher or CredentialRefresher(
            persist=self._persist_accounts, http_client=http_client
        )

        self._accounts: List[Account] = []
        self._lock = asyncio.Lock()
        self.file_lock = FileLock(str(self.state_storage.lock_path))

    async def _persist_accounts(self, account: Account) -> bool:
        """Save the account list right after a refresh rotated its tokens."""
        accounts = self._accounts or [account]
        return await self.account_store.save(accounts)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    @asynccontextmanager
    async def acquire_account(self) -> AsyncIterator[AccountContext]:
        """
        Select an account with a usable credential for one call.

        Raises:
            NoAccountsConfiguredError: If no accounts are configured
            AllAccountsFailedError: If no account could be refreshed
        """
        account = await self._prepare_call()
        context = AccountContext(account)
        try:
            yield context
        finally:
            if context.observation is not None:
                await self._record_observation(account.name, context.observation)

    async def execute(self, send: Callable[[Account], Awaitable[Any]]) -> Any:
        """
        Run ``send(account)`` with the selected account.

        The result's ``headers`` attribute, if present, is recorded as
        usage telemetry.
        """
        async with self.acquire_account() as context:
            response = await send(context.account)
            headers = getattr(response, "headers", None)
            if headers is not None:
                context.record_response(headers)
            return response

    async def snapshot(
        self, now: Optional[float] = None
    ) -> Tuple[List[Account], RuntimeState]:
        """
        Current accounts and reconciled state, for display.

        Persists only when reconciliation changed something.
        """
        async with self._lock:
            with self.file_lock:
                accounts = await self.account_store.load()
                state = await self.state_storage.load()
                changed = self.tracker.reconcile(accounts, state, now)
                if changed:
                    self.selection.auto_evaluate(accounts, state, now)
                    await self.state_storage.save(state)
                return accounts, state

    async def configure(
        self, now: Optional[float] = None, **edits: Any
    ) -> Tuple[RuntimeState, Optional[str]]:
        """
        Apply configuration edits and re-evaluate the active account.

        Args:
            now: Current time, defaults to time.time()
            **edits: Keyword arguments for usage.config.update_config

        Returns:
            The saved state and the newly active account name if a switch happened

        Raises:
            ValueError: If an edit is out of range
        """
        async with self._lock:
            with self.file_lock:
                accounts = await self.account_store.load()
                state = await self.state_storage.load()
                state.config = update_config(state.config, **edits)
                self.tracker.reconcile(accounts, state, now)
                switched = self.selection.auto_evaluate(accounts, state, now)
                await self.state_storage.save(state)
                return state, switched

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    async def _prepare_call(self) -> Account:
        async with self._lock:
            with self.file_lock:
                accounts = await self.account_store.load()
                if not accounts:
                    raise NoAccountsConfiguredError("No accounts configured")
                self._accounts = accounts

                now = time.time()
                state = await self.state_storage.load()
                self.tracker.reconcile(accounts, state, now)
                selected = self.selection.select(accounts, state, now)

                account = await self._refresh_with_failover(accounts, selected)
                if account.name != state.active_account_name:
                    lib_logger.info(
                        f"Using {account.name} after {selected.name} failed to refresh"
                    )
                    # Leaving the primary starts a recovery interval, as a threshold switch does
                    if selected.name == accounts[0].name:
                        state.last_primary_check_at = now
                state.active_account_name = account.name
                state.request_count += 1

                await self.state_storage.save(state)
                return account

    async def _refresh_with_failover(
        self, accounts: List[Account], selected: Account
    ) -> Account:
        """Try the selected account first, then untried accounts in order."""
        tried = set()
        candidate: Optional[Account] = selected

        while candidate is not None:
            tried.add(candidate.name)
            outcome = await self.refresher.ensure_fresh(candidate)
            if outcome.ok:
                return candidate

            lib_logger.warning(
                f"Credential refresh failed for {candidate.name} "
                f"({outcome.status_code or 'no response'})"
            )
            next_candidate = next((a for a in accounts if a.name not in tried), None)
            if next_candidate is None:
                raise AllAccountsFailedError(
                    candidate.name, outcome.status_code, len(tried)
                )
            candidate = next_candidate

        raise NoAccountsConfiguredError("No accounts configured")

    async def _record_observation(
        self, account_name: str, observation: UsageObservation
    ) -> None:
        if observation.is_empty:
            return
        async with self._lock:
            with self.file_lock:
                # Reload so counters written by other callers survive
                state = await self.state_storage.load()
                self.tracker.update_from_observation(state, account_name, observation)
                await self.state_storage.save(state)
