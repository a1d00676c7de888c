# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Selection engine for account selection.

Implements the threshold/recovery state machine: stay on the primary
while it is under its thresholds, fail over to the fallbacks in
preference order when it is not, and only re-check the primary when a
quota window resets or the recovery interval has elapsed.
"""

import logging
import math
import time
from typing import Optional, Sequence, Tuple

from ...accounts.types import Account
from ...error_handler import NoAccountsConfiguredError
from ..config import apply_env_overrides
from ..types import (
    AccountUsage,
    MetricName,
    RotationConfig,
    RuntimeState,
    SelectionState,
    Thresholds,
)

lib_logger = logging.getLogger("account_rotator")


def is_over_threshold(usage: Optional[AccountUsage], thresholds: Thresholds) -> bool:
    """True if any metric's utilization is strictly above its threshold."""
    if usage is None:
        return False
    return any(
        metric.utilization > thresholds.get(name) for name, metric in usage.items()
    )


def pressure(usage: Optional[AccountUsage], thresholds: Thresholds) -> float:
    """
    Utilization relative to each metric's own threshold, worst metric wins.

    A value above 1.0 means the account is over threshold on that metric.
    """
    if usage is None:
        return 0.0

    values = []
    for name, metric in usage.items():
        limit = thresholds.get(name)
        if limit <= 0:
            values.append(math.inf if metric.utilization > 0 else 0.0)
        else:
            values.append(metric.utilization / limit)
    return max(values)


def describe_breach(usage: Optional[AccountUsage]) -> Tuple[Optional[MetricName], float]:
    """Find the metric with the highest utilization."""
    if usage is None:
        return None, 0.0
    name, metric = max(usage.items(), key=lambda item: item[1].utilization)
    return name, metric.utilization


class SelectionEngine:
    """
    Central engine for account selection.

    The engine holds no state of its own: the active account, the last
    recovery check and the configuration all live on RuntimeState, which
    is updated in place.
    """

    def __init__(self, use_env_overrides: bool = True):
        """
        Initialize selection engine.

        Args:
            use_env_overrides: Let ROTATOR_THRESHOLD and
                ROTATOR_CHECK_INTERVAL_MINUTES override the persisted config
                for this process (never written back)
        """
        self._use_env_overrides = use_env_overrides

    def select(
        self,
        accounts: Sequence[Account],
        state: RuntimeState,
        now: Optional[float] = None,
    ) -> Account:
        """
        Decide which account serves the next call.

        Args:
            accounts: Accounts in preference order (index 0 is the primary)
            state: Runtime state; active account and check time are updated
            now: Current time, defaults to time.time()

        Returns:
            The chosen account

        Raises:
            NoAccountsConfiguredError: If the account list is empty
        """
        if not accounts:
            raise NoAccountsConfiguredError("No accounts configured")

        now = time.time() if now is None else now
        primary = accounts[0]

        if len(accounts) == 1:
            return self._activate(state, primary)

        # Cold start
        if state.active_account_name is None:
            return self._activate(state, primary)

        current = self._repair_active(accounts, state)

        if self.current_state(accounts, state) == SelectionState.PRIMARY_ACTIVE:
            return self._select_from_primary(accounts, state, now)
        return self._select_from_fallback(accounts, current, state, now)

    def auto_evaluate(
        self,
        accounts: Sequence[Account],
        state: RuntimeState,
        now: Optional[float] = None,
    ) -> Optional[str]:
        """
        Re-evaluate the active account right away.

        Used after a configuration change or after stale metrics were
        cleared, where waiting for the next recovery check would keep a
        decision the new numbers no longer support.

        Returns:
            Name of the newly active account if a switch happened
        """
        if len(accounts) < 2 or state.active_account_name is None:
            return None

        now = time.time() if now is None else now
        thresholds = self._config(state).thresholds
        primary = accounts[0]
        stale_name = state.active_account_name
        current = self._repair_active(accounts, state)
        repaired = current.name if current.name != stale_name else None
        previous = state.active_account_name
        primary_usage = state.usage.get(primary.name)

        if previous == primary.name:
            if not is_over_threshold(primary_usage, thresholds):
                return None
            chosen = self._pick_fallback(accounts[1:], state)
            state.last_primary_check_at = now
        else:
            if is_over_threshold(primary_usage, thresholds):
                return repaired
            chosen = primary

        state.active_account_name = chosen.name
        lib_logger.info(f"Auto-switch: {previous} -> {chosen.name}")
        return chosen.name

    def current_state(
        self, accounts: Sequence[Account], state: RuntimeState
    ) -> SelectionState:
        """Which side of the hysteresis the rotator is currently on."""
        if accounts and state.active_account_name not in (None, accounts[0].name):
            return SelectionState.FALLBACK_ACTIVE
        return SelectionState.PRIMARY_ACTIVE

    def recovery_check_due(
        self,
        primary_usage: Optional[AccountUsage],
        state: RuntimeState,
        now: float,
    ) -> bool:
        """
        True if the primary should be re-evaluated on this call.

        Fires when no check was ever recorded, when the recovery interval
        has elapsed, or when one of the primary's windows reset after the
        last check.
        """
        last = state.last_primary_check_at
        if last is None:
            return True
        if now - last >= self._config(state).recovery_interval:
            return True
        if primary_usage is not None:
            for _, metric in primary_usage.items():
                if metric.reset_at is not None and last < metric.reset_at <= now:
                    return True
        return False

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    def _select_from_primary(
        self, accounts: Sequence[Account], state: RuntimeState, now: float
    ) -> Account:
        primary = accounts[0]
        primary_usage = state.usage.get(primary.name)

        if not is_over_threshold(primary_usage, self._config(state).thresholds):
            return self._activate(state, primary)

        chosen = self._pick_fallback(accounts[1:], state)
        metric, value = describe_breach(primary_usage)
        lib_logger.info(
            f"Switched to {chosen.name}: {primary.name} "
            f"{metric.label if metric else 'usage'} at {round(value * 100)}%"
        )
        state.last_primary_check_at = now
        return self._activate(state, chosen)

    def _select_from_fallback(
        self,
        accounts: Sequence[Account],
        current: Account,
        state: RuntimeState,
        now: float,
    ) -> Account:
        primary = accounts[0]
        primary_usage = state.usage.get(primary.name)

        if not self.recovery_check_due(primary_usage, state, now):
            return self._activate(state, current)

        state.last_primary_check_at = now
        if not is_over_threshold(primary_usage, self._config(state).thresholds):
            lib_logger.info(
                f"Switched to {primary.name}: all metrics below thresholds"
            )
            return self._activate(state, primary)

        lib_logger.debug(
            f"Recovery check: {primary.name} still over threshold, staying on {current.name}"
        )
        return self._activate(state, current)

    def _pick_fallback(
        self, fallbacks: Sequence[Account], state: RuntimeState
    ) -> Account:
        """First fallback under threshold, else the one with the least pressure."""
        thresholds = self._config(state).thresholds
        for fallback in fallbacks:
            if not is_over_threshold(state.usage.get(fallback.name), thresholds):
                return fallback

        # min() keeps the first of equal candidates, preserving preference order
        return min(
            fallbacks, key=lambda a: pressure(state.usage.get(a.name), thresholds)
        )

    def _config(self, state: RuntimeState) -> RotationConfig:
        if self._use_env_overrides:
            return apply_env_overrides(state.config)
        return state.config

    def _repair_active(
        self, accounts: Sequence[Account], state: RuntimeState
    ) -> Account:
        """Resolve the active account, replacing a name that is no longer configured."""
        current = self._find(accounts, state.active_account_name)
        if current is None:
            current = accounts[1] if len(accounts) > 1 else accounts[0]
            lib_logger.warning(
                f"Active account '{state.active_account_name}' is no longer "
                f"configured, falling back to {current.name}"
            )
            state.active_account_name = current.name
        return current

    @staticmethod
    def _find(accounts: Sequence[Account], name: str) -> Optional[Account]:
        for account in accounts:
            if account.name == name:
                return account
        return None

    @staticmethod
    def _activate(state: RuntimeState, account: Account) -> Account:
        state.active_account_name = account.name
        return account
