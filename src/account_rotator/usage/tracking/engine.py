# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Tracking engine for usage telemetry.

Central component for turning rate-limit response headers into
per-account metric state, and for resolving metrics whose window has
already rolled over.
"""

import logging
import math
import time
from typing import Any, Mapping, Optional, Sequence

from ...accounts.types import Account
from ...core.constants import RATE_LIMIT_HEADER_PREFIX, STATUS_ALLOWED
from ..types import (
    AccountUsage,
    MetricName,
    MetricObservation,
    RuntimeState,
    UsageObservation,
)

lib_logger = logging.getLogger("account_rotator")


# =============================================================================
# HEADER PARSING
# =============================================================================

# Header infix for each metric, e.g. anthropic-ratelimit-unified-5h-utilization
HEADER_METRIC_KEYS = {
    MetricName.SESSION: "5h",
    MetricName.WEEKLY_ALL: "7d",
    MetricName.WEEKLY_NARROW: "7d_sonnet",
}


def _parse_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def parse_rate_limit_headers(
    headers: Mapping[str, Any],
    observed_at: Optional[float] = None,
    prefix: str = RATE_LIMIT_HEADER_PREFIX,
) -> UsageObservation:
    """
    Parse rate limit information from response headers.

    Malformed numeric values are treated as absent rather than zero.

    Args:
        headers: Response headers (any mapping; lookup is case-insensitive)
        observed_at: Observation time, defaults to now
        prefix: Header name prefix

    Returns:
        UsageObservation with one entry per metric that had any header
    """
    lowered = {str(k).lower(): v for k, v in (headers or {}).items()}
    metrics = {}

    for name, key in HEADER_METRIC_KEYS.items():
        base = f"{prefix}{key}-"
        raw_util = lowered.get(base + "utilization")
        raw_reset = lowered.get(base + "reset")
        raw_status = lowered.get(base + "status")

        utilization = _parse_float(raw_util)
        if utilization is not None:
            utilization = max(0.0, min(1.0, utilization))
        elif raw_util is not None:
            lib_logger.debug(f"Ignoring malformed {base}utilization: {raw_util!r}")

        reset_at = _parse_float(raw_reset)
        if reset_at is None and raw_reset is not None:
            lib_logger.debug(f"Ignoring malformed {base}reset: {raw_reset!r}")

        status = str(raw_status).strip() if raw_status is not None else None

        observation = MetricObservation(
            utilization=utilization,
            reset_at=reset_at,
            status=status or None,
        )
        if not observation.is_empty:
            metrics[name] = observation

    return UsageObservation(
        metrics=metrics,
        observed_at=time.time() if observed_at is None else observed_at,
    )


# =============================================================================
# TRACKER
# =============================================================================


class UsageTracker:
    """
    Maintains per-account metric state from telemetry.

    Responsibilities:
    - Creating zeroed usage for newly known accounts
    - Clearing metrics whose reset time has passed
    - Applying partial observations without losing known values
    """

    def reconcile(
        self,
        accounts: Sequence[Account],
        state: RuntimeState,
        now: Optional[float] = None,
    ) -> bool:
        """
        Bring the usage map in line with the account list and the clock.

        Args:
            accounts: Current account list
            state: Runtime state to update in place
            now: Current time, defaults to time.time()

        Returns:
            True if anything changed
        """
        now = time.time() if now is None else now
        changed = False

        for account in accounts:
            if account.name not in state.usage:
                state.usage[account.name] = AccountUsage()
                lib_logger.debug(f"Tracking usage for new account {account.name}")
                changed = True

        for account_name, usage in state.usage.items():
            for name, metric in usage.items():
                if metric.is_stale(now):
                    lib_logger.info(
                        f"{account_name}: {name.label} window reset, clearing "
                        f"{round(metric.utilization * 100)}% utilization"
                    )
                    metric.utilization = 0.0
                    metric.status = STATUS_ALLOWED
                    changed = True

        return changed

    def update_from_observation(
        self,
        state: RuntimeState,
        account_name: str,
        observation: UsageObservation,
    ) -> None:
        """
        Apply one response's telemetry to an account's usage.

        A metric with no data in the observation keeps its prior value:
        some windows only appear on requests that exercise them.
        """
        usage = state.usage.setdefault(account_name, AccountUsage())

        for name in MetricName:
            observed = observation.get(name)
            if observed.is_empty:
                continue

            metric = usage.get(name)
            if observed.utilization is not None:
                metric.utilization = observed.utilization
            if observed.reset_at is not None:
                metric.reset_at = observed.reset_at
            if observed.status is not None:
                metric.status = observed.status

        usage.observed_at = observation.observed_at

    def update_from_headers(
        self,
        state: RuntimeState,
        account_name: str,
        headers: Mapping[str, Any],
        now: Optional[float] = None,
    ) -> UsageObservation:
        """Parse headers and apply them; returns the parsed observation."""
        observation = parse_rate_limit_headers(headers, observed_at=now)
        self.update_from_observation(state, account_name, observation)
        return observation
