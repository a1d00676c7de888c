# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Default configurations for the usage tracking package.

This module contains default values and configuration loading for
thresholds and the primary-recovery interval. The configuration is
persisted in the state file; environment variables can override it
for a single process.
"""

import logging
import math
import os
from dataclasses import replace
from typing import Any, Dict, Optional, Sequence, Union

from ..core.constants import DEFAULT_RECOVERY_INTERVAL_SECONDS, DEFAULT_THRESHOLD
from .types import MetricName, RotationConfig, Thresholds

lib_logger = logging.getLogger("account_rotator")


# =============================================================================
# THRESHOLDS
# =============================================================================


def _valid_fraction(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and 0.0 <= value <= 1.0
    )


def _valid_interval(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def normalize_thresholds(
    value: Any, fallback: float = DEFAULT_THRESHOLD
) -> Thresholds:
    """
    Expand a stored threshold value into per-metric thresholds.

    A number applies to all three metrics. An object may set any subset
    of ``session5h``/``weekly7d``/``weekly7dSonnet``; the rest use
    ``fallback``. Anything else yields the default everywhere.
    """
    if _valid_fraction(value):
        return Thresholds.uniform(float(value))

    if isinstance(value, dict):
        per_metric = {}
        for name in MetricName:
            raw = value.get(name.value)
            if raw is not None and not _valid_fraction(raw):
                lib_logger.warning(
                    f"Ignoring invalid {name.value} threshold {raw!r}, using {fallback}"
                )
                raw = None
            per_metric[name.attr] = float(raw) if raw is not None else fallback
        return Thresholds(**per_metric)

    if value is not None:
        lib_logger.warning(f"Ignoring invalid threshold {value!r}, using {fallback}")
    return Thresholds.uniform(fallback)


def thresholds_to_wire(thresholds: Thresholds) -> Union[float, Dict[str, float]]:
    """Collapse to a single number when all metrics share one threshold."""
    if thresholds.all_same:
        return thresholds.session
    return {name.value: thresholds.get(name) for name in MetricName}


# =============================================================================
# CONFIG LOADING
# =============================================================================


def config_from_dict(data: Any) -> RotationConfig:
    """Parse the ``config`` block of the state file."""
    if not isinstance(data, dict):
        return RotationConfig()

    interval = DEFAULT_RECOVERY_INTERVAL_SECONDS
    raw_interval = data.get("checkInterval")
    if raw_interval is not None:
        if _valid_interval(raw_interval):
            interval = raw_interval / 1000
        else:
            lib_logger.warning(f"Ignoring invalid checkInterval {raw_interval!r}")

    # Legacy "recover" (a separate return threshold) is no longer used
    return RotationConfig(
        thresholds=normalize_thresholds(data.get("threshold")),
        recovery_interval=interval,
    )


def config_to_dict(config: RotationConfig) -> Dict[str, Any]:
    return {
        "threshold": thresholds_to_wire(config.thresholds),
        "checkInterval": int(round(config.recovery_interval * 1000)),
    }


def apply_env_overrides(config: RotationConfig) -> RotationConfig:
    """
    Apply process-level overrides.

    ROTATOR_THRESHOLD sets all three thresholds (0-1) and
    ROTATOR_CHECK_INTERVAL_MINUTES sets the recovery interval.
    """
    env_threshold = os.getenv("ROTATOR_THRESHOLD")
    if env_threshold:
        try:
            value = float(env_threshold)
            if _valid_fraction(value):
                config = replace(config, thresholds=Thresholds.uniform(value))
        except ValueError:
            pass

    env_interval = os.getenv("ROTATOR_CHECK_INTERVAL_MINUTES")
    if env_interval:
        try:
            minutes = float(env_interval)
        except ValueError:
            minutes = None
        if _valid_interval(minutes):
            config = replace(config, recovery_interval=minutes * 60)
        else:
            lib_logger.warning(
                f"Ignoring invalid ROTATOR_CHECK_INTERVAL_MINUTES {env_interval!r}"
            )

    return config


# =============================================================================
# CONFIG EDITING
# =============================================================================


def update_config(
    config: RotationConfig,
    threshold: Optional[float] = None,
    thresholds: Optional[Sequence[float]] = None,
    session: Optional[float] = None,
    weekly: Optional[float] = None,
    sonnet: Optional[float] = None,
    interval_minutes: Optional[float] = None,
    reset: bool = False,
) -> RotationConfig:
    """
    Return a copy of ``config`` with the given edits applied.

    Args:
        config: Current configuration
        threshold: One threshold for all metrics (0-1)
        thresholds: Session, weekly and weekly-narrow thresholds (0-1)
        session: Session threshold only
        weekly: Weekly (all models) threshold only
        sonnet: Weekly (narrow) threshold only
        interval_minutes: Recovery check interval
        reset: Discard everything and return the defaults

    Raises:
        ValueError: If a threshold is outside 0-1 or the interval is negative
    """
    if reset:
        return RotationConfig()

    values = [v for v in (threshold, session, weekly, sonnet) if v is not None]
    values.extend(thresholds or [])
    for value in values:
        if not _valid_fraction(value):
            raise ValueError(f"Threshold must be between 0 and 1, got {value!r}")
    if thresholds is not None and len(thresholds) != 3:
        raise ValueError("Expected exactly three thresholds: session, weekly, sonnet")
    if interval_minutes is not None and not _valid_interval(interval_minutes):
        raise ValueError(
            f"Interval must be a non-negative number of minutes, got {interval_minutes!r}"
        )

    current = config.thresholds
    if threshold is not None:
        current = Thresholds.uniform(threshold)
    if thresholds is not None:
        current = Thresholds(*thresholds)
    if session is not None:
        current = replace(current, session=session)
    if weekly is not None:
        current = replace(current, weekly_all=weekly)
    if sonnet is not None:
        current = replace(current, weekly_narrow=sonnet)

    interval = config.recovery_interval
    if interval_minutes is not None:
        interval = interval_minutes * 60

    return RotationConfig(thresholds=current, recovery_interval=interval)
