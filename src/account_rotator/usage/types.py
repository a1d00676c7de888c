# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Type definitions for the usage tracking package.

This module contains dataclasses and type definitions specific to
usage tracking, thresholds, and account selection.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from ..core.constants import (
    DEFAULT_RECOVERY_INTERVAL_SECONDS,
    DEFAULT_THRESHOLD,
    STATUS_ALLOWED,
)


# =============================================================================
# ENUMS
# =============================================================================


class MetricName(str, Enum):
    """Rate-limit windows reported by the upstream service."""

    SESSION = "session5h"  # Short rolling window
    WEEKLY_ALL = "weekly7d"  # Long rolling window, all models
    WEEKLY_NARROW = "weekly7dSonnet"  # Long rolling window, one model class

    @property
    def attr(self) -> str:
        """Attribute name on AccountUsage / Thresholds."""
        return _METRIC_ATTRS[self]

    @property
    def label(self) -> str:
        return _METRIC_LABELS[self]


_METRIC_ATTRS = {
    MetricName.SESSION: "session",
    MetricName.WEEKLY_ALL: "weekly_all",
    MetricName.WEEKLY_NARROW: "weekly_narrow",
}

_METRIC_LABELS = {
    MetricName.SESSION: "Session (5h)",
    MetricName.WEEKLY_ALL: "Weekly (all)",
    MetricName.WEEKLY_NARROW: "Weekly (Sonnet)",
}


class SelectionState(str, Enum):
    """Which side of the hysteresis the rotator is on."""

    PRIMARY_ACTIVE = "primary_active"
    FALLBACK_ACTIVE = "fallback_active"


# =============================================================================
# METRIC TYPES
# =============================================================================


@dataclass
class Metric:
    """
    Last known state of one rate-limit window.

    Utilization is the fraction of quota consumed, not remaining.
    """

    utilization: float = 0.0
    reset_at: Optional[float] = None  # Epoch seconds when the window rolls over
    status: str = STATUS_ALLOWED

    def is_stale(self, now: Optional[float] = None) -> bool:
        """True if the window has rolled over but still reports usage."""
        now = time.time() if now is None else now
        return self.reset_at is not None and self.reset_at < now and self.utilization > 0


@dataclass
class MetricObservation:
    """
    Telemetry for one metric from a single response.

    A field left as None was not present (or not parsable) and must not
    overwrite the known value.
    """

    utilization: Optional[float] = None
    reset_at: Optional[float] = None
    status: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.utilization is None and self.reset_at is None and self.status is None


@dataclass
class UsageObservation:
    """All metric telemetry extracted from one response."""

    metrics: Dict[MetricName, MetricObservation] = field(default_factory=dict)
    observed_at: float = field(default_factory=time.time)

    def get(self, name: MetricName) -> MetricObservation:
        return self.metrics.get(name) or MetricObservation()

    @property
    def is_empty(self) -> bool:
        return all(obs.is_empty for obs in self.metrics.values())


@dataclass
class AccountUsage:
    """Per-account snapshot of all three rate-limit windows."""

    session: Metric = field(default_factory=Metric)
    weekly_all: Metric = field(default_factory=Metric)
    weekly_narrow: Metric = field(default_factory=Metric)
    observed_at: Optional[float] = None

    def get(self, name: MetricName) -> Metric:
        return getattr(self, name.attr)

    def items(self) -> Iterator[Tuple[MetricName, Metric]]:
        for name in MetricName:
            yield name, self.get(name)


# =============================================================================
# CONFIGURATION TYPES
# =============================================================================


@dataclass
class Thresholds:
    """Per-metric utilization limits; strictly above means over threshold."""

    session: float = DEFAULT_THRESHOLD
    weekly_all: float = DEFAULT_THRESHOLD
    weekly_narrow: float = DEFAULT_THRESHOLD

    @classmethod
    def uniform(cls, value: float) -> "Thresholds":
        return cls(session=value, weekly_all=value, weekly_narrow=value)

    def get(self, name: MetricName) -> float:
        return getattr(self, name.attr)

    @property
    def all_same(self) -> bool:
        return self.session == self.weekly_all == self.weekly_narrow


@dataclass
class RotationConfig:
    """User configuration persisted alongside the runtime state."""

    thresholds: Thresholds = field(default_factory=Thresholds)
    recovery_interval: float = DEFAULT_RECOVERY_INTERVAL_SECONDS  # Seconds


# =============================================================================
# RUNTIME STATE
# =============================================================================


@dataclass
class RuntimeState:
    """
    The process-wide mutable record.

    Loaded, passed through the tracker and selection engine, and saved
    on every call.
    """

    active_account_name: Optional[str] = None
    usage: Dict[str, AccountUsage] = field(default_factory=dict)
    request_count: int = 0
    last_primary_check_at: Optional[float] = None  # Epoch seconds
    config: RotationConfig = field(default_factory=RotationConfig)
