# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Usage tracking and account selection package.

Public API:
    UsageTracker - reconcile usage and apply response telemetry
    SelectionEngine - threshold/recovery account selection
    StateStorage - runtime state persistence
"""

from .config import normalize_thresholds, update_config
from .persistence.storage import StateStorage
from .selection.engine import SelectionEngine, is_over_threshold, pressure
from .tracking.engine import UsageTracker, parse_rate_limit_headers
from .types import (
    AccountUsage,
    Metric,
    MetricName,
    MetricObservation,
    RotationConfig,
    RuntimeState,
    SelectionState,
    Thresholds,
    UsageObservation,
)

__all__ = [
    "AccountUsage",
    "Metric",
    "MetricName",
    "MetricObservation",
    "RotationConfig",
    "RuntimeState",
    "SelectionEngine",
    "SelectionState",
    "StateStorage",
    "Thresholds",
    "UsageObservation",
    "UsageTracker",
    "is_over_threshold",
    "normalize_thresholds",
    "parse_rate_limit_headers",
    "pressure",
    "update_config",
]
