# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Runtime state storage.

Handles loading and saving the runtime state (active account, usage,
request counter, recovery-check time, config) to its own JSON file.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ...core.constants import (
    LEGACY_AUTH_FILE_NAME,
    LOCK_SUFFIX,
    STATE_FILE_NAME,
    STATUS_ALLOWED,
)
from ...utils.paths import get_data_dir
from ...utils.resilient_io import read_json, safe_write_json
from ..config import config_from_dict, config_to_dict
from ..types import AccountUsage, Metric, MetricName, RuntimeState

lib_logger = logging.getLogger("account_rotator")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class StateStorage:
    """
    Handles persistence of the runtime state.

    Features:
    - Async file I/O with aiofiles
    - Atomic writes with backup recovery
    - Migration of legacy keys and of state embedded in auth.json
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        legacy_auth_path: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize storage.

        Args:
            file_path: Path to the state file
            legacy_auth_path: auth.json that may carry state from older versions
        """
        self.file_path = Path(file_path)
        self.legacy_auth_path = Path(legacy_auth_path) if legacy_auth_path else None

    @classmethod
    def for_data_dir(cls, data_dir: Optional[Union[str, Path]] = None) -> "StateStorage":
        base = get_data_dir(data_dir)
        return cls(base / STATE_FILE_NAME, legacy_auth_path=base / LEGACY_AUTH_FILE_NAME)

    @property
    def lock_path(self) -> Path:
        return Path(str(self.file_path) + LOCK_SUFFIX)

    async def load(self) -> RuntimeState:
        """
        Load the runtime state.

        Returns:
            RuntimeState; an empty one if nothing usable is on disk
        """
        data = await read_json(self.file_path, default=None)

        if data is None and self.legacy_auth_path is not None:
            data = await self._load_legacy()

        if not isinstance(data, dict):
            if data is not None:
                lib_logger.warning(f"Ignoring malformed state file {self.file_path.name}")
            return RuntimeState()

        return self._parse_state(data)

    async def save(self, state: RuntimeState) -> bool:
        """
        Save the runtime state atomically.

        Returns:
            True if saved, False if the write failed
        """
        saved = await safe_write_json(self.file_path, self._serialize_state(state), lib_logger)
        if saved:
            lib_logger.debug(f"Saved state to {self.file_path}")
        return saved

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    async def _load_legacy(self) -> Optional[Dict[str, Any]]:
        """Older versions kept the state inside auth.json next to the accounts."""
        raw = await read_json(self.legacy_auth_path, default=None)
        if not isinstance(raw, dict):
            return None
        provider = raw.get("anthropic")
        multi = provider.get("multiAccounts") if isinstance(provider, dict) else None
        if not isinstance(multi, dict):
            return None

        lib_logger.info(f"Migrating runtime state from {self.legacy_auth_path.name}")
        return {key: value for key, value in multi.items() if key != "accounts"}

    def _parse_metric(self, data: Any) -> Metric:
        if not isinstance(data, dict):
            return Metric()

        utilization = _number(data.get("utilization")) or 0.0
        status = data.get("status")
        return Metric(
            utilization=max(0.0, min(1.0, utilization)),
            reset_at=_number(data.get("reset")) or None,
            status=status if isinstance(status, str) and status else STATUS_ALLOWED,
        )

    def _parse_usage(self, data: Any) -> AccountUsage:
        if not isinstance(data, dict):
            return AccountUsage()

        usage = AccountUsage(observed_at=self._parse_timestamp(data.get("timestamp")))
        for name in MetricName:
            setattr(usage, name.attr, self._parse_metric(data.get(name.value)))
        return usage

    @staticmethod
    def _parse_timestamp(value: Any) -> Optional[float]:
        """Accept ISO-8601 strings or epoch milliseconds."""
        number = _number(value)
        if number is not None:
            return number / 1000
        if isinstance(value, str) and value:
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()
        return None

    def _parse_state(self, data: Dict[str, Any]) -> RuntimeState:
        usage = {}
        raw_usage = data.get("usage")
        if isinstance(raw_usage, dict):
            for name, usage_data in raw_usage.items():
                usage[name] = self._parse_usage(usage_data)

        current = data.get("currentAccount")
        request_count = data.get("requestCount")

        # lastX5Check is the pre-rename key for the recovery-check time
        last_check = _number(data.get("lastPrimaryCheck"))
        if last_check is None:
            last_check = _number(data.get("lastX5Check"))

        return RuntimeState(
            active_account_name=current if isinstance(current, str) and current else None,
            usage=usage,
            request_count=request_count
            if isinstance(request_count, int) and not isinstance(request_count, bool) and request_count >= 0
            else 0,
            last_primary_check_at=last_check / 1000 if last_check else None,
            config=config_from_dict(data.get("config")),
        )

    def _serialize_metric(self, metric: Metric) -> Dict[str, Any]:
        return {
            "utilization": metric.utilization,
            "reset": int(metric.reset_at) if metric.reset_at is not None else None,
            "status": metric.status,
        }

    def _serialize_usage(self, usage: AccountUsage) -> Dict[str, Any]:
        data = {name.value: self._serialize_metric(metric) for name, metric in usage.items()}
        data["timestamp"] = (
            datetime.fromtimestamp(usage.observed_at, timezone.utc).isoformat()
            if usage.observed_at is not None
            else None
        )
        return data

    def _serialize_state(self, state: RuntimeState) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "currentAccount": state.active_account_name,
            "usage": {
                name: self._serialize_usage(usage) for name, usage in state.usage.items()
            },
            "requestCount": state.request_count,
            "lastPrimaryCheck": int(round(state.last_primary_check_at * 1000))
            if state.last_primary_check_at is not None
            else None,
            "config": config_to_dict(state.config),
        }
        return data
