# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Account record type and field-name normalization.

Two naming conventions exist on disk: ``access``/``refresh``/``expires``
(epoch ms) and ``accessToken``/``refreshToken``/``expiresAt`` (epoch ms
or ISO-8601). Both are accepted here and written back in the first form.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

lib_logger = logging.getLogger("account_rotator")


@dataclass
class Account:
    """
    One credential set for the upstream service.

    Position in the account list carries meaning: index 0 is the primary,
    the rest are fallbacks in preference order.
    """

    name: str  # Unique, stable key
    access: str = ""
    refresh: str = ""
    expires_at: Optional[float] = None  # Epoch seconds

    def is_access_valid(self, now: Optional[float] = None) -> bool:
        """True if an access token is present and not yet expired."""
        now = time.time() if now is None else now
        return bool(self.access) and self.expires_at is not None and self.expires_at > now

    @classmethod
    def from_record(cls, record: Any) -> Optional["Account"]:
        """Build an account from either on-disk naming convention."""
        if not isinstance(record, dict):
            return None

        name = record.get("name")
        if not isinstance(name, str) or not name.strip():
            lib_logger.warning(f"Skipping account record without a name: {sorted(record)}")
            return None

        expires_at = _parse_expiry(record.get("expires"))
        if expires_at is None:
            expires_at = _parse_expiry(record.get("expiresAt"))

        return cls(
            name=name.strip(),
            access=_first_token(record.get("access"), record.get("accessToken")),
            refresh=_first_token(record.get("refresh"), record.get("refreshToken")),
            expires_at=expires_at,
        )

    def to_record(self) -> Dict[str, Any]:
        """Serialize in the canonical naming convention."""
        return {
            "name": self.name,
            "access": self.access,
            "refresh": self.refresh,
            "expires": int(round(self.expires_at * 1000)) if self.expires_at else 0,
        }


def _first_token(*values: Any) -> str:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return ""


def _parse_expiry(value: Any) -> Optional[float]:
    """Parse epoch-ms numbers, numeric strings or ISO-8601 strings to epoch seconds."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value / 1000
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return float(text) / 1000
    except ValueError:
        pass

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        lib_logger.warning(f"Ignoring unparsable expiry value: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()
