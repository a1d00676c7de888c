# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Crash-safe JSON file helpers.

Writes go through a temp file and an atomic rename, with the previous
content kept as a ``.bak`` copy. Reads fall back to that copy when the
main file is missing or unparsable.
"""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Optional, Union

import aiofiles

from ..core.constants import BACKUP_SUFFIX, TEMP_SUFFIX

lib_logger = logging.getLogger("account_rotator")


def backup_path(path: Union[str, Path]) -> Path:
    return Path(str(path) + BACKUP_SUFFIX)


def temp_path(path: Union[str, Path]) -> Path:
    return Path(str(path) + TEMP_SUFFIX)


async def read_json(
    path: Union[str, Path],
    default: Any = None,
    logger: Optional[logging.Logger] = None,
) -> Any:
    """
    Read a JSON file, recovering from its backup copy if needed.

    Args:
        path: File to read
        default: Returned when neither the file nor its backup can be parsed
        logger: Logger for recovery events (defaults to the library logger)

    Returns:
        Parsed JSON value, or ``default``
    """
    logger = logger or lib_logger
    path = Path(path)

    for candidate in (path, backup_path(path)):
        if not candidate.exists():
            continue
        try:
            async with aiofiles.open(candidate, "r", encoding="utf-8") as f:
                content = await f.read()
            data = json.loads(content)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read '{candidate.name}': {e}")
            continue

        if candidate != path:
            logger.warning(f"Recovered '{path.name}' from backup '{candidate.name}'")
        return data

    return default


async def safe_write_json(
    path: Union[str, Path],
    data: Any,
    logger: Optional[logging.Logger] = None,
    secure_permissions: bool = False,
) -> bool:
    """
    Write JSON atomically, keeping the previous content as a backup.

    The visible file always holds either the old or the new complete
    content. Failures are logged and reported via the return value.

    Args:
        path: Destination file
        data: JSON-serializable value
        logger: Logger for failures (defaults to the library logger)
        secure_permissions: Restrict the file to the owner (0600)

    Returns:
        True if the new content is in place, False otherwise
    """
    logger = logger or lib_logger
    path = Path(path)
    tmp = temp_path(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        content = json.dumps(data, indent=2)
    except (OSError, TypeError, ValueError) as e:
        logger.error(f"Failed to prepare write of '{path.name}': {e}")
        return False

    if path.exists():
        try:
            shutil.copy2(path, backup_path(path))
        except OSError as e:
            # Backup is best-effort; the write itself can still succeed
            logger.warning(f"Could not back up '{path.name}': {e}")

    try:
        async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
            await f.write(content)
        if secure_permissions:
            os.chmod(tmp, 0o600)

        # Atomic rename
        tmp.replace(path)
    except OSError as e:
        logger.error(f"Failed to save '{path.name}': {e}")
        return False

    return True
