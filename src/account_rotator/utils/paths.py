# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import os
from pathlib import Path
from typing import Optional, Union

from ..core.constants import DEFAULT_DATA_DIR


def get_data_dir(override: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve the directory holding the account and state files.

    Precedence: explicit override, ROTATOR_DATA_DIR, then the default
    under the user's home.
    """
    raw = override or os.getenv("ROTATOR_DATA_DIR") or DEFAULT_DATA_DIR
    return Path(os.path.expanduser(str(raw)))
