# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

import sys

from .main import main

if __name__ == "__main__":
    sys.exit(main())
