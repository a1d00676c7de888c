# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Shared constants for the account rotator.

Defaults, file names and wire-format keys live here so that the storage,
tracking and selection layers agree on them.
"""

import os

# =============================================================================
# SELECTION DEFAULTS
# =============================================================================

# Utilization above which an account is considered too risky to keep using
DEFAULT_THRESHOLD = 0.70

# How often a fallback-active rotator re-checks the primary (seconds)
DEFAULT_RECOVERY_INTERVAL_SECONDS = 3600

# =============================================================================
# FILE LOCATIONS
# =============================================================================

DEFAULT_DATA_DIR = os.path.join("~", ".local", "share", "opencode")

ACCOUNTS_FILE_NAME = "multi-account-auth.json"
STATE_FILE_NAME = "multi-account-state.json"

# Legacy locations, highest priority first. auth.json nests the accounts
# under anthropic.multiAccounts; the other file holds a bare list.
LEGACY_AUTH_FILE_NAME = "auth.json"
LEGACY_ACCOUNTS_FILE_NAME = "anthropic-accounts.json"

BACKUP_SUFFIX = ".bak"
TEMP_SUFFIX = ".tmp"
LOCK_SUFFIX = ".lock"

# =============================================================================
# OAUTH
# =============================================================================

# Public client id of the upstream CLI application
CLIENT_ID = os.getenv(
    "ANTHROPIC_OAUTH_CLIENT_ID", "9d1c250a-e61b-44d9-88ed-5944d1962f5e"
)
TOKEN_URL = os.getenv(
    "ANTHROPIC_OAUTH_TOKEN_URL", "https://console.anthropic.com/v1/oauth/token"
)

REFRESH_TIMEOUT_SECONDS = 30.0
REFRESH_MAX_RETRIES = 3

# =============================================================================
# TELEMETRY
# =============================================================================

RATE_LIMIT_HEADER_PREFIX = "anthropic-ratelimit-unified-"

# Allowed status token for a metric with quota left
STATUS_ALLOWED = "allowed"
