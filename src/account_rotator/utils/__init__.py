# src/account_rotator/utils/__init__.py

from .credential_formatter import format_account_for_display, format_expiry
from .paths import get_data_dir
from .resilient_io import read_json, safe_write_json

__all__ = [
    'format_account_for_display',
    'format_expiry',
    'get_data_dir',
    'read_json',
    'safe_write_json',
]
