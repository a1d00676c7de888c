from .store import AccountStore, merge_accounts, normalize_accounts
from .types import Account

__all__ = ["Account", "AccountStore", "merge_accounts", "normalize_accounts"]
