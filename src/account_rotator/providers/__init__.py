from .anthropic_auth_base import CredentialRefresher, RefreshOutcome

__all__ = ["CredentialRefresher", "RefreshOutcome"]
