from .rotating_client import AccountContext, RotatingAccountClient

__all__ = ["AccountContext", "RotatingAccountClient"]
