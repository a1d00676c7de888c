from .storage import StateStorage

__all__ = ["StateStorage"]
