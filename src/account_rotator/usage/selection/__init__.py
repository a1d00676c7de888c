from .engine import SelectionEngine

__all__ = ["SelectionEngine"]
