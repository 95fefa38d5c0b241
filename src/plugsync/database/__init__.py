from .connection import Database

__all__ = ["Database"]
