"""Persistence adapters."""

from .base import PersistenceAdapter
from .memory import InMemoryStore
from .sqlite import SQLiteStore

__all__ = ["InMemoryStore", "PersistenceAdapter", "SQLiteStore"]
