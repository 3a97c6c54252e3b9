"""Database models, engine ownership and the key-value store."""

from .models import Base, KeyValue
from .session import Database
from .store import DatabaseKeyValueStore

__all__ = [
    "Base",
    "Database",
    "DatabaseKeyValueStore",
    "KeyValue",
]
