"""Key-value store over the ``kv_entries`` table."""

from __future__ import annotations

from uptime_reconciler.db.models import KeyValue
from uptime_reconciler.db.session import Database


class DatabaseKeyValueStore:
    """Full-overwrite key-value store; the last writer wins."""

    def __init__(self, database: Database) -> None:
        self.database = database

    async def get(self, key: str) -> str | None:
        async with self.database.transaction() as session:
            entry = await session.get(KeyValue, key)
            return entry.value if entry is not None else None

    async def put(self, key: str, value: str) -> None:
        async with self.database.transaction() as session:
            entry = await session.get(KeyValue, key)
            if entry is None:
                session.add(KeyValue(key=key, value=value))
            else:
                entry.value = value
