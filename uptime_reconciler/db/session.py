"""Async engine ownership for the key-value store.

A :class:`Database` is created once per process by whoever runs the
reconciler (the CLI or the FastAPI lifespan) and handed to the store
explicitly.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from uptime_reconciler.db.models import Base


class Database:
    """One async engine plus the transactions opened against it."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self.url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, echo=echo)
        self._sessions = async_sessionmaker(self.engine, expire_on_commit=False)

    async def create_tables(self) -> None:
        """Create ``kv_entries`` when migrations have not been run."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> Database:
        await self.create_tables()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on exit and rolls back on error."""
        async with self._sessions.begin() as session:
            yield session
