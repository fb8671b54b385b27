"""Database connection and session management."""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from aerotrade.config import Settings
from aerotrade.ledger.models import Base


class Database:
    """Owns the async engine and session factory.

    Constructed once at startup and injected into the engine and the API.

    Usage:
        db = Database("sqlite+aiosqlite:///./data/aerotrade.db")
        await db.init()
        async with db.session() as session:
            ...
        await db.close()
    """

    def __init__(self, url: str, echo: bool = False):
        # Convert sqlite:/// to sqlite+aiosqlite:/// if needed
        if url.startswith("sqlite:///") and "aiosqlite" not in url:
            url = url.replace("sqlite:///", "sqlite+aiosqlite:///")
        self.url = url

        kwargs = {}
        if self.is_memory:
            # One shared connection, otherwise each session sees an empty database
            kwargs["poolclass"] = StaticPool
            kwargs["connect_args"] = {"check_same_thread": False}

        self.engine = create_async_engine(url, echo=echo, future=True, **kwargs)
        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, echo=settings.debug and not settings.is_production)

    @property
    def is_memory(self) -> bool:
        parsed = make_url(self.url)
        return parsed.get_backend_name() == "sqlite" and parsed.database in (None, "", ":memory:")

    async def init(self) -> None:
        """Create all tables (and the SQLite data directory)."""
        parsed = make_url(self.url)
        if parsed.get_backend_name() == "sqlite" and not self.is_memory:
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Session context manager: commits on success, rolls back on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Dispose of the engine and its connections."""
        await self.engine.dispose()
