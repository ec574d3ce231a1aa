"""
Database Infrastructure
=======================

Manages database connections, session lifecycle, and engine configuration.

Uses SQLAlchemy 2.0 with asyncpg for async PostgreSQL operations (aiosqlite
in tests). A single `Database` handle is created during application startup
and stored on `app.state.database`; request handlers get sessions through
the `get_session` dependency.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    All models inherit from this class.
    """
    pass


class Database:
    """
    Owns the async engine and session maker.

    Explicitly constructed and disposed by the application lifespan; tests
    build one against SQLite.
    """

    def __init__(
        self,
        url: str,
        echo: bool = False,
        pool_size: Optional[int] = None,
        max_overflow: Optional[int] = None,
        engine: Optional[AsyncEngine] = None,
    ):
        if engine is None:
            # Fix asyncpg SSL: replace sslmode with ssl for asyncpg compatibility
            url = url.replace("sslmode=", "ssl=")
            engine_kwargs = {"echo": echo, "pool_pre_ping": True}
            if not url.startswith("sqlite"):
                if pool_size is not None:
                    engine_kwargs["pool_size"] = pool_size
                if max_overflow is not None:
                    engine_kwargs["max_overflow"] = max_overflow
            engine = create_async_engine(url, **engine_kwargs)

        self._engine = engine
        self._session_maker = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,  # Prevent lazy loading after commit
            autoflush=False,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @property
    def session_maker(self) -> async_sessionmaker[AsyncSession]:
        return self._session_maker

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Async context manager for database sessions.

        For use in background tasks and workflow steps.

        Usage:
            async with database.session() as session:
                result = await session.execute(select(UserModel))

        Commits on clean exit, rolls back on error.
        """
        async with self._session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """
        Create all database tables.

        This should only be used for development/testing.
        Production should use migrations.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """
        Close the database engine and dispose of connections.

        Should be called during application shutdown.
        """
        await self._engine.dispose()


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Async generator for database sessions.

    For use with FastAPI's Depends() - FastAPI handles the lifecycle.

    Usage in FastAPI:
        @router.get("/tickets")
        async def list_tickets(session: AsyncSession = Depends(get_session)):
            ...

    Yields:
        AsyncSession: SQLAlchemy async session
    """
    database: Optional[Database] = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("Database not initialized. Build the app through its lifespan first.")

    async with database.session() as session:
        yield session
