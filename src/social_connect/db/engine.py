"""Database engine and session management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel
from structlog import get_logger

from social_connect.exceptions import AccountStoreUnavailableError


logger = get_logger(__name__)


def get_db_url(path: Path) -> str:
    """Get SQLite database URL, creating the parent directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite+aiosqlite:///{path}"


class Database:
    """Explicitly constructed async engine + session factory.

    Lifecycle is owned by the process entry point: call :meth:`init` on
    startup and :meth:`dispose` on shutdown.
    """

    def __init__(self, path: Path, timeout_seconds: float | None = None) -> None:
        """
        Args:
            path: SQLite database file
            timeout_seconds: Upper bound for one session, also used as the
                SQLite busy timeout; unbounded when None
        """
        self.path = path
        self.timeout_seconds = timeout_seconds
        self._engine: AsyncEngine | None = None
        self._session_maker: async_sessionmaker[AsyncSession] | None = None

    async def init(self) -> None:
        """Create the engine and tables."""
        connect_args = {}
        if self.timeout_seconds is not None:
            connect_args["timeout"] = self.timeout_seconds
        self._engine = create_async_engine(
            get_db_url(self.path), echo=False, connect_args=connect_args
        )
        self._session_maker = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        async with self._engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        logger.debug("database_initialized", path=str(self.path))

    @property
    def engine(self) -> AsyncEngine:
        """Get the database engine."""
        if self._engine is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session that commits on success.

        Raises:
            AccountStoreUnavailableError: The session timed out or the
                database failed; integrity errors are passed through
        """
        if self._session_maker is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        try:
            async with asyncio.timeout(self.timeout_seconds):
                async with self._session_maker() as session:
                    try:
                        yield session
                        await session.commit()
                    except Exception:
                        await session.rollback()
                        raise
        except TimeoutError as e:
            logger.error("database_timeout", timeout_seconds=self.timeout_seconds)
            raise AccountStoreUnavailableError() from e
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            logger.error("database_error", error=str(e), exc_info=e)
            raise AccountStoreUnavailableError() from e

    async def dispose(self) -> None:
        """Close pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_maker = None
