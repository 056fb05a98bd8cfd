"""
StemVault Database Connection Manager
Async database connections for the structured record store
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.orm import DeclarativeBase

from ..core.config import get_settings
from ..core.logging import performance_logger


class Base(DeclarativeBase):
    """SQLAlchemy base for models"""
    pass


class DatabaseManager:
    """Manages database connections and sessions"""

    def __init__(self):
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    async def initialize(self, database_url: Optional[str] = None) -> None:
        """Initialize database connections"""
        settings = get_settings()
        url = database_url or settings.DATABASE_URL

        engine_options = {
            "echo": settings.is_development,  # Log SQL queries in dev
            "pool_pre_ping": True,  # Verify connections before use
        }
        if not url.startswith("sqlite"):
            engine_options["pool_size"] = settings.DATABASE_POOL_SIZE
            engine_options["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

        self._engine = create_async_engine(url, **engine_options)

        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        # Test connections
        await self.check_health()

    async def create_all(self) -> None:
        """Create all tables (development and tests; production uses Alembic)"""
        if not self._engine:
            raise RuntimeError("Database not initialized")

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Close database connections"""
        if self._engine:
            await self._engine.dispose()

    @property
    def session_factory(self) -> async_sessionmaker:
        """Get the session factory"""
        if not self._session_factory:
            raise RuntimeError("Database not initialized")
        return self._session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session"""
        if not self._session_factory:
            raise RuntimeError("Database not initialized")

        async with self._session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def check_health(self) -> bool:
        """Check database health"""
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                result.fetchone()

            return True

        except Exception as e:
            performance_logger.log_health_check_failed("database", e)
            return False


# Global database manager instance
database_manager = DatabaseManager()
