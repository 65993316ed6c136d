"""Async database service with SQLModel and SQLAlchemy 2.0."""

from contextlib import asynccontextmanager
from typing import Any, Dict

from sqlalchemy import func, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from core.config import Settings
from core.exceptions import ConfigurationError
from core.logging import get_logger
from models.auth import User  # Import User model to ensure table creation

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.database_url)

    async def startup(self):
        """Initialize database connection and create tables."""
        if not self.is_configured:
            logger.warning("DATABASE_URL not set, account routes will report CONFIG_ERROR")
            return

        try:
            # Disable verbose database logging
            import logging
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.database_url.startswith("sqlite"):
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.is_configured:
            raise ConfigurationError("Database configuration error")
        if not self.async_session:
            await self.startup()

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    # ============================================================================
    # Users
    # ============================================================================

    async def get_user_by_email(self, email: str):
        async with self.get_session() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalars().first()

    async def add_user(self, user: User) -> User:
        async with self.get_session() as session:
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    async def count_users(self) -> int:
        async with self.get_session() as session:
            result = await session.execute(select(func.count()).select_from(User))
            return result.scalar_one()

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database ping failed", error=str(e))
            return False
