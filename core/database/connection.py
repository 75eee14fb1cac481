# PostgreSQL connection management
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import text, event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from core.logging.enhanced_logging import get_database_logger_safe, get_error_logger_safe

db_logger = get_database_logger_safe("database_manager")
error_logger = get_error_logger_safe("database_manager")

# The base class for all SQLAlchemy models
Base = declarative_base()

SLOW_QUERY_MS = 500


class DatabaseManager:
    """Manages the connection to the PostgreSQL database"""

    def __init__(self, db_url: str, environment: str = "development", schema_management: str = "auto"):
        self._engine = create_async_engine(
            db_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            pool_recycle=3600,
        )
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
            class_=AsyncSession,
        )
        self._environment = environment
        self._schema_management = schema_management
        self._setup_database_logging()

    async def init(self):
        """Create tables unless the schema is managed externally"""
        if self._schema_management == "external":
            db_logger.info("Schema managed externally, skipping create_all")
            return

        # Import models so they register on Base.metadata
        from core.database import models  # noqa: F401

        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        db_logger.info("Database initialized with create_all", environment=self._environment)

    async def verify_connection(self) -> bool:
        """Verify database connection is ready"""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            error_logger.error("Database connection verification failed", error=str(e))
            return False

    async def shutdown(self):
        """Closes the database connection pool"""
        await self._engine.dispose()
        db_logger.info("Database connection pool closed")

    def _setup_database_logging(self):
        @event.listens_for(self._engine.sync_engine, "before_cursor_execute")
        def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            context._query_start_time = time.time()

        @event.listens_for(self._engine.sync_engine, "after_cursor_execute")
        def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
            if not hasattr(context, "_query_start_time"):
                return
            execution_time = (time.time() - context._query_start_time) * 1000
            if execution_time > SLOW_QUERY_MS:
                db_logger.warning("Slow database query detected",
                                  execution_time_ms=execution_time,
                                  query_type=statement.split()[0].upper() if statement else "UNKNOWN")

    @asynccontextmanager
    async def get_session(self) -> AsyncIterator[AsyncSession]:
        """Provides a new database session WITHOUT auto-commit.

        Callers own their transaction boundaries; any exception raised inside
        the block rolls the session back before propagating.
        """
        session_start_time = time.time()
        async with self._session_factory() as session:
            try:
                yield session
            except Exception as session_error:
                await session.rollback()
                error_logger.error("Database session error with rollback",
                                   error=str(session_error),
                                   session_duration_ms=(time.time() - session_start_time) * 1000,
                                   environment=self._environment)
                raise
