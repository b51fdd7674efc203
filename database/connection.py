"""
Database Connection Module

Async SQLAlchemy engine and session factory for the profile and attendance
tables. SQL Server (aioodbc) is the default backend; DATABASE_URL switches
to any other async URL, e.g. sqlite+aiosqlite for local runs and tests.
"""

import logging
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy import text

import config

logger = logging.getLogger(__name__)

_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker] = None


def build_mssql_url() -> str:
    """aioodbc URL; SERVER uses host,port (comma, not colon)"""
    return (
        f"mssql+aioodbc:///?odbc_connect="
        f"DRIVER={{ODBC Driver 18 for SQL Server}};"
        f"SERVER={config.MSSQL_HOST},{config.MSSQL_PORT};"
        f"DATABASE={config.MSSQL_DATABASE};"
        f"UID={config.MSSQL_USER};"
        f"PWD={config.MSSQL_PASSWORD};"
        f"TrustServerCertificate=yes;"
        f"Connection Timeout=30"
    )


def resolve_database_url() -> str:
    return config.DATABASE_URL or build_mssql_url()


def _engine_options(url: str) -> Dict:
    if url.startswith("sqlite"):
        # Connections must not outlive the event loop that opened them
        return {"poolclass": NullPool}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 1800,  # seconds
    }


def get_async_engine() -> AsyncEngine:
    """Get or create the shared async engine."""
    global _engine
    if _engine is None:
        url = resolve_database_url()
        _engine = create_async_engine(url, echo=False, **_engine_options(url))
        logger.info(f"Database engine created ({_engine.url.get_backend_name()})")
    return _engine


def get_session_factory() -> async_sessionmaker:
    """Get async session factory (creates if not exists)."""
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _async_session_factory


async def ping_database() -> bool:
    """True if a trivial query round-trips."""
    try:
        async with get_async_engine().connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            return result.scalar() == 1
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        return False


async def init_database():
    """
    Create missing tables.

    Called on application startup.
    """
    from .models import Base

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def close_database():
    """Dispose the engine on shutdown."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
        logger.info("Database connection closed")
