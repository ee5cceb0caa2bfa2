"""
StockPulse Database Session Management

Async SQLAlchemy engine and session factory. PostgreSQL (asyncpg) in
deployments; a ``sqlite+aiosqlite`` URL works for local runs and tests.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import get_settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an engine, sizing the pool only for server databases."""
    if make_url(database_url).get_backend_name() == "sqlite":
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


settings = get_settings()

engine = build_engine(settings.database_url, settings.database_echo)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass
