"""Database engine factories — SQLite, PostgreSQL.

Provides async SQLAlchemy engine creation with support for:
- SQLite (aiosqlite driver)
- PostgreSQL (asyncpg driver)
- Configurable pool sizes and echo/debug settings
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from l2_bridge.config.settings import DatabaseEngine

if TYPE_CHECKING:
    from l2_bridge.config.settings import DatabaseConfig


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine from database configuration."""
    kwargs: dict[str, Any] = {"echo": config.debug_sql}

    # SQLite has no connection pool sizing
    if config.engine is DatabaseEngine.POSTGRESQL and "sqlite" not in config.dsn:
        kwargs["pool_size"] = config.max_idle_connections
        kwargs["max_overflow"] = max(config.max_open_connections - config.max_idle_connections, 0)
        kwargs["pool_pre_ping"] = True

    return create_async_engine(config.dsn, **kwargs)
