"""Service layer exports."""

from .postgres import PostgresPoolManager, to_asyncpg_dsn

__all__ = [
    "PostgresPoolManager",
    "to_asyncpg_dsn",
]
