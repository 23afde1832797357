"""Relay-Core Persistence.

Postgres (asyncpg) catalog store for sources, credentials, tools and routines.
"""

from .database import check_db_connection, close_db_connections, get_engine, get_session_factory
from .stores import PgCatalogStore

__all__ = [
    "PgCatalogStore",
    "check_db_connection",
    "close_db_connections",
    "get_engine",
    "get_session_factory",
]
