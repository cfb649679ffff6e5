"""Live database connection handles.

Usage:
    from dbmux.adapters import AsyncPostgresAdapter, DatabaseClient, DatabaseInfo
"""

from dbmux.adapters.base import DatabaseClient, DatabaseInfo
from dbmux.adapters.postgres import AsyncPostgresAdapter

__all__ = [
    "DatabaseClient",
    "DatabaseInfo",
    "AsyncPostgresAdapter",
]
