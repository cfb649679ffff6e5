"""dbmux: named PostgreSQL connections with audited dump and restore.

Keeps connection profiles in a per-user registry, drives pg_dump /
pg_restore / psql for backups, and records every operation in a history
ledger.

Usage:
    from dbmux import ConnectionRegistry, DumpOrchestrator, HistoryLedger
    from dbmux import CommandContext, resolve_url
"""

__version__ = "0.1.0"

# Adapters
from dbmux.adapters.base import DatabaseClient, DatabaseInfo
from dbmux.adapters.postgres import AsyncPostgresAdapter

# Config
from dbmux.config.models import (
    ConnectionProfile,
    HistoryEntry,
    PostgresProfile,
    RegistryConfig,
    Settings,
    SqliteProfile,
)
from dbmux.config.registry import ConnectionRegistry, profile_from_url
from dbmux.config.session import SessionStore

# Factory
from dbmux.factory import CommandContext, get_adapter, resolve_url

# History
from dbmux.history import HistoryLedger

# Backup
from dbmux.backup.dump import DumpOrchestrator
from dbmux.backup.models import DumpFormat, RestoreStrategy
from dbmux.backup.restore import RestoreOrchestrator

# Errors
from dbmux.errors import (
    DbmuxError,
    DuplicateName,
    InvalidIdentifier,
    NotFound,
    PersistenceFailed,
    ProcessExecutionFailed,
    ToolUnavailable,
    UnsupportedEngine,
    VerificationFailed,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "DatabaseInfo",
    "AsyncPostgresAdapter",
    # Config
    "ConnectionProfile",
    "PostgresProfile",
    "SqliteProfile",
    "Settings",
    "HistoryEntry",
    "RegistryConfig",
    "ConnectionRegistry",
    "SessionStore",
    "profile_from_url",
    # Factory
    "CommandContext",
    "get_adapter",
    "resolve_url",
    # History
    "HistoryLedger",
    # Backup
    "DumpOrchestrator",
    "RestoreOrchestrator",
    "DumpFormat",
    "RestoreStrategy",
    # Errors
    "DbmuxError",
    "NotFound",
    "DuplicateName",
    "InvalidIdentifier",
    "UnsupportedEngine",
    "ToolUnavailable",
    "VerificationFailed",
    "ProcessExecutionFailed",
    "PersistenceFailed",
]
