"""Configuration: profiles, settings, registry persistence, session pointer.

Usage:
    >>> from dbmux.config import ConnectionRegistry, PostgresProfile, SessionStore
"""

from dbmux.config.loader import (
    get_config_dir,
    get_config_path,
    get_dumps_dir,
    get_session_path,
    load_config,
    save_config,
)
from dbmux.config.models import (
    ConnectionProfile,
    HistoryEntry,
    PostgresProfile,
    RegistryConfig,
    SessionState,
    Settings,
    SqliteProfile,
)
from dbmux.config.registry import (
    ConnectionRegistry,
    default_connection_name,
    profile_from_url,
)
from dbmux.config.session import SessionStore

__all__ = [
    "get_config_dir",
    "get_config_path",
    "get_dumps_dir",
    "get_session_path",
    "load_config",
    "save_config",
    "ConnectionProfile",
    "HistoryEntry",
    "PostgresProfile",
    "RegistryConfig",
    "SessionState",
    "Settings",
    "SqliteProfile",
    "ConnectionRegistry",
    "default_connection_name",
    "profile_from_url",
    "SessionStore",
]
