"""Connection registry: named profiles plus a default pointer.

The registry document is loaded in full, mutated, and written back on every
change.  ``default_connection`` always names an existing profile; each
mutating method keeps that true before saving.

Usage:
    from dbmux.config.registry import ConnectionRegistry
    from dbmux.config.models import PostgresProfile

    registry = ConnectionRegistry()
    registry.add("local", PostgresProfile(user="postgres", database="app"))
    name, profile = registry.resolve()          # session > default
    name, profile = registry.resolve("local")   # explicit wins
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from dbmux.config.loader import get_config_path, load_config, save_config
from dbmux.config.models import (
    ConnectionProfile,
    PostgresProfile,
    RegistryConfig,
    SqliteProfile,
)
from dbmux.config.session import SessionStore
from dbmux.errors import DuplicateName, NotFound

logger = logging.getLogger(__name__)

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


class ConnectionRegistry:
    """CRUD and precedence-aware resolution over saved profiles."""

    def __init__(
        self,
        config_path: Path | None = None,
        session: SessionStore | None = None,
    ):
        self._config_path = config_path
        self._session = session or SessionStore()

    @property
    def config_path(self) -> Path:
        return self._config_path or get_config_path()

    @property
    def session(self) -> SessionStore:
        return self._session

    def load(self) -> RegistryConfig:
        return load_config(self.config_path)

    def save(self, config: RegistryConfig) -> None:
        save_config(config, self.config_path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def names(self) -> list[str]:
        return list(self.load().connections)

    def connections(self) -> dict[str, ConnectionProfile]:
        return dict(self.load().connections)

    def get(self, name: str) -> ConnectionProfile:
        config = self.load()
        if name not in config.connections:
            raise NotFound(f"Connection '{name}' not found")
        return config.connections[name]

    def default_name(self) -> str | None:
        return self.load().default_connection

    def list_sorted_by_recency(self) -> list[tuple[str, ConnectionProfile]]:
        """Profiles by ``last_connected_at`` descending, never-used last.

        Ties keep registry order.
        """
        items = list(self.load().connections.items())
        return sorted(
            items,
            key=lambda item: item[1].last_connected_at or _NEVER,
            reverse=True,
        )

    def resolve_name(self, explicit: str | None = None) -> str:
        """Pick the connection name for a command.

        Precedence: ``explicit`` > session pointer > default connection.
        A session pointer naming a profile that no longer exists is
        treated as unset.

        Raises:
            NotFound: If nothing resolves, or ``explicit`` is not saved.
        """
        config = self.load()

        if explicit:
            if explicit not in config.connections:
                raise NotFound(f"Connection '{explicit}' not found")
            return explicit

        active = self._session.get_active()
        if active:
            if active in config.connections:
                return active
            logger.warning(
                "Session points to missing connection '%s'; using default", active
            )

        if config.default_connection:
            if config.default_connection in config.connections:
                return config.default_connection
            raise NotFound(
                f"Default connection '{config.default_connection}' not found"
            )

        raise NotFound(
            "No connection specified, no active session, and no default "
            "connection set. Run 'dbmux connect' first."
        )

    def resolve(
        self, explicit: str | None = None
    ) -> tuple[str, ConnectionProfile]:
        """Resolve a connection name and return ``(name, profile)``."""
        name = self.resolve_name(explicit)
        return name, self.load().connections[name]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(
        self, name: str, profile: ConnectionProfile, overwrite: bool = False
    ) -> None:
        """Save a profile; the first profile becomes the default.

        Raises:
            DuplicateName: If ``name`` exists and ``overwrite`` is False.
        """
        config = self.load()
        if name in config.connections and not overwrite:
            raise DuplicateName(f"Connection '{name}' already exists")
        config.connections[name] = profile
        if not config.default_connection:
            config.default_connection = name
        self.save(config)

    def remove(self, name: str) -> bool:
        """Delete a profile, reassigning the default if it pointed here.

        Returns:
            False if no such profile existed.
        """
        config = self.load()
        if name not in config.connections:
            logger.warning("Connection '%s' does not exist", name)
            return False

        del config.connections[name]
        if config.default_connection == name:
            config.default_connection = next(iter(config.connections), None)
        self.save(config)
        return True

    def rename(self, old: str, new: str) -> None:
        """Rename a profile, carrying the default pointer with it.

        Raises:
            NotFound: If ``old`` does not exist.
            DuplicateName: If ``new`` already exists.
        """
        config = self.load()
        if old not in config.connections:
            raise NotFound(f"Connection '{old}' does not exist")
        if new in config.connections:
            raise DuplicateName(f"Connection '{new}' already exists")

        config.connections[new] = config.connections.pop(old)
        if config.default_connection == old:
            config.default_connection = new
        self.save(config)

    def set_default(self, name: str) -> None:
        config = self.load()
        if name not in config.connections:
            raise NotFound(f"Connection '{name}' does not exist")
        config.default_connection = name
        self.save(config)

    def touch_last_used(self, name: str, now: datetime | None = None) -> None:
        """Stamp ``last_connected_at``; unknown names are ignored."""
        config = self.load()
        profile = config.connections.get(name)
        if profile is None:
            return
        profile.last_connected_at = now or datetime.now(timezone.utc)
        self.save(config)

    def update_settings(self, **changes: Any) -> None:
        config = self.load()
        config.settings = config.settings.model_copy(update=changes)
        self.save(config)


# ============================================================================
# Profile construction helpers
# ============================================================================


def profile_from_url(url: str) -> ConnectionProfile:
    """Build a profile from a ``postgresql://`` or ``sqlite:///`` URL.

    Raises:
        ValueError: If the URL is malformed or the scheme is unsupported.

    Example:
        >>> profile_from_url("postgres://app:secret@db:5433/sales?sslmode=require")
        PostgresProfile(host='db', port=5433, user='app', ..., ssl=True)
    """
    try:
        parsed = make_url(url)
    except ArgumentError as e:
        raise ValueError(f"Invalid database URL: {e}") from e

    backend = parsed.get_backend_name()
    if backend == "sqlite":
        if not parsed.database:
            raise ValueError("SQLite URL must include a file path")
        return SqliteProfile(file_path=parsed.database)

    if backend not in ("postgres", "postgresql"):
        raise ValueError(f"Unsupported database type: {backend}")

    query = {k: str(v).lower() for k, v in parsed.query.items()}
    ssl = query.get("ssl") == "true" or query.get("sslmode") == "require"

    fields: dict[str, Any] = {"ssl": ssl}
    if parsed.host:
        fields["host"] = parsed.host
    if parsed.port:
        fields["port"] = parsed.port
    if parsed.username:
        fields["user"] = parsed.username
    if parsed.password:
        fields["password"] = parsed.password
    if parsed.database:
        fields["database"] = parsed.database
    return PostgresProfile(**fields)


def default_connection_name(profile: ConnectionProfile) -> str:
    """Suggested name for a new profile."""
    if isinstance(profile, SqliteProfile):
        return f"sqlite-{Path(profile.file_path).stem}"
    return f"{profile.user}@{profile.host}/{profile.database}"
