"""Pydantic models for the persisted registry, session, and history."""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _StoredModel(BaseModel):
    """Base for models persisted as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# Connection Profiles
# ============================================================================


class PostgresProfile(_StoredModel):
    """Network connection profile for a PostgreSQL server."""

    type: Literal["postgresql"] = "postgresql"
    host: str = "localhost"
    port: int = 5432
    user: str | None = None
    password: str | None = None
    database: str | None = None
    ssl: bool = False
    last_connected_at: datetime | None = None

    @field_validator("last_connected_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def describe(self) -> str:
        """Short human-readable location (``host:port/database``)."""
        return f"{self.host}:{self.port}/{self.database or ''}"


class SqliteProfile(_StoredModel):
    """File-based connection profile for a SQLite database."""

    type: Literal["sqlite"] = "sqlite"
    file_path: str
    last_connected_at: datetime | None = None

    @field_validator("last_connected_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def describe(self) -> str:
        return self.file_path


ConnectionProfile = Annotated[
    Union[PostgresProfile, SqliteProfile], Field(discriminator="type")
]


# ============================================================================
# Settings
# ============================================================================


class Settings(_StoredModel):
    """User-level settings stored alongside the connection profiles."""

    log_level: str = "info"
    auto_connect: bool = False
    query_timeout: int = 30000  # milliseconds


# ============================================================================
# History
# ============================================================================


OperationType = Literal["dump", "restore"]
OperationStatus = Literal["success", "failed"]


class HistoryEntry(_StoredModel):
    """One dump or restore attempt.

    Entries are append-only.  ``deleted``/``deleted_at`` is the soft-delete
    marker set when the dump artifact is removed; the record itself stays
    until an explicit ``clear()``.
    """

    id: str
    operation_type: OperationType
    timestamp: datetime
    database: str
    connection_name: str
    file_path: str
    file_size: int = 0
    status: OperationStatus
    error_message: str | None = None
    deleted: bool = False
    deleted_at: datetime | None = None

    @field_validator("timestamp", "deleted_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)


# ============================================================================
# Persisted Roots
# ============================================================================


class RegistryConfig(_StoredModel):
    """Complete registry document (``config.json``)."""

    connections: dict[str, ConnectionProfile] = Field(default_factory=dict)
    default_connection: str | None = None
    settings: Settings = Field(default_factory=Settings)
    dump_history: list[HistoryEntry] = Field(default_factory=list)


class SessionState(_StoredModel):
    """Session pointer document (``session.json``)."""

    active_connection: str | None = None
