"""Models shared by the dump and restore orchestrators.

Usage:
    from dbmux.backup.models import DumpFormat, RestoreStrategy, ToolResult
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class DumpFormat(str, Enum):
    """``pg_dump --format`` values supported for new dumps."""

    CUSTOM = "custom"
    PLAIN = "plain"
    TAR = "tar"

    @property
    def extension(self) -> str:
        return {"custom": ".dump", "plain": ".sql", "tar": ".tar"}[self.value]


class RestoreStrategy(str, Enum):
    """How the target database is prepared before a restore."""

    CREATE_NEW = "create"
    DROP_RECREATE = "drop"
    RESTORE_INTO_EXISTING = "existing"

    @property
    def label(self) -> str:
        return {
            "create": "create new",
            "drop": "drop and recreate",
            "existing": "restore to existing",
        }[self.value]


class ToolResult(BaseModel):
    """Outcome of one external tool invocation."""

    exit_succeeded: bool
    returncode: int
    stdout: str = ""
    stderr: str = ""


class DumpFileInfo(BaseModel):
    """A dump artifact found on disk."""

    name: str
    path: str
    size: int                # bytes
    modified: datetime


class DumpResult(BaseModel):
    """A successfully written dump artifact."""

    path: str
    size: int
    database: str
    connection_name: str


class RestoreResult(BaseModel):
    """Outcome of a restore run.

    ``cancelled`` is set when the operator declined a confirmation; no
    history entry is written in that case.
    """

    cancelled: bool = False
    source: str | None = None
    database: str | None = None
    strategy: RestoreStrategy | None = None
    custom_format: bool | None = None
