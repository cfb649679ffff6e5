"""Append-only ledger of dump and restore operations.

Entries live in the registry document's ``dumpHistory`` array, newest
first.  ``append()`` prepends, so readers never need to re-sort.  Records
are never edited except for the soft-delete marker; ``clear()`` is the only
physical removal.

Usage:
    from dbmux.history import HistoryLedger

    ledger = HistoryLedger()
    entry = ledger.append(
        operation_type="dump",
        database="sales",
        connection_name="local",
        file_path="/home/me/.dbmux/dumps/sales_backup_2025-01-01_00-00-00.dump",
        file_size=1024,
        status="success",
    )
    ledger.successful_dumps(limit=20)
"""

import uuid
from datetime import datetime, timezone
from pathlib import Path

from dbmux.config.loader import get_config_path, load_config, save_config
from dbmux.config.models import (
    HistoryEntry,
    OperationStatus,
    OperationType,
    RegistryConfig,
)
from dbmux.errors import PersistenceFailed


def _generate_id() -> str:
    return uuid.uuid4().hex


class HistoryLedger:
    """Read and append history entries in the registry document."""

    def __init__(self, config_path: Path | None = None):
        self._config_path = config_path

    @property
    def config_path(self) -> Path:
        return self._config_path or get_config_path()

    def _load(self) -> RegistryConfig:
        return load_config(self.config_path)

    def _save(self, config: RegistryConfig) -> None:
        save_config(config, self.config_path)

    def append(
        self,
        operation_type: OperationType,
        database: str,
        connection_name: str,
        file_path: str,
        status: OperationStatus,
        file_size: int = 0,
        error_message: str | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        """Record an operation and return it with a freshly generated ``id``.

        Raises:
            PersistenceFailed: If the registry file cannot be written.
        """
        entry = HistoryEntry(
            id=_generate_id(),
            operation_type=operation_type,
            timestamp=timestamp or datetime.now(timezone.utc),
            database=database,
            connection_name=connection_name,
            file_path=file_path,
            file_size=file_size,
            status=status,
            error_message=error_message,
        )
        config = self._load()
        config.dump_history.insert(0, entry)
        self._save(config)
        return entry

    def record_failure(
        self,
        cause: Exception,
        operation_type: OperationType,
        database: str,
        connection_name: str,
        file_path: str,
    ) -> HistoryEntry:
        """Append a ``failed`` entry describing ``cause``.

        The caller re-raises ``cause`` afterwards.  If the entry itself
        cannot be written, ``PersistenceFailed`` is raised instead, chained
        to ``cause`` so the operation error is not lost.
        """
        message = getattr(cause, "stderr", "").strip() or str(cause)
        try:
            return self.append(
                operation_type=operation_type,
                database=database,
                connection_name=connection_name,
                file_path=file_path,
                status="failed",
                file_size=0,
                error_message=message,
            )
        except PersistenceFailed as e:
            raise PersistenceFailed(
                f"{e} (while recording failed {operation_type}: {cause})"
            ) from cause

    def query(
        self,
        operation_type: OperationType | None = None,
        limit: int | None = None,
    ) -> list[HistoryEntry]:
        """Filter by type, then truncate to ``limit`` (newest first)."""
        history = self._load().dump_history
        if operation_type:
            history = [e for e in history if e.operation_type == operation_type]
        if limit is not None and limit > 0:
            history = history[:limit]
        return history

    def find_by_id(self, entry_id: str) -> HistoryEntry | None:
        return next((e for e in self._load().dump_history if e.id == entry_id), None)

    def find_by_file_path(self, file_path: str) -> HistoryEntry | None:
        """First (newest) entry recorded for ``file_path``."""
        return next(
            (e for e in self._load().dump_history if e.file_path == file_path), None
        )

    def soft_delete(self, entry_id: str) -> bool:
        """Mark an entry deleted by id; False if not found."""
        return self._mark_deleted(lambda e: e.id == entry_id)

    def soft_delete_by_file_path(self, file_path: str) -> bool:
        """Mark the newest entry for ``file_path`` deleted; False if not found."""
        return self._mark_deleted(lambda e: e.file_path == file_path)

    def _mark_deleted(self, predicate) -> bool:
        config = self._load()
        entry = next((e for e in config.dump_history if predicate(e)), None)
        if entry is None:
            return False
        entry.deleted = True
        entry.deleted_at = datetime.now(timezone.utc)
        self._save(config)
        return True

    def clear(self, operation_type: OperationType | None = None) -> int:
        """Remove entries (all, or only one type) and return how many went."""
        config = self._load()
        before = len(config.dump_history)
        if operation_type:
            config.dump_history = [
                e for e in config.dump_history if e.operation_type != operation_type
            ]
        else:
            config.dump_history = []
        self._save(config)
        return before - len(config.dump_history)

    def successful_dumps(self, limit: int | None = None) -> list[HistoryEntry]:
        """Successful, not-deleted dumps, newest first."""
        dumps = [
            e
            for e in self.query(operation_type="dump")
            if e.status == "success" and not e.deleted
        ]
        if limit is not None and limit > 0:
            dumps = dumps[:limit]
        return dumps
