"""Dump artifact naming, lookup, and listing.

All dumps are written to the managed dumps directory
(``~/.dbmux/dumps`` by default).  Generated names always carry a timestamp,
including custom names, so re-running a dump never overwrites an earlier
file.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from dbmux.backup.models import DumpFileInfo, DumpFormat
from dbmux.config.loader import get_dumps_dir
from dbmux.errors import NotFound
from dbmux.history import HistoryLedger

logger = logging.getLogger(__name__)

DUMP_EXTENSIONS = frozenset({".dump", ".dmp", ".sql", ".gz", ".tar"})

TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"


def ensure_dumps_dir() -> Path:
    dumps_dir = get_dumps_dir()
    dumps_dir.mkdir(parents=True, exist_ok=True)
    return dumps_dir


def generate_dump_filename(
    database: str,
    custom_name: str | None = None,
    fmt: DumpFormat = DumpFormat.CUSTOM,
    now: datetime | None = None,
) -> str:
    """Build a timestamped dump filename.

    Args:
        database: Database being dumped (used for the default name).
        custom_name: Optional base name; its extension is kept if present.
        fmt: Dump format, which picks the default extension.
        now: Clock override for tests (default: current UTC time).

    Returns:
        ``{database}_backup_{ts}{ext}`` or ``{custom}_{ts}{ext}``.

    Example:
        >>> generate_dump_filename("sales", now=datetime(2025, 1, 2, 3, 4, 5))
        'sales_backup_2025-01-02_03-04-05.dump'
        >>> generate_dump_filename("sales", "mybackup", now=datetime(2025, 1, 2, 3, 4, 5))
        'mybackup_2025-01-02_03-04-05.dump'
    """
    timestamp = (now or datetime.now(timezone.utc)).strftime(TIMESTAMP_FORMAT)

    if custom_name:
        base = Path(custom_name).name
        suffix = Path(base).suffix
        stem = base[: -len(suffix)] if suffix else base
        return f"{stem}_{timestamp}{suffix or fmt.extension}"

    stem = database.replace("/", "_")
    return f"{stem}_backup_{timestamp}{fmt.extension}"


def get_dump_output_path(filename: str) -> Path:
    return ensure_dumps_dir() / filename


def resolve_dump_path(file_path: str) -> Path:
    """Locate a dump file given by the operator.

    Absolute paths must exist as given.  Relative paths are tried under the
    dumps directory first, then the current working directory.

    Raises:
        NotFound: If no candidate exists.
    """
    candidate = Path(file_path).expanduser()
    if candidate.is_absolute():
        if candidate.is_file():
            return candidate
        raise NotFound(f"Dump file not found: {file_path}")

    dumps_dir = get_dumps_dir()
    for base in (dumps_dir, Path.cwd()):
        resolved = base / candidate
        if resolved.is_file():
            return resolved.resolve()

    raise NotFound(
        f"Dump file not found: {file_path} (checked {dumps_dir} and {Path.cwd()})"
    )


def list_dump_files(directory: Path | None = None) -> list[DumpFileInfo]:
    """List dump artifacts in ``directory``, newest first.

    The managed dumps directory is created if missing; any other missing
    directory yields an empty list.
    """
    if directory is None:
        directory = ensure_dumps_dir()
    elif not directory.is_dir():
        return []

    files: list[DumpFileInfo] = []
    for path in directory.iterdir():
        if not path.is_file() or path.suffix.lower() not in DUMP_EXTENSIONS:
            continue
        stat = path.stat()
        files.append(
            DumpFileInfo(
                name=path.name,
                path=str(path),
                size=stat.st_size,
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            )
        )

    return sorted(files, key=lambda f: f.modified, reverse=True)


def format_file_size(size: int) -> str:
    """Render a byte count as megabytes (``"1.50 MB"``)."""
    return f"{size / (1024 * 1024):.2f} MB"


def delete_dump_file(path: Path, ledger: HistoryLedger | None = None) -> bool:
    """Remove a dump artifact and soft-delete its history entry.

    Returns:
        True if a history entry was marked deleted.

    Raises:
        NotFound: If the file does not exist.
    """
    if not path.is_file():
        raise NotFound(f"Dump file not found: {path}")
    path.unlink()
    logger.info("Deleted dump file %s", path)
    return (ledger or HistoryLedger()).soft_delete_by_file_path(str(path))
