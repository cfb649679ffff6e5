"""Dump orchestration: pg_dump into the managed dumps directory.

Every attempt that reaches the tool is recorded in the history ledger,
success or failure.  Precondition errors (unknown database, invalid name,
missing pg_dump) are raised before anything is written.

Usage:
    from dbmux.backup.dump import DumpOrchestrator

    orchestrator = DumpOrchestrator()
    result = await orchestrator.run(profile, "local", "sales", client=client)
    print(result.path, result.size)
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from dbmux.adapters.base import DatabaseClient
from dbmux.backup.files import generate_dump_filename, get_dump_output_path
from dbmux.backup.lifecycle import PG_DUMP, ToolRunner, connection_args, tool_env
from dbmux.backup.models import DumpFormat, DumpResult
from dbmux.backup.runner import ensure_commands_exist, run_tool
from dbmux.config.models import ConnectionProfile, PostgresProfile
from dbmux.errors import NotFound, ProcessExecutionFailed
from dbmux.factory import require_postgres
from dbmux.history import HistoryLedger
from dbmux.identifiers import to_conninfo_dbname, unquote, validate_database_name

logger = logging.getLogger(__name__)


def build_dump_args(
    profile: PostgresProfile,
    database: str,
    output_path: Path,
    fmt: DumpFormat = DumpFormat.CUSTOM,
    verbose: bool = False,
    compress: bool = False,
) -> list[str]:
    """pg_dump argument list; ownership and grants are always omitted."""
    args = connection_args(profile) + [
        "--format",
        fmt.value,
        "--file",
        str(output_path),
        "--no-privileges",
        "--no-owner",
    ]
    if verbose:
        args.append("--verbose")
    if compress and fmt is DumpFormat.PLAIN:
        args += ["--compress", "9"]
    args.append(f"--dbname={to_conninfo_dbname(database)}")
    return args


class DumpOrchestrator:
    """Runs pg_dump for one database and records the outcome.

    Args:
        ledger: History ledger (default: the per-user registry).
        runner: Tool runner coroutine, replaceable in tests.
        clock: Returns the current time used in generated filenames.
    """

    def __init__(
        self,
        ledger: HistoryLedger | None = None,
        runner: ToolRunner = run_tool,
        clock: Callable[[], datetime] | None = None,
    ):
        self._ledger = ledger or HistoryLedger()
        self._run = runner
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def run(
        self,
        profile: ConnectionProfile,
        connection_name: str,
        database: str,
        client: DatabaseClient | None = None,
        output: str | None = None,
        fmt: DumpFormat = DumpFormat.CUSTOM,
        verbose: bool = False,
        compress: bool = False,
    ) -> DumpResult:
        """Dump ``database`` and append a history entry.

        Args:
            profile: Resolved connection profile (must be PostgreSQL).
            connection_name: Registry name recorded in history.
            database: Database to dump.
            client: Live handle used to confirm ``database`` exists.
            output: Optional custom base name (still timestamped).
            fmt: pg_dump output format.
            verbose: Pass ``--verbose`` and stream tool output.
            compress: Compress plain-format output.

        Returns:
            DumpResult for the written file.

        Raises:
            UnsupportedEngine: If the profile is not PostgreSQL.
            InvalidIdentifier: If ``database`` is not a valid name.
            ToolUnavailable: If pg_dump is not installed.
            NotFound: If ``database`` is not on the server.
            ProcessExecutionFailed: If pg_dump fails or writes nothing.
            PersistenceFailed: If the history entry cannot be written.
        """
        pg = require_postgres(profile)
        validate_database_name(database)
        ensure_commands_exist([PG_DUMP])

        if client is not None:
            available = [db.name for db in await client.list_databases()]
            if unquote(database) not in available:
                raise NotFound(
                    f"Database '{database}' not found. Available: "
                    f"{', '.join(available) or '(none)'}"
                )

        raw_name = unquote(database)
        filename = generate_dump_filename(raw_name, output, fmt, now=self._clock())
        output_path = get_dump_output_path(filename)
        args = build_dump_args(pg, database, output_path, fmt, verbose, compress)

        logger.info("Dumping '%s' to %s", database, output_path)
        result = await self._run(PG_DUMP, args, tool_env(pg), stream_output=verbose)

        try:
            if not result.exit_succeeded:
                raise ProcessExecutionFailed(
                    f"pg_dump exited with code {result.returncode}: {result.stderr.strip()}",
                    result.stderr,
                )
            if not output_path.is_file():
                raise ProcessExecutionFailed(
                    f"pg_dump reported success but {output_path} was not created"
                )
        except ProcessExecutionFailed as e:
            self._ledger.record_failure(
                e, "dump", raw_name, connection_name, str(output_path)
            )
            raise

        size = output_path.stat().st_size
        self._ledger.append(
            operation_type="dump",
            database=raw_name,
            connection_name=connection_name,
            file_path=str(output_path),
            file_size=size,
            status="success",
        )
        logger.info("Dump of '%s' complete (%d bytes)", database, size)
        return DumpResult(
            path=str(output_path),
            size=size,
            database=raw_name,
            connection_name=connection_name,
        )
