"""Restore orchestration.

A restore moves through fixed stages, each a method on
``RestoreOrchestrator``:

    select_source -> verify_format -> select_target -> confirm
                  -> execute -> record outcome

Declining any confirmation ends the run early with
``RestoreResult(cancelled=True)`` and writes no history.  Once the
destructive part starts, every outcome is written to the history ledger
and failures are re-raised after recording.

Usage:
    from dbmux.backup.restore import RestoreOrchestrator

    orchestrator = RestoreOrchestrator(prompter)
    result = await orchestrator.run(
        profile, "local", client, file="sales_backup.dump", database="sales",
        strategy=RestoreStrategy.DROP_RECREATE,
    )
"""

import logging
from pathlib import Path

from dbmux.adapters.base import DatabaseClient
from dbmux.backup.files import format_file_size, list_dump_files, resolve_dump_path
from dbmux.backup.lifecycle import (
    PG_RESTORE,
    PSQL,
    DatabaseLifecycle,
    ToolRunner,
    connection_args,
    tool_env,
)
from dbmux.backup.models import RestoreResult, RestoreStrategy
from dbmux.backup.runner import ensure_commands_exist, run_tool
from dbmux.config.models import ConnectionProfile, PostgresProfile
from dbmux.errors import NotFound, ProcessExecutionFailed, VerificationFailed
from dbmux.factory import require_postgres
from dbmux.history import HistoryLedger
from dbmux.identifiers import (
    from_server_name,
    is_valid_name,
    to_conninfo_dbname,
    unquote,
    validate_database_name,
)
from dbmux.prompts import Prompter

logger = logging.getLogger(__name__)

HISTORY_CHOICES = 20


def build_pg_restore_args(profile: PostgresProfile, database: str, source: Path) -> list[str]:
    return connection_args(profile) + [
        "--dbname",
        to_conninfo_dbname(database),
        "--no-privileges",
        "--no-owner",
        "--verbose",
        str(source),
    ]


def build_psql_restore_args(profile: PostgresProfile, database: str, source: Path) -> list[str]:
    return connection_args(profile) + [
        "--dbname",
        to_conninfo_dbname(database),
        "--file",
        str(source),
    ]


class RestoreOrchestrator:
    """Drives one restore from source selection to the history entry.

    Args:
        prompter: Source of interactive choices and confirmations.
        ledger: History ledger (default: the per-user registry).
        runner: Tool runner coroutine, replaceable in tests.
    """

    def __init__(
        self,
        prompter: Prompter,
        ledger: HistoryLedger | None = None,
        runner: ToolRunner = run_tool,
    ):
        self._prompter = prompter
        self._ledger = ledger or HistoryLedger()
        self._run = runner

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def select_source(self, file: str | None = None, from_history: bool = False) -> Path:
        """Resolve the dump artifact to restore.

        Raises:
            NotFound: If the file cannot be located, or a history entry
                points at a file that no longer exists.
        """
        if file:
            return resolve_dump_path(file)

        if from_history:
            entries = self._ledger.successful_dumps(limit=HISTORY_CHOICES)
            if not entries:
                raise NotFound("No successful dumps recorded in history")
            entry = self._prompter.select(
                "Select a dump from history:",
                [
                    (
                        f"{Path(e.file_path).name} ({e.database} @ "
                        f"{e.connection_name}, {format_file_size(e.file_size)}) - "
                        f"{e.timestamp:%Y-%m-%d %H:%M}",
                        e,
                    )
                    for e in entries
                ],
            )
            path = Path(entry.file_path)
            if not path.is_file():
                raise NotFound(f"Dump file from history no longer exists: {path}")
            return path

        files = list_dump_files()
        if not files:
            raise NotFound(
                "No dump files found in the dumps directory "
                "(expected .dump, .dmp, .sql, .gz or .tar)"
            )
        chosen = self._prompter.select(
            "Select dump file to restore:",
            [
                (
                    f"{f.name} ({format_file_size(f.size)}) - {f.modified:%Y-%m-%d}",
                    f.path,
                )
                for f in files
            ],
        )
        return Path(chosen)

    async def verify_format(self, profile: PostgresProfile, source: Path) -> bool:
        """Return True for a pg_restore archive, False for plain SQL.

        ``.sql`` files are accepted by extension alone.  Anything else must
        be listable by ``pg_restore --list``.

        Raises:
            VerificationFailed: If pg_restore cannot read the archive.
        """
        if source.suffix.lower() == ".sql":
            logger.info("Plain SQL file detected: %s", source.name)
            return False

        result = await self._run(PG_RESTORE, ["--list", str(source)], tool_env(profile))
        if not result.exit_succeeded:
            raise VerificationFailed(
                f"{source.name} is not a readable pg_dump archive: {result.stderr.strip()}"
            )
        logger.info("Custom-format archive verified: %s", source.name)
        return True

    async def select_target(
        self,
        client: DatabaseClient,
        database: str | None,
        strategy: RestoreStrategy | None,
    ) -> tuple[str, RestoreStrategy]:
        """Pick the target database and how it is prepared.

        With a name and no strategy, the operator chooses between
        drop-and-recreate and restoring into the existing database.  With
        no name, the operator either picks a live database (which is then
        dropped and recreated) or names a new one.
        """
        if database:
            if strategy is None:
                strategy = self._prompter.select(
                    f"Database '{database}' - what should we do?",
                    [
                        (
                            "Drop and recreate (WARNING: all data will be lost)",
                            RestoreStrategy.DROP_RECREATE,
                        ),
                        (
                            "Restore to existing database",
                            RestoreStrategy.RESTORE_INTO_EXISTING,
                        ),
                    ],
                )
            return validate_database_name(database), strategy

        if strategy is None:
            strategy = self._prompter.select(
                "How do you want to restore?",
                [
                    (
                        "Restore over an existing database (drop and recreate)",
                        RestoreStrategy.DROP_RECREATE,
                    ),
                    ("Create new database", RestoreStrategy.CREATE_NEW),
                ],
            )

        if strategy is RestoreStrategy.CREATE_NEW:
            name = self._prompter.text(
                "Enter name for new database:",
                validate=is_valid_name,
                error_message="Must start with a letter or underscore and contain "
                "only letters, digits, _ or $ (max 63 characters)",
            )
            return validate_database_name(name.strip()), strategy

        databases = await client.list_databases()
        if not databases:
            raise NotFound("No databases found on the server")
        name = self._prompter.select(
            "Select database to restore to:",
            [
                (f"{db.name} ({db.size or 'N/A'}, {db.tables} tables)", db.name)
                for db in databases
            ],
        )
        return validate_database_name(from_server_name(name)), strategy

    def confirm(
        self,
        source: Path,
        database: str,
        strategy: RestoreStrategy,
        assume_yes: bool = False,
    ) -> bool:
        """Destructive confirmation (drop only), then the final one."""
        if assume_yes:
            return True
        if strategy is RestoreStrategy.DROP_RECREATE and not self._prompter.confirm(
            f"DANGER: this will DELETE all data in '{database}' and replace it. Continue?",
            default=False,
        ):
            return False
        return self._prompter.confirm(
            f"Restore '{source.name}' to database '{database}' ({strategy.label})?",
            default=True,
        )

    async def execute(
        self,
        profile: PostgresProfile,
        source: Path,
        database: str,
        strategy: RestoreStrategy,
        custom_format: bool,
    ) -> None:
        """Prepare the target and run the restore tool with streamed output.

        Raises:
            ProcessExecutionFailed: If any lifecycle step or the restore
                tool fails.  No restore runs after a lifecycle failure.
        """
        lifecycle = DatabaseLifecycle(profile, self._run)
        if strategy is RestoreStrategy.DROP_RECREATE:
            await lifecycle.drop_and_recreate(database)
        elif strategy is RestoreStrategy.CREATE_NEW:
            await lifecycle.create_database(database)

        if custom_format:
            tool, args = PG_RESTORE, build_pg_restore_args(profile, database, source)
        else:
            tool, args = PSQL, build_psql_restore_args(profile, database, source)

        logger.info("Restoring %s into '%s' with %s", source.name, database, tool)
        result = await self._run(tool, args, tool_env(profile), stream_output=True)
        if not result.exit_succeeded:
            raise ProcessExecutionFailed(
                f"{tool} exited with code {result.returncode}: {result.stderr.strip()}",
                result.stderr,
            )

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(
        self,
        profile: ConnectionProfile,
        connection_name: str,
        client: DatabaseClient,
        file: str | None = None,
        database: str | None = None,
        strategy: RestoreStrategy | None = None,
        from_history: bool = False,
        assume_yes: bool = False,
    ) -> RestoreResult:
        """Run every stage and record the outcome.

        Returns:
            RestoreResult; ``cancelled`` is True if a confirmation was
            declined.

        Raises:
            UnsupportedEngine, ToolUnavailable, NotFound, InvalidIdentifier:
                Before anything is changed or recorded.
            VerificationFailed, ProcessExecutionFailed: After the failure
                has been recorded in history.
            PersistenceFailed: If the history entry cannot be written.
        """
        pg = require_postgres(profile)
        if database:
            validate_database_name(database)
        ensure_commands_exist([PG_RESTORE, PSQL])

        source = self.select_source(file, from_history)

        try:
            custom_format = await self.verify_format(pg, source)
        except VerificationFailed as e:
            self._ledger.record_failure(
                e, "restore", unquote(database) if database else "unknown",
                connection_name, str(source),
            )
            raise

        target, strategy = await self.select_target(client, database, strategy)

        if not self.confirm(source, target, strategy, assume_yes):
            logger.info("Restore cancelled")
            return RestoreResult(cancelled=True)

        try:
            await self.execute(pg, source, target, strategy, custom_format)
        except ProcessExecutionFailed as e:
            self._ledger.record_failure(
                e, "restore", unquote(target), connection_name, str(source)
            )
            raise

        self._ledger.append(
            operation_type="restore",
            database=unquote(target),
            connection_name=connection_name,
            file_path=str(source),
            file_size=source.stat().st_size,
            status="success",
        )
        return RestoreResult(
            source=str(source),
            database=unquote(target),
            strategy=strategy,
            custom_format=custom_format,
        )
