"""Dump, restore and database-deletion commands.

Usage:
    dbmux dump --database sales
    dbmux dump -d sales --format plain --output nightly --yes
    dbmux restore --file sales_backup_2025-01-01_00-00-00.dump --database sales --drop
    dbmux restore --from-history
    dbmux dump-delete sales_backup_2025-01-01_00-00-00.dump --force
    dbmux db delete --database scratch
"""

import argparse
from pathlib import Path

from dbmux.backup.dump import DumpOrchestrator
from dbmux.backup.files import (
    delete_dump_file,
    format_file_size,
    list_dump_files,
    resolve_dump_path,
)
from dbmux.backup.lifecycle import ADMIN_DATABASE, PSQL, DatabaseLifecycle
from dbmux.backup.models import DumpFormat, RestoreStrategy
from dbmux.backup.restore import RestoreOrchestrator
from dbmux.backup.runner import ensure_commands_exist
from dbmux.cli import common
from dbmux.cli.common import console, fail, run_async, success
from dbmux.errors import DbmuxError, InvalidIdentifier, NotFound
from dbmux.factory import CommandContext, require_postgres
from dbmux.identifiers import from_server_name, unquote, validate_database_name

SYSTEM_DATABASES = frozenset({"postgres", "template0", "template1"})


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command.

    Returns:
        0 on success or when declined, 1 on failure.
    """
    registry = common.get_registry()
    name, profile = registry.resolve(args.connection)
    require_postgres(profile)
    settings = registry.load().settings
    prompter = common.get_prompter()

    async with CommandContext(query_timeout_ms=settings.query_timeout) as ctx:
        client = await ctx.connect(profile)

        database = args.database
        if not database:
            databases = await client.list_databases()
            if not databases:
                raise NotFound("No databases found on the server")
            database = prompter.select(
                "Select database to dump:",
                [(f"{db.name} ({db.size or 'N/A'})", from_server_name(db.name))
                 for db in databases],
            )

        if not args.yes and not prompter.confirm(
            f"Create {args.format} dump of '{database}' using '{name}'?",
            default=True,
        ):
            console.print("Dump cancelled.", style="dim")
            return 0

        console.print(f"Dumping [bold cyan]{database}[/bold cyan]...", style="dim")
        result = await DumpOrchestrator(ledger=common.get_ledger()).run(
            profile,
            name,
            database,
            client=client,
            output=args.output,
            fmt=DumpFormat(args.format),
            verbose=args.verbose,
            compress=args.compress,
        )

    success(f"Dump created: [bold]{result.path}[/bold]")
    console.print(f"  Size: {format_file_size(result.size)}")
    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Returns:
        0 on success or when cancelled, 1 on failure.
    """
    registry = common.get_registry()
    name, profile = registry.resolve(args.connection)
    require_postgres(profile)
    settings = registry.load().settings

    strategy = None
    if args.create:
        strategy = RestoreStrategy.CREATE_NEW
    elif args.drop:
        strategy = RestoreStrategy.DROP_RECREATE
    elif args.existing:
        strategy = RestoreStrategy.RESTORE_INTO_EXISTING

    async with CommandContext(query_timeout_ms=settings.query_timeout) as ctx:
        client = await ctx.connect(profile, ADMIN_DATABASE)
        console.print("Testing database connection...", style="dim")
        await client.test_connection()

        orchestrator = RestoreOrchestrator(
            common.get_prompter(), ledger=common.get_ledger()
        )
        result = await orchestrator.run(
            profile,
            name,
            client,
            file=args.file,
            database=args.database,
            strategy=strategy,
            from_history=args.from_history,
            assume_yes=args.yes,
        )

    if result.cancelled:
        console.print("Restore cancelled.", style="dim")
        return 0

    success(
        f"Database [bold cyan]{result.database}[/bold cyan] restored from "
        f"[bold]{Path(result.source).name}[/bold] ({result.strategy.label})"
    )
    return 0


async def _async_db_delete(args: argparse.Namespace) -> int:
    """Async implementation for ``db delete``.

    Returns:
        0 on success or when declined, 1 on failure.
    """
    registry = common.get_registry()
    name, profile = registry.resolve(args.connection)
    pg = require_postgres(profile)
    ensure_commands_exist([PSQL])
    prompter = common.get_prompter()

    if args.database:
        validate_database_name(args.database)
        if unquote(args.database) in SYSTEM_DATABASES:
            raise InvalidIdentifier(
                f"Refusing to delete system database '{args.database}'"
            )

    async with CommandContext() as ctx:
        client = await ctx.connect(pg, ADMIN_DATABASE)
        databases = [
            db for db in await client.list_databases()
            if db.name not in SYSTEM_DATABASES
        ]

    names = [db.name for db in databases]
    database = args.database
    if database:
        if unquote(database) not in names:
            raise NotFound(f"Database '{database}' not found on '{name}'")
    else:
        if not databases:
            raise NotFound("No user databases found on the server")
        database = prompter.select(
            "Select database to delete:",
            [
                (f"{db.name} ({db.size or 'N/A'}, {db.tables} tables)", from_server_name(db.name))
                for db in databases
            ],
        )

    if not args.force:
        if not prompter.confirm(
            f"Delete database '{database}' on '{name}'? This cannot be undone.",
            default=False,
        ):
            console.print("Deletion cancelled.", style="dim")
            return 0
        typed = prompter.text(f"Type the database name ({unquote(database)}) to confirm:")
        if typed not in (database, unquote(database)):
            console.print("Name did not match. Deletion cancelled.", style="dim")
            return 0

    await DatabaseLifecycle(pg).delete_database(database)
    success(f"Database [bold cyan]{database}[/bold cyan] deleted")
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_dump(args: argparse.Namespace) -> int:
    """Create a dump of one database via pg_dump."""
    return run_async(_async_dump(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a dump file into a database."""
    return run_async(_async_restore(args))


def cmd_db_delete(args: argparse.Namespace) -> int:
    """Drop a database after terminating its sessions."""
    return run_async(_async_db_delete(args))


def cmd_dump_delete(args: argparse.Namespace) -> int:
    """Delete a dump file and mark its history entry deleted.

    Returns:
        0 on success or when declined, 1 on failure.
    """
    try:
        if args.file:
            path = resolve_dump_path(args.file)
        else:
            files = list_dump_files()
            if not files:
                return fail("No dump files found in the dumps directory")
            path = Path(
                common.get_prompter().select(
                    "Select dump file to delete:",
                    [(f"{f.name} ({format_file_size(f.size)})", f.path) for f in files],
                )
            )

        if not args.force and not common.get_prompter().confirm(
            f"Delete {path}?", default=False
        ):
            console.print("Deletion cancelled.", style="dim")
            return 0

        marked = delete_dump_file(path, common.get_ledger())
    except DbmuxError as e:
        return fail(str(e))

    success(f"Deleted {path.name}")
    if marked:
        console.print("  History entry marked as deleted", style="dim")
    return 0


# ============================================================================
# Parser registration
# ============================================================================


def register(subparsers: argparse._SubParsersAction) -> None:
    """Add dump/restore/dump-delete/db subcommands to the main parser."""
    p_dump = subparsers.add_parser("dump", help="Create a database dump with pg_dump")
    p_dump.add_argument("--database", "-d", help="Database to dump (prompted if omitted)")
    p_dump.add_argument("--connection", "-n", help="Saved connection to use")
    p_dump.add_argument(
        "--output", "-o", help="Base filename (a timestamp is always appended)"
    )
    p_dump.add_argument(
        "--format",
        "-f",
        choices=[f.value for f in DumpFormat],
        default=DumpFormat.CUSTOM.value,
        help="pg_dump output format (default: custom)",
    )
    p_dump.add_argument("--verbose", "-v", action="store_true", help="Stream pg_dump output")
    p_dump.add_argument(
        "--compress", action="store_true", help="Compress plain-format output"
    )
    p_dump.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_dump.set_defaults(func=cmd_dump)

    p_restore = subparsers.add_parser("restore", help="Restore a database from a dump file")
    source = p_restore.add_mutually_exclusive_group()
    source.add_argument("--file", "-f", help="Dump file (dumps directory, then cwd)")
    source.add_argument(
        "--from-history", action="store_true", help="Pick from successful dumps in history"
    )
    p_restore.add_argument("--database", "-d", help="Target database")
    p_restore.add_argument("--connection", "-n", help="Saved connection to use")
    strategy = p_restore.add_mutually_exclusive_group()
    strategy.add_argument("--create", "-c", action="store_true", help="Create a new database")
    strategy.add_argument(
        "--drop", action="store_true", help="Drop and recreate the target database"
    )
    strategy.add_argument(
        "--existing", action="store_true", help="Restore into the existing database"
    )
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompts")
    p_restore.set_defaults(func=cmd_restore)

    p_dump_delete = subparsers.add_parser("dump-delete", help="Delete a dump file")
    p_dump_delete.add_argument("file", nargs="?", help="Dump file (prompted if omitted)")
    p_dump_delete.add_argument("--force", action="store_true", help="Skip confirmation")
    p_dump_delete.set_defaults(func=cmd_dump_delete)

    p_db = subparsers.add_parser("db", help="Database management")
    db_sub = p_db.add_subparsers(dest="db_command", required=True)
    p_db_delete = db_sub.add_parser("delete", help="Delete a database")
    p_db_delete.add_argument("--database", "-d", help="Database to delete")
    p_db_delete.add_argument("--connection", "-n", help="Saved connection to use")
    p_db_delete.add_argument(
        "--force", action="store_true", help="Skip both confirmation prompts"
    )
    p_db_delete.set_defaults(func=cmd_db_delete)
