"""CLI for managing saved connections and running dumps and restores.

Usage:
    dbmux connect local --host localhost --user postgres --database app
    dbmux connect --url postgresql://app:secret@db:5432/sales --as sales
    dbmux connect staging
    dbmux status
    dbmux list --databases
    dbmux dump --database sales
    dbmux restore --file sales_backup_2025-01-01_00-00-00.dump
    dbmux history list --limit 10 --type dump
    dbmux config rename local dev
    dbmux config settings --query-timeout 10000

Commands:
    connect      - Test a connection, save it, and make it active
    disconnect   - Clear the active session connection
    status       - Show the active and default connections
    list         - List saved connections or databases on the server
    dump         - Create a dump with pg_dump
    restore      - Restore a dump with pg_restore or psql
    dump-delete  - Delete a dump file
    db delete    - Drop a database
    history      - Show or clear the operation history
    config       - Manage saved connections and settings
"""

import argparse
import json
import sys
from pathlib import Path

from rich.table import Table

from dbmux.backup.files import format_file_size
from dbmux.cli import backup as backup_commands
from dbmux.cli import common
from dbmux.cli.common import configure_logging, console, fail, run_async, success
from dbmux.config.models import ConnectionProfile, PostgresProfile, SqliteProfile
from dbmux.config.registry import default_connection_name, profile_from_url
from dbmux.errors import DbmuxError, NotFound
from dbmux.factory import CommandContext

_NEVER_USED = "never"


# ============================================================================
# Profile helpers (CLI-internal)
# ============================================================================


def _has_profile_flags(args: argparse.Namespace) -> bool:
    return any(
        getattr(args, key, None)
        for key in ("url", "type", "host", "port", "user", "password", "database", "file")
    )


def _profile_from_args(args: argparse.Namespace) -> ConnectionProfile:
    """Build a profile from ``--url`` or the individual connection flags.

    Raises:
        ValueError: If required flags are missing or the URL is invalid.
    """
    if args.url:
        return profile_from_url(args.url)

    if (args.type or "postgresql") == "sqlite":
        if not args.file:
            raise ValueError("File path is required for SQLite connections (--file)")
        return SqliteProfile(file_path=str(Path(args.file).expanduser()))

    if not args.user or not args.database:
        raise ValueError("User and database are required (--user, --database)")

    fields = {"user": args.user, "database": args.database, "ssl": bool(args.ssl)}
    if args.host:
        fields["host"] = args.host
    if args.port:
        fields["port"] = args.port
    if args.password:
        fields["password"] = args.password
    return PostgresProfile(**fields)


async def _test_profile(profile: ConnectionProfile) -> None:
    """Round-trip to the server (or check the SQLite file exists)."""
    if isinstance(profile, SqliteProfile):
        if not Path(profile.file_path).is_file():
            raise NotFound(f"SQLite file not found: {profile.file_path}")
        return
    async with CommandContext() as ctx:
        client = await ctx.connect(profile)
        await client.test_connection()


def _format_last_used(profile: ConnectionProfile) -> str:
    if profile.last_connected_at is None:
        return _NEVER_USED
    return profile.last_connected_at.strftime("%Y-%m-%d %H:%M")


def _print_connections_table() -> None:
    registry = common.get_registry()
    connections = registry.list_sorted_by_recency()
    if not connections:
        console.print("[yellow]No saved connections.[/yellow]")
        console.print("[dim]Run[/dim] [cyan]dbmux connect --url ...[/cyan] [dim]to add one.[/dim]")
        return

    default = registry.default_name()
    active = registry.session.get_active()

    table = Table(title="Saved Connections", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Location")
    table.add_column("Last used")

    for name, profile in connections:
        marker = "[bold green]*[/bold green]" if name == active else " "
        label = f"{name} [dim](default)[/dim]" if name == default else name
        table.add_row(
            marker, label, profile.type, profile.describe(), _format_last_used(profile)
        )

    console.print(table)
    if active:
        console.print("\n[bold green]*[/bold green] = active session connection")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Returns:
        0 on success, 1 on failure.
    """
    registry = common.get_registry()

    if _has_profile_flags(args):
        try:
            profile = _profile_from_args(args)
        except ValueError as e:
            return fail(str(e))
        name = args.name or args.save_as or default_connection_name(profile)
        saved = False
    else:
        if args.name:
            name = args.name
        else:
            connections = registry.list_sorted_by_recency()
            if not connections:
                return fail(
                    "No saved connections. Pass --url or --host/--user/--database."
                )
            name = common.get_prompter().select(
                "Select a connection:",
                [(f"{n} ({p.describe()})", n) for n, p in connections],
            )
        profile = registry.get(name)
        saved = True

    console.print(f"Testing connection to {profile.describe()}...", style="dim")
    try:
        await _test_profile(profile)
    except Exception as e:
        return fail(f"Connection failed: {e}")
    success("Connection test successful")

    if args.test:
        console.print("Test mode: connection not saved or activated.", style="dim")
        return 0

    if not saved:
        if args.no_save:
            console.print("Connection not saved (--no-save).", style="dim")
            return 0
        registry.add(name, profile, overwrite=True)
        success(f"Connection saved as [bold cyan]{name}[/bold cyan]")

    previous = registry.session.get_active()
    registry.session.set_active(name)
    registry.touch_last_used(name)
    success(f"Active connection: [bold cyan]{name}[/bold cyan]")
    if previous and previous != name:
        console.print(
            f"[dim]Switched from[/dim] [bold]{previous}[/bold] "
            f"[dim]to[/dim] [bold cyan]{name}[/bold cyan]"
        )
    return 0


async def _async_list_databases(args: argparse.Namespace) -> int:
    registry = common.get_registry()
    name, profile = registry.resolve(args.connection)
    settings = registry.load().settings

    async with CommandContext(query_timeout_ms=settings.query_timeout) as ctx:
        client = await ctx.connect(profile)
        databases = await client.list_databases()

    table = Table(title=f"Databases on {name}", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("Encoding")
    table.add_column("Size", justify="right")
    table.add_column("Tables", justify="right")
    for db in databases:
        table.add_row(db.name, db.owner, db.encoding, db.size, str(db.tables))
    console.print(table)
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Test a connection, save it, and make it the session connection.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return run_async(_async_connect(args))


def cmd_disconnect(args: argparse.Namespace) -> int:
    """Clear the session pointer; saved profiles are untouched."""
    registry = common.get_registry()
    try:
        active = registry.session.get_active()
        registry.session.clear()
    except DbmuxError as e:
        return fail(str(e))

    if active:
        success(f"Disconnected from [bold]{active}[/bold]")
    else:
        console.print("[yellow]No active session connection.[/yellow]")
    default = registry.default_name()
    if default:
        console.print(f"[dim]Commands now use the default connection[/dim] {default}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Show which connection commands will use.

    Reads only local files; no database calls.

    Returns:
        0 always (informational command).
    """
    registry = common.get_registry()
    active = registry.session.get_active()
    default = registry.default_name()

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Session connection", active or "[dim]none[/dim]")
    table.add_row("Default connection", default or "[dim]none[/dim]")

    try:
        name, profile = registry.resolve()
    except NotFound as e:
        table.add_row("Resolved", f"[yellow]{e}[/yellow]")
    else:
        table.add_row("Resolved", f"[bold cyan]{name}[/bold cyan]")
        table.add_row("Type", profile.type)
        table.add_row("Location", profile.describe())
        table.add_row("Last used", _format_last_used(profile))

    table.add_row("Config file", str(registry.config_path))
    console.print(table)
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List saved connections (``--connections``) or server databases."""
    if args.connections:
        _print_connections_table()
        return 0
    return run_async(_async_list_databases(args))


def cmd_history_list(args: argparse.Namespace) -> int:
    """Show dump/restore history, newest first."""
    entries = common.get_ledger().query(operation_type=args.type, limit=args.limit)

    if args.format == "json":
        console.print_json(
            json.dumps([e.model_dump(mode="json", by_alias=True) for e in entries])
        )
        return 0

    if not entries:
        console.print("[yellow]No history entries.[/yellow]")
        return 0

    table = Table(title="Operation History", show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Type")
    table.add_column("Database")
    table.add_column("Connection")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("Status")
    table.add_column("Timestamp")

    for e in entries:
        if e.deleted:
            status = "[dim]DELETED[/dim]"
        elif e.status == "success":
            status = "[green]OK[/green]"
        else:
            status = "[red]FAILED[/red]"
        table.add_row(
            e.id[:8],
            e.operation_type,
            e.database,
            e.connection_name,
            Path(e.file_path).name,
            format_file_size(e.file_size),
            status,
            e.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)
    return 0


def cmd_history_clear(args: argparse.Namespace) -> int:
    """Remove history entries (all, or one operation type)."""
    what = f"{args.type} history" if args.type else "all history"
    if not args.yes and not common.get_prompter().confirm(f"Clear {what}?", default=False):
        console.print("Cancelled.", style="dim")
        return 0
    try:
        removed = common.get_ledger().clear(args.type)
    except DbmuxError as e:
        return fail(str(e))
    success(f"Removed {removed} history entr{'y' if removed == 1 else 'ies'}")
    return 0


def cmd_config_add(args: argparse.Namespace) -> int:
    """Save a connection without testing or activating it."""
    try:
        profile = _profile_from_args(args)
    except ValueError as e:
        return fail(str(e))
    name = args.name or default_connection_name(profile)
    try:
        common.get_registry().add(name, profile)
    except DbmuxError as e:
        return fail(str(e))
    success(f"Connection saved as [bold cyan]{name}[/bold cyan]")
    return 0


def cmd_config_remove(args: argparse.Namespace) -> int:
    registry = common.get_registry()
    try:
        removed = registry.remove(args.name)
    except DbmuxError as e:
        return fail(str(e))
    if not removed:
        return fail(f"Connection '{args.name}' not found")
    if registry.session.get_active() == args.name:
        registry.session.clear()
    success(f"Removed connection [bold]{args.name}[/bold]")
    default = registry.default_name()
    if default:
        console.print(f"[dim]Default connection:[/dim] {default}")
    return 0


def cmd_config_rename(args: argparse.Namespace) -> int:
    registry = common.get_registry()
    try:
        registry.rename(args.old, args.new)
        if registry.session.get_active() == args.old:
            registry.session.set_active(args.new)
    except DbmuxError as e:
        return fail(str(e))
    success(f"Renamed [bold]{args.old}[/bold] to [bold cyan]{args.new}[/bold cyan]")
    return 0


def cmd_config_default(args: argparse.Namespace) -> int:
    try:
        common.get_registry().set_default(args.name)
    except DbmuxError as e:
        return fail(str(e))
    success(f"Default connection set to [bold cyan]{args.name}[/bold cyan]")
    return 0


def cmd_config_path(args: argparse.Namespace) -> int:
    console.print(str(common.get_registry().config_path))
    return 0


def cmd_config_show(args: argparse.Namespace) -> int:
    """Print the registry document with passwords masked."""
    registry = common.get_registry()
    document = registry.load().model_dump(mode="json", by_alias=True, exclude_none=True)
    for profile in document["connections"].values():
        if profile.get("password"):
            profile["password"] = "********"
    console.print(f"[dim]{registry.config_path}[/dim]")
    console.print_json(json.dumps(document))
    return 0


def cmd_config_settings(args: argparse.Namespace) -> int:
    """Show settings, or update the ones given on the command line."""
    registry = common.get_registry()
    changes = {
        key: value
        for key, value in (
            ("log_level", args.set_log_level),
            ("query_timeout", args.query_timeout),
            ("auto_connect", args.auto_connect),
        )
        if value is not None
    }
    if changes:
        try:
            registry.update_settings(**changes)
        except DbmuxError as e:
            return fail(str(e))
        success("Settings updated")

    settings = registry.load().settings
    table = Table(title="Settings", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("logLevel", settings.log_level)
    table.add_row("queryTimeout", f"{settings.query_timeout} ms")
    table.add_row("autoConnect", str(settings.auto_connect).lower())
    console.print(table)
    return 0


def cmd_config_list(args: argparse.Namespace) -> int:
    _print_connections_table()
    return 0


# ============================================================================
# Main entry point
# ============================================================================


def _add_profile_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--url", help="Connection URL (postgresql://... or sqlite:///...)")
    parser.add_argument("--type", choices=["postgresql", "sqlite"], help="Engine type")
    parser.add_argument("--host", "-H", help="Server host (default: localhost)")
    parser.add_argument("--port", "-p", type=int, help="Server port (default: 5432)")
    parser.add_argument("--user", "-u", help="User name")
    parser.add_argument("--password", "-w", help="Password")
    parser.add_argument("--database", "-d", help="Database name")
    parser.add_argument("--file", help="SQLite database file")
    parser.add_argument("--ssl", action="store_true", help="Require SSL")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dbmux",
        description="Named database connections with audited dump and restore",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error"],
        help="Override settings.logLevel for this run",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser(
        "connect", help="Test a connection, save it, and make it active"
    )
    p_connect.add_argument("name", nargs="?", help="Saved connection name")
    _add_profile_flags(p_connect)
    p_connect.add_argument("--as", dest="save_as", help="Name to save the connection under")
    p_connect.add_argument(
        "--test", action="store_true", help="Only test; do not save or activate"
    )
    p_connect.add_argument(
        "--no-save", action="store_true", help="Do not save new connection details"
    )
    p_connect.set_defaults(func=cmd_connect)

    # disconnect / status
    subparsers.add_parser(
        "disconnect", help="Clear the active session connection"
    ).set_defaults(func=cmd_disconnect)
    subparsers.add_parser(
        "status", help="Show the active and default connections"
    ).set_defaults(func=cmd_status)

    # list command
    p_list = subparsers.add_parser("list", help="List saved connections or databases")
    what = p_list.add_mutually_exclusive_group()
    what.add_argument("--connections", "-c", action="store_true", help="Saved connections")
    what.add_argument(
        "--databases", "--db", action="store_true", help="Databases on the server (default)"
    )
    p_list.add_argument("--connection", "-n", help="Saved connection to use")
    p_list.set_defaults(func=cmd_list)

    # dump / restore / dump-delete / db
    backup_commands.register(subparsers)

    # history command
    p_history = subparsers.add_parser("history", help="Operation history")
    history_sub = p_history.add_subparsers(dest="history_command", required=True)
    p_history_list = history_sub.add_parser("list", help="Show history entries")
    p_history_list.add_argument("--limit", "-l", type=int, default=20, help="Max entries")
    p_history_list.add_argument("--type", "-t", choices=["dump", "restore"])
    p_history_list.add_argument("--format", choices=["table", "json"], default="table")
    p_history_list.set_defaults(func=cmd_history_list)
    p_history_clear = history_sub.add_parser("clear", help="Remove history entries")
    p_history_clear.add_argument("--type", "-t", choices=["dump", "restore"])
    p_history_clear.add_argument("--yes", "-y", action="store_true")
    p_history_clear.set_defaults(func=cmd_history_clear)

    # config command
    p_config = subparsers.add_parser("config", help="Manage saved connections")
    config_sub = p_config.add_subparsers(dest="config_command", required=True)
    p_config_add = config_sub.add_parser("add", help="Save a connection")
    p_config_add.add_argument("name", nargs="?", help="Connection name")
    _add_profile_flags(p_config_add)
    p_config_add.set_defaults(func=cmd_config_add)
    p_config_remove = config_sub.add_parser("remove", help="Remove a saved connection")
    p_config_remove.add_argument("name")
    p_config_remove.set_defaults(func=cmd_config_remove)
    p_config_rename = config_sub.add_parser("rename", help="Rename a saved connection")
    p_config_rename.add_argument("old")
    p_config_rename.add_argument("new")
    p_config_rename.set_defaults(func=cmd_config_rename)
    p_config_default = config_sub.add_parser("default", help="Set the default connection")
    p_config_default.add_argument("name")
    p_config_default.set_defaults(func=cmd_config_default)
    config_sub.add_parser("path", help="Print the config file path").set_defaults(
        func=cmd_config_path
    )
    config_sub.add_parser("show", help="Print the config file").set_defaults(
        func=cmd_config_show
    )
    config_sub.add_parser("list", help="List saved connections").set_defaults(
        func=cmd_config_list
    )
    p_config_settings = config_sub.add_parser("settings", help="Show or update settings")
    p_config_settings.add_argument(
        "--log-level", dest="set_log_level", choices=["debug", "info", "warn", "error"]
    )
    p_config_settings.add_argument(
        "--query-timeout", type=int, metavar="MS", help="Per-query timeout in milliseconds"
    )
    p_config_settings.add_argument(
        "--auto-connect", action=argparse.BooleanOptionalAction, default=None
    )
    p_config_settings.set_defaults(func=cmd_config_settings)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
