"""Target-database lifecycle: terminate sessions, drop, create.

Each step is its own ``psql --command`` call against the administrative
``postgres`` database (a database cannot be dropped from a session
connected to it).  Steps run strictly one after another; there is no
transaction around them, so ``drop_and_recreate()`` reports a failure after
the drop as "dropped but not recreated".

Usage:
    from dbmux.backup.lifecycle import DatabaseLifecycle

    lifecycle = DatabaseLifecycle(profile)
    await lifecycle.drop_and_recreate("sales")
"""

import logging
from collections.abc import Awaitable, Callable, Mapping

from dbmux.backup.models import ToolResult
from dbmux.backup.runner import run_tool
from dbmux.config.models import PostgresProfile
from dbmux.errors import ProcessExecutionFailed
from dbmux.identifiers import (
    to_escaped_literal,
    to_quoted_identifier,
    validate_database_name,
)

logger = logging.getLogger(__name__)

PG_DUMP = "pg_dump"
PG_RESTORE = "pg_restore"
PSQL = "psql"

ADMIN_DATABASE = "postgres"

ToolRunner = Callable[..., Awaitable[ToolResult]]


def connection_args(profile: PostgresProfile) -> list[str]:
    """Host/port/user flags shared by pg_dump, pg_restore and psql."""
    return [
        "--host",
        profile.host or "localhost",
        "--port",
        str(profile.port or 5432),
        "--username",
        profile.user or "postgres",
    ]


def tool_env(profile: PostgresProfile) -> Mapping[str, str]:
    """Environment overrides carrying credentials; never put on argv."""
    env: dict[str, str] = {}
    if profile.password:
        env["PGPASSWORD"] = profile.password
    if profile.ssl:
        env["PGSSLMODE"] = "require"
    return env


class DatabaseLifecycle:
    """Administrative statements for one server profile."""

    def __init__(self, profile: PostgresProfile, runner: ToolRunner = run_tool):
        self._profile = profile
        self._run = runner

    async def _admin_command(self, sql: str) -> ToolResult:
        args = connection_args(self._profile) + [
            "--dbname",
            ADMIN_DATABASE,
            "--command",
            sql,
        ]
        return await self._run(PSQL, args, tool_env(self._profile))

    async def terminate_connections(self, database: str) -> None:
        """Terminate every other backend connected to ``database``."""
        validate_database_name(database)
        logger.info("Terminating active connections to '%s'...", database)
        result = await self._admin_command(
            "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
            f"WHERE datname = '{to_escaped_literal(database)}' "
            "AND pid <> pg_backend_pid();"
        )
        if not result.exit_succeeded:
            raise ProcessExecutionFailed(
                f"Failed to terminate connections to '{database}': {result.stderr}",
                result.stderr,
            )

    async def drop_database(self, database: str) -> None:
        validate_database_name(database)
        logger.info("Dropping database '%s'...", database)
        result = await self._admin_command(
            f"DROP DATABASE IF EXISTS {to_quoted_identifier(database)};"
        )
        if not result.exit_succeeded:
            raise ProcessExecutionFailed(
                f"Failed to drop database '{database}': {result.stderr}",
                result.stderr,
            )

    async def create_database(self, database: str) -> None:
        validate_database_name(database)
        logger.info("Creating database '%s'...", database)
        result = await self._admin_command(
            f"CREATE DATABASE {to_quoted_identifier(database)};"
        )
        if not result.exit_succeeded:
            raise ProcessExecutionFailed(
                f"Failed to create database '{database}': {result.stderr}",
                result.stderr,
            )
        logger.info("Database '%s' created", database)

    async def drop_and_recreate(self, database: str) -> None:
        """Terminate, drop, then create ``database``.

        Raises:
            ProcessExecutionFailed: If any step fails.  A create failure
                after a successful drop says the database is now absent.
        """
        validate_database_name(database)
        await self.terminate_connections(database)
        await self.drop_database(database)
        try:
            await self.create_database(database)
        except ProcessExecutionFailed as e:
            raise ProcessExecutionFailed(
                f"Database '{database}' was dropped but not recreated: {e}",
                e.stderr,
            ) from e

    async def delete_database(self, database: str) -> None:
        """Terminate sessions and drop ``database`` (no recreate)."""
        validate_database_name(database)
        await self.terminate_connections(database)
        await self.drop_database(database)
