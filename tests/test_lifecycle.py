"""Tests for terminate/drop/create against the admin database."""

from unittest.mock import AsyncMock

import pytest

from dbmux.backup.lifecycle import (
    PSQL,
    DatabaseLifecycle,
    connection_args,
    tool_env,
)
from dbmux.backup.models import ToolResult
from dbmux.config.models import PostgresProfile
from dbmux.errors import InvalidIdentifier, ProcessExecutionFailed

PROFILE = PostgresProfile(host="db", port=5433, user="admin", password="pw", database="app")


def _ok() -> ToolResult:
    return ToolResult(exit_succeeded=True, returncode=0)


def _fail(stderr: str) -> ToolResult:
    return ToolResult(exit_succeeded=False, returncode=1, stderr=stderr)


def _sql(call) -> str:
    args = call.args[1]
    return args[args.index("--command") + 1]


class TestHelpers:
    def test_connection_args(self):
        assert connection_args(PROFILE) == [
            "--host", "db", "--port", "5433", "--username", "admin",
        ]

    def test_password_only_in_env(self):
        """Credentials travel in PGPASSWORD, never on argv."""
        assert tool_env(PROFILE) == {"PGPASSWORD": "pw"}
        assert "pw" not in connection_args(PROFILE)

    def test_ssl_sets_sslmode(self):
        env = tool_env(PostgresProfile(user="u", ssl=True))
        assert env == {"PGSSLMODE": "require"}


class TestStatements:
    """Each step is one psql call against the postgres database."""

    async def test_terminate_uses_escaped_literal(self):
        runner = AsyncMock(return_value=_ok())
        await DatabaseLifecycle(PROFILE, runner).terminate_connections('"o\'brien"')

        call = runner.call_args_list[0]
        assert call.args[0] == PSQL
        assert call.args[1][call.args[1].index("--dbname") + 1] == "postgres"
        assert "datname = 'o''brien'" in _sql(call)
        assert "pid <> pg_backend_pid()" in _sql(call)
        assert call.args[2] == {"PGPASSWORD": "pw"}

    async def test_drop_uses_quoted_identifier(self):
        runner = AsyncMock(return_value=_ok())
        await DatabaseLifecycle(PROFILE, runner).drop_database("sales")
        assert _sql(runner.call_args_list[0]) == 'DROP DATABASE IF EXISTS "sales";'

    async def test_create(self):
        runner = AsyncMock(return_value=_ok())
        await DatabaseLifecycle(PROFILE, runner).create_database('"Weird Name"')
        assert _sql(runner.call_args_list[0]) == 'CREATE DATABASE "Weird Name";'

    async def test_invalid_name_never_reaches_subprocess(self):
        runner = AsyncMock(return_value=_ok())
        lifecycle = DatabaseLifecycle(PROFILE, runner)
        with pytest.raises(InvalidIdentifier):
            await lifecycle.drop_and_recreate("x; DROP DATABASE prod")
        runner.assert_not_called()

    async def test_failure_carries_stderr(self):
        runner = AsyncMock(return_value=_fail("permission denied"))
        with pytest.raises(ProcessExecutionFailed) as exc_info:
            await DatabaseLifecycle(PROFILE, runner).create_database("sales")
        assert exc_info.value.stderr == "permission denied"


class TestDropAndRecreate:
    """Sequential terminate -> drop -> create."""

    async def test_order(self):
        runner = AsyncMock(return_value=_ok())
        await DatabaseLifecycle(PROFILE, runner).drop_and_recreate("sales")

        statements = [_sql(c) for c in runner.call_args_list]
        assert len(statements) == 3
        assert statements[0].startswith("SELECT pg_terminate_backend")
        assert statements[1].startswith("DROP DATABASE")
        assert statements[2].startswith("CREATE DATABASE")

    async def test_create_failure_after_drop_is_reported(self):
        runner = AsyncMock(side_effect=[_ok(), _ok(), _fail("disk full")])
        with pytest.raises(ProcessExecutionFailed) as exc_info:
            await DatabaseLifecycle(PROFILE, runner).drop_and_recreate("sales")

        assert "dropped but not recreated" in str(exc_info.value)
        assert exc_info.value.stderr == "disk full"

    async def test_terminate_failure_aborts(self):
        runner = AsyncMock(side_effect=[_fail("no permission")])
        with pytest.raises(ProcessExecutionFailed, match="terminate"):
            await DatabaseLifecycle(PROFILE, runner).drop_and_recreate("sales")
        assert runner.call_count == 1

    async def test_delete_database_does_not_create(self):
        runner = AsyncMock(return_value=_ok())
        await DatabaseLifecycle(PROFILE, runner).delete_database("sales")
        statements = [_sql(c) for c in runner.call_args_list]
        assert len(statements) == 2
        assert not any(s.startswith("CREATE") for s in statements)
