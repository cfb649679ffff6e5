"""Tests for the restore orchestrator stages and full runs."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from dbmux.adapters.base import DatabaseInfo
from dbmux.backup.lifecycle import PG_RESTORE, PSQL
from dbmux.backup.models import RestoreStrategy, ToolResult
from dbmux.backup.restore import RestoreOrchestrator
from dbmux.config.models import PostgresProfile
from dbmux.errors import (
    InvalidIdentifier,
    NotFound,
    ProcessExecutionFailed,
    VerificationFailed,
)
from dbmux.history import HistoryLedger

PROFILE = PostgresProfile(user="postgres", password="pw", database="app")


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("DBMUX_HOME", str(tmp_path))
    (tmp_path / "dumps").mkdir()
    return tmp_path


@pytest.fixture(autouse=True)
def tools_present():
    with patch("dbmux.backup.restore.ensure_commands_exist") as mock_check:
        yield mock_check


class RecordingLedger(HistoryLedger):
    """Ledger that logs each append into a shared event list."""

    def __init__(self, events: list):
        super().__init__()
        self.events = events

    def append(self, **kwargs):
        self.events.append(("history", kwargs["status"]))
        return super().append(**kwargs)


def _describe(tool: str, args: list[str]) -> str:
    if "--command" in args:
        return args[args.index("--command") + 1].split()[0]   # SELECT / DROP / CREATE
    if "--list" in args:
        return "LIST"
    return "RESTORE"


def _runner(events: list, failures: dict[str, str] | None = None) -> AsyncMock:
    """Fake tool runner; ``failures`` maps a step to the stderr it fails with."""
    failures = failures or {}

    async def _run(tool, args, env=None, stream_output=False):
        step = _describe(tool, args)
        events.append((tool, step))
        if step in failures:
            return ToolResult(exit_succeeded=False, returncode=1, stderr=failures[step])
        return ToolResult(exit_succeeded=True, returncode=0)

    return AsyncMock(side_effect=_run)


def _client(*names: str) -> AsyncMock:
    client = AsyncMock()
    client.list_databases.return_value = [
        DatabaseInfo(name=n, size="8 MB", tables=3) for n in names
    ]
    return client


def _prompter(confirm: bool = True) -> MagicMock:
    prompter = MagicMock()
    prompter.confirm.return_value = confirm
    return prompter


def _dump(home: Path, name: str, content: bytes = b"data") -> Path:
    path = home / "dumps" / name
    path.write_bytes(content)
    return path


# ------------------------------------------------------------------
# End-to-end: plain SQL with drop-and-recreate
# ------------------------------------------------------------------


class TestDropRecreatePlainSql:
    """Lifecycle steps precede the restore, which precedes history."""

    async def test_step_order(self, home):
        source = _dump(home, "sales.sql", b"CREATE TABLE t (id int);")
        events: list = []
        runner = _runner(events)
        orchestrator = RestoreOrchestrator(
            _prompter(), ledger=RecordingLedger(events), runner=runner
        )

        result = await orchestrator.run(
            PROFILE,
            "local",
            _client("sales"),
            file="sales.sql",
            database="sales",
            strategy=RestoreStrategy.DROP_RECREATE,
            assume_yes=True,
        )

        assert events == [
            (PSQL, "SELECT"),
            (PSQL, "DROP"),
            (PSQL, "CREATE"),
            (PSQL, "RESTORE"),
            ("history", "success"),
        ]
        assert result.cancelled is False
        assert result.custom_format is False
        assert result.database == "sales"

        [entry] = HistoryLedger().query()
        assert entry.operation_type == "restore"
        assert entry.file_path == str(source.resolve())
        assert entry.file_size == len(b"CREATE TABLE t (id int);")

    async def test_restore_streams_output(self, home):
        _dump(home, "sales.sql")
        events: list = []
        runner = _runner(events)
        orchestrator = RestoreOrchestrator(_prompter(), ledger=HistoryLedger(), runner=runner)

        await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql", database="sales",
            strategy=RestoreStrategy.RESTORE_INTO_EXISTING, assume_yes=True,
        )

        restore_call = runner.call_args_list[-1]
        assert restore_call.kwargs["stream_output"] is True
        args = restore_call.args[1]
        assert args[args.index("--dbname") + 1] == "dbname='sales'"
        assert args[args.index("--file") + 1].endswith("sales.sql")

    async def test_create_failure_after_drop(self, home):
        """No restore runs; the failure is recorded with the create error."""
        _dump(home, "sales.sql")
        events: list = []
        orchestrator = RestoreOrchestrator(
            _prompter(),
            ledger=RecordingLedger(events),
            runner=_runner(events, {"CREATE": "ERROR: could not create"}),
        )

        with pytest.raises(ProcessExecutionFailed, match="dropped but not recreated"):
            await orchestrator.run(
                PROFILE, "local", _client("sales"), file="sales.sql",
                database="sales", strategy=RestoreStrategy.DROP_RECREATE,
                assume_yes=True,
            )

        assert (PSQL, "RESTORE") not in events
        assert events[-1] == ("history", "failed")
        [entry] = HistoryLedger().query()
        assert entry.status == "failed"
        assert entry.file_size == 0
        assert entry.error_message == "ERROR: could not create"
        assert entry.database == "sales"

    async def test_restore_tool_failure_recorded(self, home):
        _dump(home, "sales.sql")
        orchestrator = RestoreOrchestrator(
            _prompter(),
            ledger=HistoryLedger(),
            runner=_runner([], {"RESTORE": "syntax error at line 1"}),
        )
        with pytest.raises(ProcessExecutionFailed):
            await orchestrator.run(
                PROFILE, "local", _client(), file="sales.sql", database="sales",
                strategy=RestoreStrategy.RESTORE_INTO_EXISTING, assume_yes=True,
            )
        assert HistoryLedger().query()[0].error_message == "syntax error at line 1"


# ------------------------------------------------------------------
# Format verification
# ------------------------------------------------------------------


class TestVerifyFormat:
    """.sql is trusted by extension; anything else is checked with pg_restore --list."""

    async def test_custom_archive_uses_pg_restore(self, home):
        _dump(home, "sales.dump")
        events: list = []
        runner = _runner(events)
        orchestrator = RestoreOrchestrator(_prompter(), ledger=HistoryLedger(), runner=runner)

        result = await orchestrator.run(
            PROFILE, "local", _client(), file="sales.dump", database="sales",
            strategy=RestoreStrategy.RESTORE_INTO_EXISTING, assume_yes=True,
        )

        assert result.custom_format is True
        assert events == [(PG_RESTORE, "LIST"), (PG_RESTORE, "RESTORE")]
        args = runner.call_args_list[-1].args[1]
        assert "--no-owner" in args
        assert "--no-privileges" in args

    async def test_sql_skips_archive_check(self, home):
        events: list = []
        orchestrator = RestoreOrchestrator(_prompter(), runner=_runner(events))
        assert await orchestrator.verify_format(PROFILE, home / "x.SQL") is False
        assert events == []

    async def test_unreadable_archive_recorded_before_any_change(self, home):
        _dump(home, "broken.dump")
        events: list = []
        orchestrator = RestoreOrchestrator(
            _prompter(),
            ledger=RecordingLedger(events),
            runner=_runner(events, {"LIST": "pg_restore: error: input file is too short"}),
        )

        with pytest.raises(VerificationFailed):
            await orchestrator.run(PROFILE, "local", _client(), file="broken.dump")

        assert events == [(PG_RESTORE, "LIST"), ("history", "failed")]
        [entry] = HistoryLedger().query()
        assert entry.database == "unknown"


# ------------------------------------------------------------------
# Target selection and confirmation
# ------------------------------------------------------------------


class TestTargetSelection:
    """Interactive strategy and target choices."""

    async def test_named_target_asks_for_strategy(self, home):
        _dump(home, "sales.sql")
        events: list = []
        prompter = _prompter()
        prompter.select.return_value = RestoreStrategy.RESTORE_INTO_EXISTING
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner(events))

        result = await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql", database="sales"
        )

        assert result.strategy is RestoreStrategy.RESTORE_INTO_EXISTING
        choices = [value for _, value in prompter.select.call_args.args[1]]
        assert choices == [
            RestoreStrategy.DROP_RECREATE,
            RestoreStrategy.RESTORE_INTO_EXISTING,
        ]
        assert events == [(PSQL, "RESTORE")]

    async def test_create_new_prompts_for_name(self, home):
        _dump(home, "sales.sql")
        events: list = []
        prompter = _prompter()
        prompter.select.return_value = RestoreStrategy.CREATE_NEW
        prompter.text.return_value = "sales_copy"
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner(events))

        result = await orchestrator.run(PROFILE, "local", _client(), file="sales.sql")

        assert result.database == "sales_copy"
        assert events == [(PSQL, "CREATE"), (PSQL, "RESTORE")]

    async def test_existing_picked_from_live_list_is_dropped(self, home):
        _dump(home, "sales.sql")
        events: list = []
        prompter = _prompter()
        prompter.select.side_effect = [RestoreStrategy.DROP_RECREATE, "reports"]
        client = _client("reports", "sales")
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner(events))

        result = await orchestrator.run(PROFILE, "local", client, file="sales.sql")

        client.list_databases.assert_awaited_once()
        assert result.database == "reports"
        assert [step for _, step in events] == ["SELECT", "DROP", "CREATE", "RESTORE"]

    async def test_no_databases_on_server(self, home):
        _dump(home, "sales.sql")
        prompter = _prompter()
        prompter.select.return_value = RestoreStrategy.DROP_RECREATE
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner([]))
        with pytest.raises(NotFound):
            await orchestrator.run(PROFILE, "local", _client(), file="sales.sql")

    async def test_invalid_target_name(self, home):
        _dump(home, "sales.sql")
        events: list = []
        orchestrator = RestoreOrchestrator(_prompter(), ledger=HistoryLedger(), runner=_runner(events))
        with pytest.raises(InvalidIdentifier):
            await orchestrator.run(
                PROFILE, "local", _client(), file="sales.sql", database="bad-name!"
            )
        assert events == []
        assert HistoryLedger().query() == []

    async def test_hyphenated_name_picked_from_live_list(self, home):
        _dump(home, "sales.sql")
        prompter = _prompter()
        prompter.select.side_effect = [RestoreStrategy.DROP_RECREATE, "my-app"]
        runner = _runner([])
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=runner)

        result = await orchestrator.run(PROFILE, "local", _client("my-app"), file="sales.sql")

        assert result.database == "my-app"
        commands = [
            call.args[1][call.args[1].index("--command") + 1]
            for call in runner.call_args_list
            if "--command" in call.args[1]
        ]
        assert "WHERE datname = 'my-app'" in commands[0]
        assert commands[1] == 'DROP DATABASE IF EXISTS "my-app";'
        restore_args = runner.call_args_list[-1].args[1]
        assert restore_args[restore_args.index("--dbname") + 1] == "dbname='my-app'"
        assert HistoryLedger().query()[0].database == "my-app"

    async def test_connection_string_name_stays_a_database_name(self, home):
        _dump(home, "sales.sql")
        runner = _runner([])
        orchestrator = RestoreOrchestrator(_prompter(), ledger=HistoryLedger(), runner=runner)

        await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql",
            database='"host=attacker.example dbname=x"',
            strategy=RestoreStrategy.CREATE_NEW, assume_yes=True,
        )

        args = runner.call_args_list[-1].args[1]
        assert args[args.index("--dbname") + 1] == "dbname='host=attacker.example dbname=x'"
        assert args[args.index("--host") + 1] == "localhost"


class TestCancellation:
    """Declining a confirmation is a normal early exit."""

    async def test_decline_destructive_confirmation(self, home):
        _dump(home, "sales.sql")
        events: list = []
        prompter = _prompter(confirm=False)
        orchestrator = RestoreOrchestrator(
            prompter, ledger=RecordingLedger(events), runner=_runner(events)
        )

        result = await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql", database="sales",
            strategy=RestoreStrategy.DROP_RECREATE,
        )

        assert result.cancelled is True
        assert events == []
        assert prompter.confirm.call_count == 1
        assert "DELETE" in prompter.confirm.call_args.args[0]

    async def test_drop_needs_two_confirmations(self, home):
        _dump(home, "sales.sql")
        prompter = _prompter()
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner([]))
        await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql", database="sales",
            strategy=RestoreStrategy.DROP_RECREATE,
        )
        assert prompter.confirm.call_count == 2

    async def test_decline_final_confirmation(self, home):
        _dump(home, "sales.sql")
        prompter = _prompter(confirm=False)
        orchestrator = RestoreOrchestrator(prompter, ledger=HistoryLedger(), runner=_runner([]))
        result = await orchestrator.run(
            PROFILE, "local", _client(), file="sales.sql", database="sales",
            strategy=RestoreStrategy.RESTORE_INTO_EXISTING,
        )
        assert result.cancelled is True
        assert HistoryLedger().query() == []


# ------------------------------------------------------------------
# Source selection
# ------------------------------------------------------------------


class TestSelectSource:
    """Explicit path, history, or a listing of the dumps directory."""

    def test_missing_file(self, home, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        orchestrator = RestoreOrchestrator(_prompter(), ledger=HistoryLedger())
        with pytest.raises(NotFound):
            orchestrator.select_source("nope.dump")

    def test_from_history(self, home):
        path = _dump(home, "sales.dump")
        ledger = HistoryLedger()
        entry = ledger.append(
            operation_type="dump", database="sales", connection_name="local",
            file_path=str(path), status="success", file_size=4,
        )
        prompter = _prompter()
        prompter.select.side_effect = lambda message, choices: choices[0][1]

        assert RestoreOrchestrator(prompter, ledger=ledger).select_source(
            from_history=True
        ) == path
        assert prompter.select.call_args.args[1][0][1].id == entry.id

    def test_history_entry_with_missing_file(self, home):
        ledger = HistoryLedger()
        ledger.append(
            operation_type="dump", database="sales", connection_name="local",
            file_path=str(home / "dumps" / "gone.dump"), status="success",
        )
        prompter = _prompter()
        prompter.select.side_effect = lambda message, choices: choices[0][1]

        with pytest.raises(NotFound, match="no longer exists"):
            RestoreOrchestrator(prompter, ledger=ledger).select_source(from_history=True)

    def test_empty_history(self, home):
        with pytest.raises(NotFound, match="history"):
            RestoreOrchestrator(_prompter(), ledger=HistoryLedger()).select_source(
                from_history=True
            )

    def test_pick_from_dumps_dir(self, home):
        path = _dump(home, "sales.dump")
        prompter = _prompter()
        prompter.select.side_effect = lambda message, choices: choices[0][1]
        assert RestoreOrchestrator(prompter, ledger=HistoryLedger()).select_source() == path

    def test_empty_dumps_dir(self, home):
        with pytest.raises(NotFound, match="No dump files"):
            RestoreOrchestrator(_prompter(), ledger=HistoryLedger()).select_source()
