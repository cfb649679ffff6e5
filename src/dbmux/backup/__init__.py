"""Dump and restore orchestration around pg_dump, pg_restore and psql.

Usage:
    from dbmux.backup import DumpOrchestrator, RestoreOrchestrator, RestoreStrategy
    from dbmux.backup import list_dump_files, resolve_dump_path
"""

from dbmux.backup.dump import DumpOrchestrator
from dbmux.backup.files import (
    delete_dump_file,
    generate_dump_filename,
    list_dump_files,
    resolve_dump_path,
)
from dbmux.backup.lifecycle import DatabaseLifecycle
from dbmux.backup.models import (
    DumpFileInfo,
    DumpFormat,
    DumpResult,
    RestoreResult,
    RestoreStrategy,
    ToolResult,
)
from dbmux.backup.restore import RestoreOrchestrator
from dbmux.backup.runner import ensure_commands_exist, run_tool

__all__ = [
    "DumpOrchestrator",
    "RestoreOrchestrator",
    "DatabaseLifecycle",
    "DumpFormat",
    "RestoreStrategy",
    "DumpFileInfo",
    "DumpResult",
    "RestoreResult",
    "ToolResult",
    "generate_dump_filename",
    "list_dump_files",
    "resolve_dump_path",
    "delete_dump_file",
    "ensure_commands_exist",
    "run_tool",
]
