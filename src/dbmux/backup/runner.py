"""External tool runner for pg_dump, pg_restore and psql.

``run_tool()`` spawns the program with the inherited environment plus any
overrides (``PGPASSWORD``), closes standard input, and buffers both output
streams.  With ``stream_output=True`` each chunk is also forwarded to this
process's own stdout/stderr as it arrives, which restores rely on for
progress.  A non-zero exit is reported in the result, not raised.

Missing executables are caught up front by ``ensure_commands_exist()``;
``run_tool()`` does not special-case them.

Usage:
    from dbmux.backup.runner import ensure_commands_exist, run_tool

    ensure_commands_exist(["pg_dump"])
    result = await run_tool("pg_dump", ["--list", path], {"PGPASSWORD": pw})
    if not result.exit_succeeded:
        print(result.stderr)
"""

import asyncio
import codecs
import logging
import os
import shutil
import sys
from collections.abc import Mapping
from typing import IO

from dbmux.backup.models import ToolResult
from dbmux.errors import ToolUnavailable

logger = logging.getLogger(__name__)

INSTALL_HINT = (
    "Install the PostgreSQL client tools (psql, pg_dump, pg_restore) and "
    "make sure they are on PATH:\n"
    "  - macOS (Homebrew): brew install libpq\n"
    "  - Debian/Ubuntu: sudo apt-get install postgresql-client\n"
    "  - Windows: use the PostgreSQL installer from postgresql.org"
)

_CHUNK_SIZE = 4096


def ensure_commands_exist(commands: list[str]) -> None:
    """Raise ``ToolUnavailable`` if any command is not on PATH."""
    missing = [cmd for cmd in commands if shutil.which(cmd) is None]
    if missing:
        logger.debug("Missing external commands: %s", missing)
        raise ToolUnavailable(missing)


async def _pump(
    stream: asyncio.StreamReader, sink: IO[str] | None, chunks: list[str]
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(_CHUNK_SIZE)
        text = decoder.decode(data, final=not data)
        if not data and not text:
            break
        chunks.append(text)
        if sink is not None:
            sink.write(text)
            sink.flush()


async def run_tool(
    tool: str,
    args: list[str],
    env_overrides: Mapping[str, str] | None = None,
    stream_output: bool = False,
) -> ToolResult:
    """Run ``tool`` with ``args`` and wait for it to exit.

    Args:
        tool: Executable name (resolved via PATH).
        args: Argument list; never passed through a shell.
        env_overrides: Extra environment variables (e.g. ``PGPASSWORD``).
        stream_output: Echo stdout/stderr while buffering.

    Returns:
        ToolResult with the buffered output and exit status.
    """
    env = {**os.environ, **(env_overrides or {})}
    logger.debug("Running %s %s", tool, " ".join(args))

    process = await asyncio.create_subprocess_exec(
        tool,
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )

    out_chunks: list[str] = []
    err_chunks: list[str] = []
    await asyncio.gather(
        _pump(process.stdout, sys.stdout if stream_output else None, out_chunks),
        _pump(process.stderr, sys.stderr if stream_output else None, err_chunks),
    )
    returncode = await process.wait()

    logger.debug("%s exited with %s", tool, returncode)
    return ToolResult(
        exit_succeeded=returncode == 0,
        returncode=returncode,
        stdout="".join(out_chunks),
        stderr="".join(err_chunks),
    )
