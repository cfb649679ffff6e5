"""Console, logging and error plumbing shared by the CLI commands."""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from dbmux.config.loader import load_config
from dbmux.config.registry import ConnectionRegistry
from dbmux.errors import DbmuxError
from dbmux.history import HistoryLedger
from dbmux.prompts import Prompter

logger = logging.getLogger(__name__)

console = Console()

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def configure_logging(level: str | None = None) -> None:
    """Route library logging through Rich.

    ``level`` falls back to ``settings.logLevel`` from the registry.
    """
    if level is None:
        level = load_config().settings.log_level
    logging.basicConfig(
        level=_LOG_LEVELS.get(level.lower(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def fail(message: str) -> int:
    console.print(f"[bold red]x[/bold red] {message}")
    return 1


def success(message: str) -> None:
    console.print(f"[bold green]v[/bold green] {message}")


def run_async(coro: Coroutine[Any, Any, int]) -> int:
    """Run a command coroutine; any error becomes exit code 1.

    Driver and OS errors (unreachable server, refused login) are reported
    the same way as ``DbmuxError``; the traceback goes to the debug log.
    """
    try:
        return asyncio.run(coro)
    except DbmuxError as e:
        return fail(str(e))
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        return fail(f"{type(e).__name__}: {e}")


# ----------------------------------------------------------------------------
# Collaborators (patched in tests)
# ----------------------------------------------------------------------------


def get_registry() -> ConnectionRegistry:
    return ConnectionRegistry()


def get_ledger() -> HistoryLedger:
    return HistoryLedger()


def get_prompter() -> Prompter:
    from dbmux.cli.prompts import RichPrompter

    return RichPrompter(console)
