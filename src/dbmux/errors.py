"""Exception hierarchy for dbmux.

Precondition errors (``NotFound``, ``DuplicateName``, ``InvalidIdentifier``,
``ToolUnavailable``, ``UnsupportedEngine``) are raised before anything is
mutated.  Execution errors (``ProcessExecutionFailed``,
``VerificationFailed``) can occur mid-operation and are recorded in the
history ledger before being re-raised.

Usage:
    from dbmux.errors import DbmuxError, NotFound

    try:
        registry.resolve("staging")
    except NotFound as e:
        console.print(f"[red]{e}[/red]")
"""


class DbmuxError(Exception):
    """Base class for all dbmux errors."""

    pass


class NotFound(DbmuxError):
    """A connection, database, or dump file does not exist."""

    pass


class DuplicateName(DbmuxError):
    """A connection with the requested name already exists."""

    pass


class InvalidIdentifier(DbmuxError):
    """A database name failed identifier validation."""

    pass


class UnsupportedEngine(DbmuxError):
    """The operation is not available for the profile's engine type."""

    pass


class ToolUnavailable(DbmuxError):
    """A required external executable is not on PATH."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Required command(s) not found: {', '.join(missing)}")


class VerificationFailed(DbmuxError):
    """A dump archive could not be read by the archive tool."""

    pass


class ProcessExecutionFailed(DbmuxError):
    """An external tool exited with a non-zero status.

    Attributes:
        stderr: Captured standard error of the failed process.
    """

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        super().__init__(message)


class PersistenceFailed(DbmuxError):
    """The registry or session file could not be written."""

    pass
