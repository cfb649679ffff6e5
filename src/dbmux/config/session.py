"""Session pointer: the connection chosen by the last ``connect``.

Stored separately from the registry so ``disconnect`` can clear it without
touching saved profiles.  The pointer is not checked against the registry
here; ``ConnectionRegistry.resolve()`` decides what a dangling name means.
"""

from pathlib import Path

from dbmux.config.loader import get_session_path, load_session, save_session
from dbmux.config.models import SessionState


class SessionStore:
    """Read and write the active-connection pointer.

    Usage:
        session = SessionStore()
        session.set_active("staging")
        session.get_active()   # "staging"
        session.clear()
    """

    def __init__(self, session_path: Path | None = None):
        self._path = session_path

    @property
    def path(self) -> Path:
        return self._path or get_session_path()

    def get_active(self) -> str | None:
        return load_session(self.path).active_connection or None

    def set_active(self, name: str) -> None:
        save_session(SessionState(active_connection=name), self.path)

    def clear(self) -> None:
        """Drop the pointer; a no-op when no session file exists."""
        if self.path.exists():
            save_session(SessionState(), self.path)
