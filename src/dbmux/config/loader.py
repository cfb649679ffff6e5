"""Registry and session file persistence.

Both files live under the dbmux home directory (``~/.dbmux`` unless
``DBMUX_HOME`` is set).  Every write goes to a temporary file in the same
directory and is moved into place with ``os.replace``, so readers never
observe a half-written document.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ValidationError

from dbmux.config.models import RegistryConfig, SessionState
from dbmux.errors import PersistenceFailed

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
SESSION_FILENAME = "session.json"
DUMPS_DIRNAME = "dumps"


def get_config_dir() -> Path:
    """Return the dbmux home directory (``$DBMUX_HOME`` or ``~/.dbmux``)."""
    override = os.environ.get("DBMUX_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dbmux"


def get_config_path() -> Path:
    return get_config_dir() / CONFIG_FILENAME


def get_session_path() -> Path:
    return get_config_dir() / SESSION_FILENAME


def get_dumps_dir() -> Path:
    return get_config_dir() / DUMPS_DIRNAME


def write_atomic(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` in a single rename.

    Raises:
        PersistenceFailed: If the directory or file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PersistenceFailed(f"Failed to save {path}: {e}") from e


def _load_document(path: Path, model: type[BaseModel]) -> BaseModel:
    if not path.exists():
        return model()
    try:
        return model.model_validate_json(path.read_text(encoding="utf-8"))
    except (OSError, ValidationError) as e:
        logger.warning("Could not parse %s, using defaults: %s", path, e)
        return model()


def _dump_document(document: BaseModel) -> str:
    return document.model_dump_json(by_alias=True, exclude_none=True, indent=2)


def load_config(config_path: Path | None = None) -> RegistryConfig:
    """Load the registry document.

    A missing file yields an empty registry.  A malformed file is logged
    and replaced in memory by defaults; the file on disk is left alone
    until the next save.

    Args:
        config_path: Path to ``config.json`` (default: under the dbmux home).

    Returns:
        RegistryConfig with connections, settings, and history.
    """
    if config_path is None:
        config_path = get_config_path()
    return _load_document(config_path, RegistryConfig)


def save_config(config: RegistryConfig, config_path: Path | None = None) -> None:
    """Write the registry document atomically.

    Raises:
        PersistenceFailed: If the file cannot be written.
    """
    if config_path is None:
        config_path = get_config_path()
    write_atomic(config_path, _dump_document(config))


def load_session(session_path: Path | None = None) -> SessionState:
    """Load the session pointer; missing or malformed files mean no session."""
    if session_path is None:
        session_path = get_session_path()
    return _load_document(session_path, SessionState)


def save_session(state: SessionState, session_path: Path | None = None) -> None:
    """Write the session pointer atomically."""
    if session_path is None:
        session_path = get_session_path()
    write_atomic(session_path, _dump_document(state))
