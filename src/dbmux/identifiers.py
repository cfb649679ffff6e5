"""PostgreSQL identifier validation and escaping.

Database names reach ``psql --command`` strings and subprocess argument
lists, so every name coming from a user or from history passes through
``validate_database_name()`` first.

Accepted forms:
- Unquoted: starts with a letter or underscore, then letters, digits,
  underscores or ``$``; at most 63 characters.
- Quoted: wrapped in double quotes, embedded quotes doubled (``""``),
  decoded length 1..63.

Usage:
    from dbmux.identifiers import validate_database_name, to_quoted_identifier

    name = validate_database_name(user_input)
    sql = f"DROP DATABASE IF EXISTS {to_quoted_identifier(name)};"
"""

import re

from dbmux.errors import InvalidIdentifier

MAX_IDENTIFIER_LENGTH = 63

_UNQUOTED_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")


def _decode_quoted(name: str) -> str | None:
    """Return the inner value of a quoted identifier, or None if malformed."""
    if len(name) < 2 or not (name.startswith('"') and name.endswith('"')):
        return None
    inner = name[1:-1]
    # Every quote inside must be part of a doubled pair
    if inner.replace('""', "").count('"'):
        return None
    return inner.replace('""', '"')


def is_valid_name(name: str) -> bool:
    """Check whether ``name`` is a safe PostgreSQL database identifier.

    Args:
        name: Candidate name, either bare or double-quoted.

    Returns:
        ``True`` if the name is accepted.

    Example:
        >>> is_valid_name("valid_name")
        True
        >>> is_valid_name('"Weird Name"')
        True
        >>> is_valid_name("123bad")
        False
    """
    if not name:
        return False
    if name.startswith('"'):
        decoded = _decode_quoted(name)
        return decoded is not None and 0 < len(decoded) <= MAX_IDENTIFIER_LENGTH
    return len(name) <= MAX_IDENTIFIER_LENGTH and bool(_UNQUOTED_RE.match(name))


def validate_database_name(name: str) -> str:
    """Return ``name`` unchanged if valid, else raise ``InvalidIdentifier``."""
    if not is_valid_name(name):
        raise InvalidIdentifier(
            f"Invalid database name: {name!r}. Names must start with a letter "
            f"or underscore, contain only letters, digits, '_' or '$', and be "
            f"at most {MAX_IDENTIFIER_LENGTH} characters (or be double-quoted)."
        )
    return name


def unquote(name: str) -> str:
    """Return the raw database name as the server stores it."""
    decoded = _decode_quoted(name) if name.startswith('"') else None
    return decoded if decoded is not None else name


def to_escaped_literal(name: str) -> str:
    """Escape a name for use inside a single-quoted SQL string literal.

    Quoted identifiers are decoded first so the literal matches the value
    stored in ``pg_database.datname``.
    """
    return unquote(name).replace("'", "''")


def to_quoted_identifier(name: str) -> str:
    """Render a name as a double-quoted SQL identifier.

    Example:
        >>> to_quoted_identifier("sales")
        '"sales"'
        >>> to_quoted_identifier('"Weird Name"')
        '"Weird Name"'
    """
    return '"' + unquote(name).replace('"', '""') + '"'


def to_conninfo_dbname(name: str) -> str:
    """Render a name as a libpq ``dbname='...'`` conninfo string.

    Client tools treat any ``--dbname`` value containing ``=`` as a
    connection string, so targets are always passed in this form.
    Backslashes and single quotes in the value are backslash-escaped.

    Example:
        >>> to_conninfo_dbname("sales")
        "dbname='sales'"
    """
    value = unquote(name).replace("\\", "\\\\").replace("'", "\\'")
    return f"dbname='{value}'"


def from_server_name(raw: str) -> str:
    """Turn a ``pg_database.datname`` value into an accepted identifier.

    Bare-identifier names are returned as is; anything else is
    double-quoted so ``validate_database_name()`` accepts it.

    Example:
        >>> from_server_name("sales")
        'sales'
        >>> from_server_name("my-app")
        '"my-app"'
    """
    if len(raw) <= MAX_IDENTIFIER_LENGTH and _UNQUOTED_RE.match(raw):
        return raw
    return '"' + raw.replace('"', '""') + '"'
