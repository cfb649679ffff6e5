"""Tests for database-name validation and SQL escaping."""

import pytest

from dbmux.errors import InvalidIdentifier
from dbmux.identifiers import (
    MAX_IDENTIFIER_LENGTH,
    from_server_name,
    is_valid_name,
    to_conninfo_dbname,
    to_escaped_literal,
    to_quoted_identifier,
    unquote,
    validate_database_name,
)


class TestIsValidName:
    """Accepted and rejected identifier forms."""

    @pytest.mark.parametrize("name", ["valid_name", "_ok", '"Weird Name"', "a$b", "A1"])
    def test_accepts(self, name):
        """Unquoted and properly quoted names are accepted."""
        assert is_valid_name(name) is True

    @pytest.mark.parametrize(
        "name",
        ["123bad", "bad-name!", "", "has space", "semi;colon", "x'y", '"unbalanced', '"a"b"'],
    )
    def test_rejects(self, name):
        """Names outside the identifier grammar are rejected."""
        assert is_valid_name(name) is False

    def test_length_limit_unquoted(self):
        """63 characters pass, 64 fail."""
        assert is_valid_name("a" * MAX_IDENTIFIER_LENGTH) is True
        assert is_valid_name("a" * (MAX_IDENTIFIER_LENGTH + 1)) is False

    def test_length_limit_quoted_uses_decoded_length(self):
        """Doubled quotes count once toward the limit."""
        inner = '""' * MAX_IDENTIFIER_LENGTH
        assert is_valid_name(f'"{inner}"') is True
        assert is_valid_name(f'"{inner}x"') is False

    def test_empty_quoted_rejected(self):
        """``""`` decodes to an empty name."""
        assert is_valid_name('""') is False

    def test_doubled_quotes_inside_quoted_name(self):
        """Embedded quotes must be doubled."""
        assert is_valid_name('"say ""hi"""') is True


class TestValidateDatabaseName:
    """validate_database_name raises on bad input."""

    def test_returns_name(self):
        assert validate_database_name("sales") == "sales"

    def test_raises_invalid_identifier(self):
        """Injection attempts never pass validation."""
        with pytest.raises(InvalidIdentifier, match="Invalid database name"):
            validate_database_name("x; DROP DATABASE prod")


class TestEscaping:
    """Literal and identifier rendering."""

    def test_escaped_literal_doubles_single_quotes(self):
        assert to_escaped_literal('"o\'brien"') == "o''brien"

    def test_escaped_literal_plain(self):
        assert to_escaped_literal("sales") == "sales"

    def test_quoted_identifier_wraps(self):
        assert to_quoted_identifier("sales") == '"sales"'

    def test_quoted_identifier_is_stable_for_quoted_input(self):
        """Already-quoted names are not double-wrapped."""
        assert to_quoted_identifier('"Weird Name"') == '"Weird Name"'

    def test_quoted_identifier_redoubles_quotes(self):
        assert to_quoted_identifier('"a""b"') == '"a""b"'

    def test_unquote(self):
        assert unquote('"Weird Name"') == "Weird Name"
        assert unquote("plain") == "plain"


class TestConninfoDbname:
    """Client-tool ``--dbname`` values are always conninfo strings."""

    def test_plain(self):
        assert to_conninfo_dbname("sales") == "dbname='sales'"

    def test_quoted_name_is_decoded(self):
        assert to_conninfo_dbname('"Weird Name"') == "dbname='Weird Name'"

    def test_escapes_quote_and_backslash(self):
        assert to_conninfo_dbname('"o\'b\\x"') == "dbname='o\\'b\\\\x'"

    def test_connection_string_stays_a_value(self):
        """A name that looks like conninfo cannot add connection keywords."""
        value = to_conninfo_dbname('"host=attacker.example dbname=x"')
        assert value == "dbname='host=attacker.example dbname=x'"

    def test_option_like_name_stays_a_value(self):
        assert to_conninfo_dbname('"--file=/tmp/evil"') == "dbname='--file=/tmp/evil'"


class TestFromServerName:
    """Names listed by the server become accepted identifiers."""

    def test_bare_name_unchanged(self):
        assert from_server_name("sales") == "sales"

    def test_hyphenated_name_is_quoted(self):
        assert from_server_name("my-app") == '"my-app"'

    def test_embedded_quote_is_doubled(self):
        assert from_server_name('a"b') == '"a""b"'

    @pytest.mark.parametrize("raw", ["my-app", "Sales", "with space", 'a"b', "9lives"])
    def test_result_validates_and_round_trips(self, raw):
        name = from_server_name(raw)
        assert validate_database_name(name) == name
        assert unquote(name) == raw
