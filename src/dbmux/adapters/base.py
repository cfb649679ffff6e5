"""Live database client protocol.

Defines the ``DatabaseClient`` Protocol the command layer talks to and the
``DatabaseInfo`` row returned by ``list_databases()``.  All methods are
``async def``.

Usage:
    from dbmux.adapters.base import DatabaseClient

    async def show(client: DatabaseClient) -> None:
        for db in await client.list_databases():
            print(db.name, db.size)
        await client.close()
"""

from typing import Protocol

from pydantic import BaseModel


class DatabaseInfo(BaseModel):
    """One user database on a server."""

    name: str
    owner: str = ""
    encoding: str = ""
    size: str = ""           # human readable, as reported by the server
    tables: int = 0


class DatabaseClient(Protocol):
    """Connection handle used by commands for live queries.

    Dump and restore never go through this interface; they drive the
    external client tools.  The handle is only used to list databases
    and check reachability.
    """

    async def test_connection(self) -> bool:
        """Return True if a trivial round-trip succeeds.

        Raises:
            Exception: Driver errors propagate unchanged.
        """
        ...

    async def list_databases(self) -> list[DatabaseInfo]:
        """List non-template user databases, ordered by name."""
        ...

    async def close(self) -> None:
        """Release the underlying connection pool."""
        ...
