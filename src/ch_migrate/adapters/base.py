"""Client protocol definitions.

``DatabaseClient`` is the synchronous SQL surface the pipelines need from a
live connection.  ``RowStreamClient`` is the two-operation port for bulk
row transfer in TSV form, currently served by the external ``clickhouse``
executable.

Usage:
    from ch_migrate.adapters.base import DatabaseClient, RowStreamClient

    def count(client: DatabaseClient) -> int:
        return client.fetch_value("SELECT count() FROM system.tables")
"""

from typing import IO, Any, Protocol


class DatabaseClient(Protocol):
    """Database client interface that all adapters must implement.

    Errors from the underlying driver surface as ``QueryFailure``.
    """

    def fetch_column(self, sql: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Run a query and return the first column of every row.

        Example:
            names = client.fetch_column("SHOW TABLES FROM analytics")
        """
        ...

    def fetch_value(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        """Run a query and return the first column of the first row.

        Returns:
            The value, or ``None`` when the query returned no rows.
        """
        ...

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Execute a statement that returns no rows (DDL, ``CREATE DATABASE``)."""
        ...

    def ping(self) -> None:
        """Round-trip a trivial query; raise if the server is unreachable."""
        ...

    def close(self) -> None:
        """Close the connection and release resources."""
        ...


class RowStreamClient(Protocol):
    """Bulk row transfer in tab-separated form."""

    def stream_query(self, query: str, output: IO[bytes]) -> None:
        """Run ``query`` and append its TSV result to ``output``."""
        ...

    def insert_from(self, table_ref: str, source: IO[bytes]) -> None:
        """Insert the TSV rows read from ``source`` into ``table_ref``."""
        ...
