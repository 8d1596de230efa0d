"""Synchronous ClickHouse adapter.

Provides ``ClickHouseAdapter``, an implementation of the ``DatabaseClient``
protocol on a SQLAlchemy engine using the ``clickhouse+native`` dialect
from clickhouse-sqlalchemy.

Usage:
    from ch_migrate.adapters.clickhouse import ClickHouseAdapter

    adapter = ClickHouseAdapter("clickhouse+native://default:@localhost:9000/analytics")
    tables = adapter.fetch_column("SHOW TABLES FROM analytics")
    adapter.close()
"""

from typing import Any, Callable

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from ch_migrate.exceptions import QueryFailure


def quote_identifier(name: str) -> str:
    """Quote a ClickHouse identifier with backticks."""
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def qualified_name(database: str, table: str) -> str:
    """Return ``database.table`` with both parts quoted."""
    return f"{quote_identifier(database)}.{quote_identifier(table)}"


def create_engine_single(database_url: str | URL, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine holding at most one connection.

    Default pool settings:

    - ``pool_size=1`` / ``max_overflow=0``: the pipelines use one handle serially.
    - ``pool_pre_ping=True``: Validate the connection before checkout.

    Args:
        database_url: ClickHouse URL with ``clickhouse+native://`` scheme.
        **kwargs: Additional keyword arguments forwarded to ``create_engine``.
    """
    defaults: dict[str, Any] = {
        "pool_size": 1,
        "max_overflow": 0,
        "pool_pre_ping": True,
        "echo": False,
    }
    merged = {**defaults, **kwargs}

    return create_engine(database_url, **merged)


class ClickHouseAdapter:
    """ClickHouse implementation of the ``DatabaseClient`` protocol.

    Statements without parameters are sent to the driver untouched
    (``exec_driver_sql`` with ``no_parameters``), so DDL read back from
    ``SHOW CREATE TABLE`` is executed verbatim even when it contains colons
    or percent signs.  Parameterized queries go through ``text()``.
    Each call runs in ``engine.begin()`` and commits on success.

    Args:
        database_url: ClickHouse connection URL (string or ``sqlalchemy.URL``).
        **engine_kwargs: Forwarded to ``create_engine_single``.
    """

    def __init__(self, database_url: str | URL, **engine_kwargs: Any) -> None:
        self._engine: Engine = create_engine_single(database_url, **engine_kwargs)

    def _run(
        self,
        sql: str,
        params: dict[str, Any] | None,
        consume: Callable[[CursorResult], Any],
    ) -> Any:
        try:
            with self._engine.begin() as conn:
                if params:
                    result = conn.execute(text(sql), params)
                else:
                    result = conn.execution_options(no_parameters=True).exec_driver_sql(sql)
                return consume(result)
        except SQLAlchemyError as e:
            raise QueryFailure(f"Query failed: {sql.strip()[:200]}: {e}") from e

    def fetch_column(self, sql: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Return the first column of every row."""
        return self._run(sql, params, lambda result: list(result.scalars().all()))

    def fetch_value(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        """Return the first column of the first row, or ``None``."""
        return self._run(sql, params, lambda result: result.scalar())

    def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Execute a statement and discard any result."""
        self._run(sql, params, lambda result: None)

    def ping(self) -> None:
        """Run ``SELECT 1``."""
        self.fetch_value("SELECT 1")

    def close(self) -> None:
        """Dispose the engine and its pooled connection."""
        self._engine.dispose()
