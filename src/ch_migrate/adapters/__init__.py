"""Database adapters package.

Provides the ``DatabaseClient`` and ``RowStreamClient`` protocols, the
SQLAlchemy-backed ``ClickHouseAdapter``, and the ``ClickHouseClient``
wrapper around the external executable.

Usage:
    from ch_migrate.adapters import ClickHouseAdapter, ClickHouseClient
"""

from ch_migrate.adapters.base import DatabaseClient, RowStreamClient
from ch_migrate.adapters.clickhouse import ClickHouseAdapter, qualified_name, quote_identifier
from ch_migrate.adapters.client import ClickHouseClient

__all__ = [
    "DatabaseClient",
    "RowStreamClient",
    "ClickHouseAdapter",
    "ClickHouseClient",
    "qualified_name",
    "quote_identifier",
]
