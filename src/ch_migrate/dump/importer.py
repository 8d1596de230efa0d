"""Restore schema and data artifacts into a ClickHouse database.

Import runs in three phases:

1. Ensure the target database exists, over a connection opened without one.
2. Replay every ``<table>.sql`` file, sorted by name.  The first unreadable
   or failing file aborts the import: schema integrity is a precondition
   for loading any data.
3. Load every ``<table>.tsv`` file through the external client.  Views and
   empty files are skipped, and a failing table is recorded while the
   remaining files are still processed.

Usage:
    from ch_migrate.dump.importer import import_database

    summary = import_database(config)
    if not summary.success:
        print(summary.format_report())
"""

import logging
from pathlib import Path

from ch_migrate.adapters.base import DatabaseClient, RowStreamClient
from ch_migrate.adapters.clickhouse import qualified_name, quote_identifier
from ch_migrate.adapters.client import ClickHouseClient
from ch_migrate.config.models import RunConfig
from ch_migrate.dump.artifacts import (
    DATA_EXT,
    SCHEMA_EXT,
    list_artifacts,
    table_from_artifact,
)
from ch_migrate.dump.models import VIEW_ENGINE, RunSummary, TableStatus
from ch_migrate.exceptions import MigrationError, QueryFailure, ReadFailure
from ch_migrate.factory import Connector, connect

logger = logging.getLogger(__name__)


def ensure_database(client: DatabaseClient, database: str) -> None:
    """Create ``database`` unless it already exists.

    Raises:
        QueryFailure: If the statement fails.
    """
    client.execute(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(database)}")
    logger.info("Database %s is ready", database)


def import_schema(
    client: DatabaseClient, schema_dir: Path, tables: list[str] | None = None
) -> list[Path]:
    """Execute every schema artifact in ``schema_dir`` verbatim.

    Files are processed in file-name order.  There is no per-file recovery:
    the first failure propagates and later files are left unprocessed.

    Args:
        client: Connection to the target database.
        schema_dir: Directory holding ``<table>.sql`` files.
        tables: Only replay these tables (default: all files).

    Returns:
        The schema files that were applied.

    Raises:
        ReadFailure: The directory or a file cannot be read.
        QueryFailure: A statement failed; the message names the file.
    """
    applied: list[Path] = []
    for path in list_artifacts(schema_dir, SCHEMA_EXT):
        if tables is not None and table_from_artifact(path, SCHEMA_EXT) not in tables:
            continue
        try:
            statement = path.read_text()
        except OSError as e:
            raise ReadFailure(f"Failed to read schema file {path}: {e}") from e
        try:
            client.execute(statement)
        except QueryFailure as e:
            raise QueryFailure(f"Failed to execute schema file {path}: {e}") from e
        logger.info("Schema imported for table/view %s", path.name)
        applied.append(path)
    return applied


def table_engine(client: DatabaseClient, database: str, table: str) -> str:
    """Engine name of ``table`` from ``system.tables``.

    Raises:
        QueryFailure: If the lookup fails or the table is not in the catalog.
    """
    engine = client.fetch_value(
        "SELECT engine FROM system.tables WHERE database = :database AND name = :table",
        {"database": database, "table": table},
    )
    if engine is None:
        raise QueryFailure(f"Table {database}.{table} not found in system.tables")
    return str(engine)


def is_view(client: DatabaseClient, database: str, table: str) -> bool:
    """True when ``table`` is a view (it holds no data of its own)."""
    return table_engine(client, database, table) == VIEW_ENGINE


def import_table_data(
    config: RunConfig,
    client: DatabaseClient,
    table: str,
    data_path: Path,
    streamer: RowStreamClient | None = None,
) -> TableStatus:
    """Load one data artifact into ``table``.

    The view check happens before the file is touched.

    Returns:
        ``"imported"``, or ``"skipped"`` for a view or an empty file.

    Raises:
        QueryFailure: The view lookup failed.
        ReadFailure: The file is missing or cannot be opened.
        ExternalProcessFailure: The client failed to insert the data.
    """
    streamer = streamer or ClickHouseClient.from_config(config)
    logger.info("Importing data for table %s from file %s", table, data_path)

    if is_view(client, config.database, table):
        logger.info("Skipping data import for view %s", table)
        return "skipped"

    try:
        size = data_path.stat().st_size
    except FileNotFoundError as e:
        raise ReadFailure(f"Data file does not exist: {data_path}") from e
    except OSError as e:
        raise ReadFailure(f"Failed to stat data file {data_path}: {e}") from e
    if size == 0:
        logger.info("Data file is empty: %s", data_path)
        return "skipped"

    logger.debug("Data file %s is %d bytes", data_path, size)
    try:
        source = open(data_path, "rb")
    except OSError as e:
        raise ReadFailure(f"Failed to open data file {data_path}: {e}") from e

    with source:
        streamer.insert_from(qualified_name(config.database, table), source)

    logger.info("Data import for table %s completed successfully", table)
    return "imported"


def import_data_dir(
    config: RunConfig,
    client: DatabaseClient,
    data_dir: Path,
    streamer: RowStreamClient | None = None,
    tables: list[str] | None = None,
) -> RunSummary:
    """Load every data artifact in ``data_dir``, isolating per-table failures.

    Raises:
        ReadFailure: Only if ``data_dir`` itself cannot be listed.
    """
    streamer = streamer or ClickHouseClient.from_config(config)
    summary = RunSummary(operation="import", database=config.database)

    for path in list_artifacts(data_dir, DATA_EXT):
        try:
            table = table_from_artifact(path, DATA_EXT)
        except ValueError as e:
            logger.error("Skipping %s: %s", path, e)
            summary.record(path.name, "failed", detail=str(e))
            continue
        if tables is not None and table not in tables:
            continue

        try:
            status = import_table_data(config, client, table, path, streamer=streamer)
        except MigrationError as e:
            logger.error("Failed to import data for table %s: %s", table, e)
            summary.record(table, "failed", detail=str(e))
            continue

        summary.record(table, status)

    return summary


def import_database(
    config: RunConfig,
    connector: Connector = connect,
    streamer: RowStreamClient | None = None,
    tables: list[str] | None = None,
) -> RunSummary:
    """Create the target database, replay the schema, then load the data.

    Args:
        config: Run configuration; ``schema_dir``/``data_dir`` hold the dump.
        connector: Opens a connection for ``(profile, database)``;
            ``database=None`` selects no database.
        streamer: Row-streaming client (default: external ``clickhouse``).
        tables: Only import these tables (default: everything in the dump).

    Raises:
        ConnectionFailure: Either connection could not be established.
        QueryFailure: Database creation or a schema file failed.
        ReadFailure: A dump directory or schema file could not be read.
    """
    logger.info("Import configuration: %s", config.describe())

    bootstrap = connector(config.connection, None)
    try:
        ensure_database(bootstrap, config.database)
    finally:
        bootstrap.close()

    client = connector(config.connection, config.database)
    try:
        import_schema(client, config.schema_dir, tables=tables)
        return import_data_dir(
            config, client, config.data_dir, streamer=streamer, tables=tables
        )
    finally:
        client.close()
