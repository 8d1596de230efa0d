"""Export a ClickHouse database to schema and data artifacts.

Per table, in discovery order:

1. ``SHOW CREATE TABLE`` is written to ``<schema_dir>/<table>.sql``.
2. Base tables are read in ``LIMIT``/``OFFSET`` windows of ``batch_size``
   rows through the external client and appended to
   ``<data_dir>/<table>.tsv``.  Views only get their schema file.

A table whose schema or data export fails is recorded as failed and the run
moves on to the next table, and a partially written data file is removed.
Failing to list the tables, or to create the output directories, aborts
the run.

Batches carry no ``ORDER BY``: the artifact is the concatenation of the
windows in offset order, and row order across windows relies on the
engine returning a stable scan order within one run.

Usage:
    from ch_migrate.dump.exporter import export_database

    summary = export_database(config)
    print(summary.format_report())
"""

import logging
from pathlib import Path
from typing import Callable, Iterator

from ch_migrate.adapters.base import DatabaseClient, RowStreamClient
from ch_migrate.adapters.clickhouse import qualified_name, quote_identifier
from ch_migrate.adapters.client import ClickHouseClient
from ch_migrate.config.models import RunConfig
from ch_migrate.dump.artifacts import data_artifact, schema_artifact
from ch_migrate.dump.importer import is_view, table_engine
from ch_migrate.dump.models import BatchWindow, RunSummary, TableInfo
from ch_migrate.exceptions import (
    ExternalProcessFailure,
    MigrationError,
    QueryFailure,
    WriteFailure,
)
from ch_migrate.factory import Connector, connect

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, float], None]


# ============================================================================
# Table enumeration and schema
# ============================================================================


def list_tables(client: DatabaseClient, database: str) -> list[str]:
    """Names of all tables and views in ``database``, in discovery order.

    Raises:
        QueryFailure: If the listing cannot be run or read.
    """
    return [str(name) for name in client.fetch_column(f"SHOW TABLES FROM {quote_identifier(database)}")]


def dump_table_schema(
    client: DatabaseClient, database: str, table: str, schema_dir: Path
) -> Path:
    """Write the create statement of ``table`` to ``<schema_dir>/<table>.sql``.

    Returns:
        Path of the written schema artifact.

    Raises:
        QueryFailure: If ``SHOW CREATE TABLE`` fails or returns nothing.
        WriteFailure: If the file cannot be written.
    """
    statement = client.fetch_value(f"SHOW CREATE TABLE {qualified_name(database, table)}")
    if statement is None:
        raise QueryFailure(f"No create statement returned for {database}.{table}")

    path = schema_artifact(schema_dir, table)
    try:
        path.write_text(str(statement))
    except OSError as e:
        raise WriteFailure(f"Failed to write schema file {path}: {e}") from e
    return path


def describe_tables(client: DatabaseClient, database: str) -> list[TableInfo]:
    """List tables with their engine and, for base tables, row count."""
    infos: list[TableInfo] = []
    for name in list_tables(client, database):
        engine = table_engine(client, database, name)
        info = TableInfo(name=name, engine=engine)
        if not info.is_view:
            info.rows = count_rows(client, database, name)
        infos.append(info)
    return infos


# ============================================================================
# Batched data export
# ============================================================================


def count_rows(client: DatabaseClient, database: str, table: str) -> int:
    """Current row count of ``table``.

    Raises:
        QueryFailure: If the count cannot be read.
    """
    value = client.fetch_value(f"SELECT count() FROM {qualified_name(database, table)}")
    if value is None:
        raise QueryFailure(f"No row count returned for {database}.{table}")
    return int(value)


def batch_windows(total_rows: int, batch_size: int) -> Iterator[BatchWindow]:
    """Partition ``[0, total_rows)`` into consecutive windows.

    Every window has ``batch_size`` rows except possibly the last.  Zero rows
    yields no windows.

    Example:
        >>> [(w.offset, w.size) for w in batch_windows(25, 10)]
        [(0, 10), (10, 10), (20, 5)]
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")
    if total_rows < 0:
        raise ValueError(f"total_rows must not be negative, got {total_rows}")

    offset = 0
    while offset < total_rows:
        size = min(batch_size, total_rows - offset)
        yield BatchWindow(offset=offset, size=size)
        offset += size


def progress_percent(rows_requested: int, total_rows: int) -> float:
    """Share of ``total_rows`` requested so far, capped at 100."""
    if total_rows <= 0:
        return 100.0
    return min(100.0, 100.0 * rows_requested / total_rows)


def log_progress(table: str, percent: float) -> None:
    logger.info("Export progress for table %s: %.2f%%", table, percent)


def dump_table_data(
    config: RunConfig,
    client: DatabaseClient,
    table: str,
    data_dir: Path,
    streamer: RowStreamClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> int:
    """Export the rows of ``table`` to ``<data_dir>/<table>.tsv``.

    The artifact is truncated first.  Windows are fetched in increasing
    offset order and appended in that order; a progress observation is
    emitted after each one.  A table with no rows gets an empty artifact
    and no client process.  If a window fails the partial artifact is
    removed, so a failed table leaves a schema file and no data file.

    Args:
        config: Run configuration (database, batch size, client settings).
        client: Connection used for the row count.
        table: Table to export.
        data_dir: Output directory.
        streamer: Row-streaming client (default: the external ``clickhouse``).
        on_progress: Called as ``(table, percent)`` after each window
            (default: log the percentage).

    Returns:
        Row count the export was planned against.

    Raises:
        QueryFailure: Row count could not be read.
        WriteFailure: The artifact could not be created or written.
        ExternalProcessFailure: A batch invocation failed.
    """
    streamer = streamer or ClickHouseClient.from_config(config)
    on_progress = on_progress or log_progress
    source = qualified_name(config.database, table)

    total_rows = count_rows(client, config.database, table)

    path = data_artifact(data_dir, table)
    try:
        output = open(path, "wb")
    except OSError as e:
        raise WriteFailure(f"Failed to create data file {path}: {e}") from e

    try:
        with output:
            for window in batch_windows(total_rows, config.batch_size):
                query = f"SELECT * FROM {source} LIMIT {window.size} OFFSET {window.offset}"
                where = f"table {table}, rows {window.offset}-{window.end}"
                try:
                    streamer.stream_query(query, output)
                except ExternalProcessFailure as e:
                    raise ExternalProcessFailure(
                        f"{where}: {e.args[0]}", returncode=e.returncode, stderr=e.stderr
                    ) from e
                except WriteFailure as e:
                    raise WriteFailure(f"{where}: {e}") from e
                on_progress(table, progress_percent(window.end, total_rows))
    except MigrationError:
        _discard_partial(path)
        raise

    return total_rows


def _discard_partial(path: Path) -> None:
    """Remove an incomplete data artifact so import cannot load it."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove incomplete data file %s: %s", path, e)


# ============================================================================
# Orchestration
# ============================================================================


def _prepare_directories(*directories: Path) -> None:
    for directory in directories:
        try:
            Path(directory).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailure(f"Failed to create directory {directory}: {e}") from e


def export_tables(
    config: RunConfig,
    client: DatabaseClient,
    streamer: RowStreamClient | None = None,
    tables: list[str] | None = None,
    on_progress: ProgressCallback | None = None,
) -> RunSummary:
    """Export every table of ``config.database`` over an open connection.

    Args:
        config: Run configuration.
        client: Open connection to the source database.
        streamer: Row-streaming client (default: external ``clickhouse``).
        tables: Only export these tables (default: all).
        on_progress: Progress observer forwarded to ``dump_table_data``.

    Raises:
        WriteFailure: If an output directory cannot be created.
        QueryFailure: If the table listing fails.
    """
    streamer = streamer or ClickHouseClient.from_config(config)
    database = config.database
    summary = RunSummary(operation="export", database=database)

    _prepare_directories(config.schema_dir, config.data_dir)

    names = list_tables(client, database)
    if tables is not None:
        wanted = set(tables)
        names = [n for n in names if n in wanted]
    logger.info("Exporting %d tables from %s", len(names), database)

    for table in names:
        try:
            dump_table_schema(client, database, table, config.schema_dir)
        except MigrationError as e:
            logger.error("Error dumping schema for table %s: %s", table, e)
            summary.record(table, "failed", detail=f"schema: {e}")
            continue

        try:
            if is_view(client, database, table):
                logger.info("Schema exported for view %s, no data to dump", table)
                summary.record(table, "exported", detail="view (schema only)")
                continue
            rows = dump_table_data(
                config, client, table, config.data_dir,
                streamer=streamer, on_progress=on_progress,
            )
        except MigrationError as e:
            logger.error("Error dumping data for table %s: %s", table, e)
            summary.record(table, "failed", detail=f"data: {e}")
            continue

        logger.info("Exported table %s (%d rows)", table, rows)
        summary.record(table, "exported", rows=rows)

    return summary


def export_database(
    config: RunConfig,
    connector: Connector = connect,
    streamer: RowStreamClient | None = None,
    tables: list[str] | None = None,
    on_progress: ProgressCallback | None = None,
) -> RunSummary:
    """Connect to the source database and export it.

    Raises:
        ConnectionFailure: If the connection cannot be established.
        WriteFailure: If an output directory cannot be created.
        QueryFailure: If the table listing fails.
    """
    logger.info("Export configuration: %s", config.describe())
    client = connector(config.connection, config.database)
    try:
        return export_tables(
            config, client, streamer=streamer, tables=tables, on_progress=on_progress
        )
    finally:
        client.close()
