"""Shared fakes for pipeline tests: a scripted DatabaseClient and a
recording RowStreamClient.  No live ClickHouse server is needed."""

import re
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from ch_migrate.config.models import ConnectionProfile, RunConfig
from ch_migrate.exceptions import ExternalProcessFailure, QueryFailure

_QUALIFIED = re.compile(r"`([^`]*)`\.`([^`]*)`")
_WINDOW = re.compile(r"LIMIT (\d+) OFFSET (\d+)")


def _table_of(sql: str) -> str:
    match = _QUALIFIED.search(sql)
    assert match, f"no qualified table in {sql!r}"
    return match.group(2)


def make_client(
    tables: dict[str, int] | None = None,
    views: tuple[str, ...] = (),
    failing_schema: tuple[str, ...] = (),
) -> MagicMock:
    """MagicMock ``DatabaseClient`` answering the pipeline's queries.

    Args:
        tables: Base table name -> row count, in discovery order.
        views: View names (listed after the base tables).
        failing_schema: Tables whose ``SHOW CREATE TABLE`` raises QueryFailure.
    """
    tables = dict(tables or {})
    names = list(tables) + list(views)

    def _fetch_value(sql, params=None):
        if sql.startswith("SHOW CREATE TABLE"):
            table = _table_of(sql)
            if table in failing_schema:
                raise QueryFailure(f"Code: 390. Table {table} does not exist")
            kind = "VIEW" if table in views else "TABLE"
            return f"CREATE {kind} analytics.{table}\n(`id` UInt64)\nENGINE = MergeTree"
        if sql.startswith("SELECT count()"):
            return tables[_table_of(sql)]
        if "system.tables" in sql:
            table = params["table"]
            if table in views:
                return "View"
            if table in tables:
                return "MergeTree"
            return None
        if sql == "SELECT 1":
            return 1
        raise AssertionError(f"unexpected query {sql!r}")

    client = MagicMock()
    client.fetch_column.return_value = names
    client.fetch_value.side_effect = _fetch_value
    return client


class RecordingStreamer:
    """``RowStreamClient`` that fabricates TSV rows and records every call."""

    def __init__(self, fail_queries_for=(), fail_inserts_for=()):
        self.queries: list[str] = []
        self.inserts: list[tuple[str, bytes]] = []
        self._fail_queries_for = set(fail_queries_for)
        self._fail_inserts_for = set(fail_inserts_for)

    def stream_query(self, query, output):
        self.queries.append(query)
        if _table_of(query) in self._fail_queries_for:
            raise ExternalProcessFailure(
                "clickhouse exited with status 60", returncode=60, stderr="Code: 60"
            )
        limit, offset = map(int, _WINDOW.search(query).groups())
        for i in range(offset, offset + limit):
            output.write(f"{i}\trow-{i}\n".encode())

    def insert_from(self, table_ref, source):
        payload = source.read()
        self.inserts.append((table_ref, payload))
        if _table_of(table_ref) in self._fail_inserts_for:
            raise ExternalProcessFailure(
                "clickhouse exited with status 27",
                returncode=27,
                stderr="Code: 27. Cannot parse input",
            )


@pytest.fixture
def run_config(tmp_path: Path) -> RunConfig:
    return RunConfig(
        connection=ConnectionProfile(
            host="ch.example.com",
            port=9000,
            user="migrator",
            password="s3cret",
            database="analytics",
        ),
        batch_size=10,
        client_path="clickhouse",
        schema_dir=tmp_path / "schema",
        data_dir=tmp_path / "data",
    )
