"""Tests for the export pipeline: enumeration, schema dump, batching,
progress accounting, and per-table failure isolation."""

import math
from unittest.mock import MagicMock

import pytest

from conftest import RecordingStreamer, make_client

from ch_migrate.dump.exporter import (
    batch_windows,
    count_rows,
    describe_tables,
    dump_table_data,
    dump_table_schema,
    export_database,
    export_tables,
    list_tables,
    progress_percent,
)
from ch_migrate.exceptions import (
    ConnectionFailure,
    ExternalProcessFailure,
    QueryFailure,
    WriteFailure,
)


# ------------------------------------------------------------------
# Batch windows
# ------------------------------------------------------------------


class TestBatchWindows:
    """Windows cover [0, rows) exactly, in order, without overlap."""

    @pytest.mark.parametrize(
        "rows,size",
        [(0, 1), (0, 10), (1, 1), (5, 10), (10, 10), (25, 10), (30, 10), (10001, 10000)],
    )
    def test_windows_cover_rows_exactly(self, rows, size):
        windows = list(batch_windows(rows, size))

        assert len(windows) == math.ceil(rows / size)
        expected_offset = 0
        for window in windows:
            assert window.offset == expected_offset
            expected_offset = window.end
        assert expected_offset == rows

        if windows:
            assert all(w.size == size for w in windows[:-1])
            assert windows[-1].size == (rows % size or size)

    def test_twenty_five_rows_batch_ten(self):
        windows = [(w.offset, w.size) for w in batch_windows(25, 10)]
        assert windows == [(0, 10), (10, 10), (20, 5)]

    def test_zero_rows_yields_nothing(self):
        assert list(batch_windows(0, 10000)) == []

    def test_invalid_batch_size_raises(self):
        with pytest.raises(ValueError, match="batch_size"):
            list(batch_windows(10, 0))

    def test_negative_rows_raises(self):
        with pytest.raises(ValueError, match="total_rows"):
            list(batch_windows(-1, 10))


class TestProgressPercent:
    def test_capped_at_one_hundred(self):
        assert progress_percent(30, 25) == 100.0

    def test_partial(self):
        assert progress_percent(10, 40) == 25.0

    def test_monotonic_over_windows(self):
        percents = [progress_percent(w.end, 95) for w in batch_windows(95, 10)]
        assert percents == sorted(percents)
        assert percents[-1] == 100.0
        assert all(p <= 100.0 for p in percents)


# ------------------------------------------------------------------
# Enumeration and schema
# ------------------------------------------------------------------


class TestListTables:
    def test_returns_names_in_discovery_order(self):
        client = make_client({"zeta": 1, "alpha": 2}, views=("beta_view",))
        assert list_tables(client, "analytics") == ["zeta", "alpha", "beta_view"]
        client.fetch_column.assert_called_once_with("SHOW TABLES FROM `analytics`")

    def test_query_failure_propagates(self):
        client = MagicMock()
        client.fetch_column.side_effect = QueryFailure("Code: 81. Database missing")
        with pytest.raises(QueryFailure):
            list_tables(client, "missing")


class TestDumpTableSchema:
    def test_writes_statement_verbatim(self, tmp_path):
        client = make_client({"events": 3})
        path = dump_table_schema(client, "analytics", "events", tmp_path)

        assert path == tmp_path / "events.sql"
        assert path.read_text() == (
            "CREATE TABLE analytics.events\n(`id` UInt64)\nENGINE = MergeTree"
        )
        client.fetch_value.assert_called_once_with("SHOW CREATE TABLE `analytics`.`events`")

    def test_truncates_existing_file(self, tmp_path):
        (tmp_path / "events.sql").write_text("x" * 1000)
        dump_table_schema(make_client({"events": 3}), "analytics", "events", tmp_path)
        assert not (tmp_path / "events.sql").read_text().startswith("xxx")

    def test_empty_result_is_query_failure(self, tmp_path):
        client = MagicMock()
        client.fetch_value.return_value = None
        with pytest.raises(QueryFailure, match="No create statement"):
            dump_table_schema(client, "analytics", "events", tmp_path)

    def test_unwritable_directory_is_write_failure(self, tmp_path):
        with pytest.raises(WriteFailure):
            dump_table_schema(
                make_client({"events": 3}), "analytics", "events", tmp_path / "missing"
            )


# ------------------------------------------------------------------
# Data dump
# ------------------------------------------------------------------


class TestDumpTableData:
    def test_batches_and_appends_in_order(self, run_config, tmp_path):
        client = make_client({"events": 25})
        streamer = RecordingStreamer()

        rows = dump_table_data(run_config, client, "events", tmp_path, streamer=streamer)

        assert rows == 25
        assert streamer.queries == [
            "SELECT * FROM `analytics`.`events` LIMIT 10 OFFSET 0",
            "SELECT * FROM `analytics`.`events` LIMIT 10 OFFSET 10",
            "SELECT * FROM `analytics`.`events` LIMIT 5 OFFSET 20",
        ]
        lines = (tmp_path / "events.tsv").read_text().splitlines()
        assert lines == [f"{i}\trow-{i}" for i in range(25)]

    def test_progress_after_each_window(self, run_config, tmp_path):
        observed = []
        dump_table_data(
            run_config,
            make_client({"events": 25}),
            "events",
            tmp_path,
            streamer=RecordingStreamer(),
            on_progress=lambda table, pct: observed.append((table, pct)),
        )
        assert observed == [("events", 40.0), ("events", 80.0), ("events", 100.0)]

    def test_zero_rows_writes_empty_file_without_client(self, run_config, tmp_path):
        (tmp_path / "empty.tsv").write_text("stale data\n")
        streamer = RecordingStreamer()
        progress = MagicMock()

        rows = dump_table_data(
            run_config, make_client({"empty": 0}), "empty", tmp_path,
            streamer=streamer, on_progress=progress,
        )

        assert rows == 0
        assert (tmp_path / "empty.tsv").stat().st_size == 0
        assert streamer.queries == []
        progress.assert_not_called()

    def test_window_failure_aborts_with_table_name(self, run_config, tmp_path):
        streamer = RecordingStreamer(fail_queries_for=("events",))

        with pytest.raises(ExternalProcessFailure, match="table events, rows 0-10") as excinfo:
            dump_table_data(run_config, make_client({"events": 25}), "events", tmp_path, streamer=streamer)

        assert excinfo.value.returncode == 60
        assert excinfo.value.stderr == "Code: 60"
        assert len(streamer.queries) == 1

    def test_failed_window_removes_partial_file(self, run_config, tmp_path):
        class FailsOnSecondWindow(RecordingStreamer):
            def stream_query(self, query, output):
                if "OFFSET 10" in query:
                    self.queries.append(query)
                    raise ExternalProcessFailure("clickhouse exited with status 209", returncode=209)
                super().stream_query(query, output)

        streamer = FailsOnSecondWindow()
        with pytest.raises(ExternalProcessFailure, match="rows 10-20"):
            dump_table_data(run_config, make_client({"events": 25}), "events", tmp_path, streamer=streamer)

        assert len(streamer.queries) == 2
        assert not (tmp_path / "events.tsv").exists()

    def test_count_failure_is_query_failure(self, run_config, tmp_path):
        client = MagicMock()
        client.fetch_value.side_effect = QueryFailure("Code: 60. Unknown table")
        with pytest.raises(QueryFailure):
            dump_table_data(run_config, client, "ghost", tmp_path, streamer=RecordingStreamer())
        assert not (tmp_path / "ghost.tsv").exists()

    def test_count_rows_casts_to_int(self):
        client = MagicMock()
        client.fetch_value.return_value = "42"
        assert count_rows(client, "analytics", "events") == 42


# ------------------------------------------------------------------
# Orchestration
# ------------------------------------------------------------------


class TestExportTables:
    def test_exports_every_table(self, run_config):
        client = make_client({"events": 25, "users": 3})
        summary = export_tables(run_config, client, streamer=RecordingStreamer())

        assert summary.success
        assert [(t.table, t.status, t.rows) for t in summary.tables] == [
            ("events", "exported", 25),
            ("users", "exported", 3),
        ]
        assert (run_config.schema_dir / "events.sql").exists()
        assert (run_config.data_dir / "users.tsv").read_text().count("\n") == 3

    def test_creates_missing_directories(self, run_config):
        assert not run_config.schema_dir.exists()
        export_tables(run_config, make_client({}), streamer=RecordingStreamer())
        assert run_config.schema_dir.is_dir()
        assert run_config.data_dir.is_dir()

    def test_view_gets_schema_but_no_data(self, run_config):
        streamer = RecordingStreamer()
        summary = export_tables(
            run_config, make_client({"events": 5}, views=("daily",)), streamer=streamer
        )

        assert (run_config.schema_dir / "daily.sql").exists()
        assert not (run_config.data_dir / "daily.tsv").exists()
        assert all("daily" not in q for q in streamer.queries)
        assert summary.tables[-1].detail == "view (schema only)"

    def test_data_failure_does_not_stop_run(self, run_config):
        client = make_client({"broken": 25, "users": 3})
        summary = export_tables(
            run_config, client, streamer=RecordingStreamer(fail_queries_for=("broken",))
        )

        assert [t.status for t in summary.tables] == ["failed", "exported"]
        assert "broken" in summary.failed[0].detail
        assert (run_config.data_dir / "users.tsv").exists()

    def test_failed_table_leaves_schema_without_data(self, run_config):
        client = make_client({"broken": 25, "users": 3})
        export_tables(run_config, client, streamer=RecordingStreamer(fail_queries_for=("broken",)))

        assert (run_config.schema_dir / "broken.sql").exists()
        assert not (run_config.data_dir / "broken.tsv").exists()

    def test_schema_failure_skips_table_data(self, run_config):
        streamer = RecordingStreamer()
        summary = export_tables(
            run_config,
            make_client({"gone": 4, "users": 3}, failing_schema=("gone",)),
            streamer=streamer,
        )

        assert summary.failed[0].table == "gone"
        assert summary.failed[0].detail.startswith("schema:")
        assert all("`gone`" not in q for q in streamer.queries)

    def test_listing_failure_is_fatal(self, run_config):
        client = MagicMock()
        client.fetch_column.side_effect = QueryFailure("Code: 81")
        with pytest.raises(QueryFailure):
            export_tables(run_config, client, streamer=RecordingStreamer())

    def test_table_filter(self, run_config):
        summary = export_tables(
            run_config,
            make_client({"events": 1, "users": 1, "orders": 1}),
            streamer=RecordingStreamer(),
            tables=["users"],
        )
        assert [t.table for t in summary.tables] == ["users"]


class TestExportDatabase:
    def test_connects_to_database_and_closes(self, run_config):
        client = make_client({"events": 2})
        connector = MagicMock(return_value=client)

        summary = export_database(run_config, connector=connector, streamer=RecordingStreamer())

        connector.assert_called_once_with(run_config.connection, "analytics")
        client.close.assert_called_once()
        assert summary.success

    def test_connection_failure_propagates(self, run_config):
        connector = MagicMock(side_effect=ConnectionFailure("refused"))
        with pytest.raises(ConnectionFailure):
            export_database(run_config, connector=connector, streamer=RecordingStreamer())


class TestDescribeTables:
    def test_views_have_no_row_count(self):
        infos = describe_tables(make_client({"events": 7}, views=("daily",)), "analytics")
        assert [(i.name, i.engine, i.rows) for i in infos] == [
            ("events", "MergeTree", 7),
            ("daily", "View", None),
        ]
