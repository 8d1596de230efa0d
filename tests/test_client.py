"""Tests for the external clickhouse client wrapper."""

import io
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from ch_migrate.adapters.client import ClickHouseClient, _redacted
from ch_migrate.config.models import ConnectionProfile
from ch_migrate.exceptions import ExternalProcessFailure, WriteFailure


@pytest.fixture
def profile():
    return ConnectionProfile(
        host="ch.example.com",
        port=9000,
        user="migrator",
        password="s3cret",
        database="analytics",
        read_timeout=45,
        write_timeout=15,
    )


def _completed(returncode=0, stdout=b"", stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestCommands:
    def test_base_command(self, profile):
        command = ClickHouseClient(profile).base_command()
        assert command == [
            "clickhouse", "client",
            "--host", "ch.example.com",
            "--port", "9000",
            "--user", "migrator",
            "--password", "s3cret",
            "--receive_timeout=45",
            "--send_timeout=15",
        ]

    def test_standalone_client_has_no_subcommand(self, profile):
        command = ClickHouseClient(profile, client_path="/usr/bin/clickhouse-client").base_command()
        assert command[:2] == ["/usr/bin/clickhouse-client", "--host"]

    def test_query_command(self, profile):
        command = ClickHouseClient(profile).query_command("SELECT 1")
        assert command[-4:] == ["--query", "SELECT 1", "--format", "TSV"]

    def test_insert_command(self, profile):
        command = ClickHouseClient(profile).insert_command("`analytics`.`events`")
        assert command[-2:] == ["--query", "INSERT INTO `analytics`.`events` FORMAT TSV"]

    def test_redacted(self, profile):
        masked = _redacted(ClickHouseClient(profile).base_command())
        assert "s3cret" not in masked
        assert masked[masked.index("--password") + 1] == "***"


class TestStreamQuery:
    def test_stdout_is_the_output_file(self, profile, tmp_path):
        path = tmp_path / "events.tsv"
        seen_on_disk = []

        def _fake_run(command, **kwargs):
            seen_on_disk.append(path.read_bytes())
            kwargs["stdout"].write(b"1\tsecond\n")
            return _completed()

        with open(path, "wb") as output:
            output.write(b"0\tfirst\n")
            with patch("subprocess.run", side_effect=_fake_run) as run:
                ClickHouseClient(profile).stream_query("SELECT * FROM t", output)

        assert seen_on_disk == [b"0\tfirst\n"]
        assert path.read_bytes() == b"0\tfirst\n1\tsecond\n"
        kwargs = run.call_args.kwargs
        assert kwargs["stdout"] is output
        assert kwargs["stderr"] == subprocess.PIPE

    def test_nonzero_exit_keeps_diagnostics(self, profile):
        failing = _completed(returncode=60, stderr=b"Code: 60. Table missing\n")
        with patch("subprocess.run", return_value=failing):
            with pytest.raises(ExternalProcessFailure) as excinfo:
                ClickHouseClient(profile).stream_query("SELECT * FROM t", io.BytesIO())

        assert excinfo.value.returncode == 60
        assert "Table missing" in excinfo.value.stderr
        assert "Table missing" in str(excinfo.value)

    def test_stderr_on_success_is_logged(self, profile, caplog):
        completed = _completed(stdout=b"1\n", stderr=b"Warning: deprecated setting\n")
        with patch("subprocess.run", return_value=completed):
            with caplog.at_level("WARNING", logger="ch_migrate.adapters.client"):
                ClickHouseClient(profile).stream_query("SELECT 1", io.BytesIO())

        assert "deprecated setting" in caplog.text

    def test_spawn_error(self, profile):
        with patch("subprocess.run", side_effect=FileNotFoundError("no such file")):
            with pytest.raises(ExternalProcessFailure, match="Failed to execute") as excinfo:
                ClickHouseClient(profile, client_path="missing-ch").stream_query("SELECT 1", io.BytesIO())
        assert excinfo.value.returncode is None

    def test_write_error(self, profile):
        output = MagicMock()
        output.flush.side_effect = OSError("disk full")
        with patch("subprocess.run", return_value=_completed()) as run:
            with pytest.raises(WriteFailure, match="disk full"):
                ClickHouseClient(profile).stream_query("SELECT 1", output)
        run.assert_not_called()


class TestInsertFrom:
    def test_file_is_stdin(self, profile, tmp_path):
        path = tmp_path / "events.tsv"
        path.write_bytes(b"1\ta\n")
        with patch("subprocess.run", return_value=_completed()) as run:
            with open(path, "rb") as source:
                ClickHouseClient(profile).insert_from("`analytics`.`events`", source)
                assert run.call_args.kwargs["stdin"] is source

        command = run.call_args.args[0]
        assert command[-1] == "INSERT INTO `analytics`.`events` FORMAT TSV"

    def test_failure(self, profile):
        failing = _completed(returncode=27, stderr=b"Code: 27. Cannot parse input")
        with patch("subprocess.run", return_value=failing):
            with pytest.raises(ExternalProcessFailure, match="Cannot parse input"):
                ClickHouseClient(profile).insert_from("`a`.`b`", io.BytesIO(b"x"))
