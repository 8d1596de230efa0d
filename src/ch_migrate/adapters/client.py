"""External ``clickhouse`` client wrapper.

``ClickHouseClient`` implements ``RowStreamClient`` by spawning the client
executable once per call: ``SELECT ... FORMAT TSV`` with the data file as
stdout for export, and ``INSERT INTO ... FORMAT TSV`` with the data file as
stdin for import.  stderr is always captured so a failing call carries
the client's own diagnostic.
"""

import logging
import subprocess
from pathlib import Path
from typing import IO

from ch_migrate.config.models import ConnectionProfile, RunConfig
from ch_migrate.exceptions import ExternalProcessFailure, WriteFailure

logger = logging.getLogger(__name__)

TSV_FORMAT = "TSV"

# Standalone binaries that do not take the ``client`` sub-command.
_STANDALONE_CLIENTS = {"clickhouse-client"}


class ClickHouseClient:
    """Runs queries and inserts through the ``clickhouse`` executable.

    Args:
        profile: Connection parameters passed on the command line.
        client_path: Executable name or path (resolved via ``PATH``).
    """

    def __init__(self, profile: ConnectionProfile, client_path: str = "clickhouse") -> None:
        self._profile = profile
        self._client_path = client_path

    @classmethod
    def from_config(cls, config: RunConfig) -> "ClickHouseClient":
        return cls(config.connection, client_path=config.client_path)

    def base_command(self) -> list[str]:
        """Executable plus connection and timeout arguments."""
        p = self._profile
        command = [self._client_path]
        if Path(self._client_path).name not in _STANDALONE_CLIENTS:
            command.append("client")
        command += [
            "--host", p.host,
            "--port", str(p.port),
            "--user", p.user,
            "--password", p.password.get_secret_value(),
            f"--receive_timeout={p.read_timeout}",
            f"--send_timeout={p.write_timeout}",
        ]
        return command

    def query_command(self, query: str) -> list[str]:
        return self.base_command() + ["--query", query, "--format", TSV_FORMAT]

    def insert_command(self, table_ref: str) -> list[str]:
        return self.base_command() + [
            "--query", f"INSERT INTO {table_ref} FORMAT {TSV_FORMAT}",
        ]

    def stream_query(self, query: str, output: IO[bytes]) -> None:
        """Run ``query`` with its stdout attached to ``output``.

        ``output`` must be a real file: the client writes rows straight to
        its descriptor, so no batch is held in memory.

        Raises:
            ExternalProcessFailure: Spawn error or non-zero exit.
            WriteFailure: Buffered output could not be flushed first.
        """
        try:
            output.flush()
        except OSError as e:
            raise WriteFailure(f"Failed to write client output: {e}") from e
        self._run(self.query_command(query), stdout=output)

    def insert_from(self, table_ref: str, source: IO[bytes]) -> None:
        """Insert TSV rows from ``source`` into ``table_ref``.

        Raises:
            ExternalProcessFailure: Spawn error or non-zero exit.
        """
        self._run(self.insert_command(table_ref), stdin=source)

    def _run(self, command: list[str], stdin=None, stdout=None) -> subprocess.CompletedProcess:
        logger.debug("Running %s", " ".join(_redacted(command)))
        try:
            completed = subprocess.run(
                command,
                stdin=stdin,
                stdout=stdout,
                stderr=subprocess.PIPE,
                check=False,
            )
        except OSError as e:
            raise ExternalProcessFailure(
                f"Failed to execute {self._client_path}: {e}"
            ) from e

        stderr = (completed.stderr or b"").decode("utf-8", errors="replace")
        if completed.returncode != 0:
            raise ExternalProcessFailure(
                f"{self._client_path} exited with status {completed.returncode}",
                returncode=completed.returncode,
                stderr=stderr,
            )
        if stderr.strip():
            logger.warning("%s: %s", self._client_path, stderr.strip())
        return completed


def _redacted(command: list[str]) -> list[str]:
    """Copy of ``command`` with the ``--password`` value masked."""
    masked = list(command)
    for i, arg in enumerate(masked[:-1]):
        if arg == "--password":
            masked[i + 1] = "***"
    return masked
