"""Error taxonomy shared by the export and import pipelines.

Connection and schema-phase errors are fatal to a run.  Everything raised
while processing a single table's data is caught by the orchestrators and
recorded against that table only.
"""


class MigrationError(Exception):
    """Base class for all ch-migrate errors."""

    pass


class ConnectionFailure(MigrationError):
    """Raised when a connection cannot be created or fails its ping."""

    pass


class QueryFailure(MigrationError):
    """Raised when a SQL statement fails or its result cannot be read."""

    pass


class WriteFailure(MigrationError):
    """Raised when an artifact file or directory cannot be written."""

    pass


class ReadFailure(MigrationError):
    """Raised when an artifact file or directory cannot be read."""

    pass


class ExternalProcessFailure(MigrationError):
    """Raised when the external client cannot be spawned or exits non-zero.

    Attributes:
        returncode: Process exit status, ``None`` if the process never started.
        stderr: Diagnostic output captured from the process.
    """

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self) -> str:
        message = super().__str__()
        if self.stderr:
            return f"{message}: {self.stderr.strip()}"
        return message
