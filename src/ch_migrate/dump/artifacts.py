"""On-disk layout of a dump.

Each table has two artifacts named after it: ``<schema_dir>/<table>.sql``
holding its create statement and ``<data_dir>/<table>.tsv`` holding its
rows.  The table name is recovered from the file name, so no catalog file
is needed.
"""

from pathlib import Path

from pydantic import BaseModel, Field

from ch_migrate.exceptions import ReadFailure

SCHEMA_EXT = ".sql"
DATA_EXT = ".tsv"


def schema_artifact(schema_dir: Path, table: str) -> Path:
    return Path(schema_dir) / f"{table}{SCHEMA_EXT}"


def data_artifact(data_dir: Path, table: str) -> Path:
    return Path(data_dir) / f"{table}{DATA_EXT}"


def table_from_artifact(path: Path, extension: str) -> str:
    """Recover the table name from an artifact file name.

    Args:
        path: Artifact path, e.g. ``data/events.tsv``.
        extension: Expected extension including the dot.

    Returns:
        The file name with ``extension`` removed.

    Raises:
        ValueError: If the extension does not match or the name is empty.

    Example:
        >>> table_from_artifact(Path("data/events.tsv"), ".tsv")
        'events'
    """
    name = Path(path).name
    if not name.endswith(extension):
        raise ValueError(f"{name} does not have the {extension} extension")
    table = name[: -len(extension)]
    if not table:
        raise ValueError(f"Cannot derive a table name from {name}")
    return table


def list_artifacts(directory: Path, extension: str) -> list[Path]:
    """Entries in ``directory`` with ``extension``, sorted by file name.

    Anything that is not a directory is listed, including entries whose
    target is missing, so the caller's read or stat reports the problem.

    Raises:
        ReadFailure: If the directory cannot be listed.
    """
    directory = Path(directory)
    try:
        entries = list(directory.iterdir())
    except OSError as e:
        raise ReadFailure(f"Failed to read directory {directory}: {e}") from e
    return sorted(
        (p for p in entries if p.suffix == extension and not p.is_dir()),
        key=lambda p: p.name,
    )


class DumpValidation(BaseModel):
    """Result of ``validate_dump``."""

    valid: bool
    tables: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


def validate_dump(schema_dir: Path, data_dir: Path) -> DumpValidation:
    """Check that a schema/data directory pair looks importable.

    Local file checks only, no database I/O.

    - Missing directories are errors.
    - A data artifact with no schema artifact is an error (nothing would
      create its table).
    - A schema artifact with no data artifact is a warning (views, or a
      table whose data export failed).
    - An empty data artifact is a warning (it will be skipped on import).
    - A data artifact that cannot be stat'ed (e.g. a dangling link) is an
      error.
    """
    errors: list[str] = []
    warnings: list[str] = []

    for label, directory in (("Schema", schema_dir), ("Data", data_dir)):
        if not Path(directory).is_dir():
            errors.append(f"{label} directory not found: {directory}")
    if errors:
        return DumpValidation(valid=False, errors=errors)

    schema_tables = {
        table_from_artifact(p, SCHEMA_EXT) for p in list_artifacts(schema_dir, SCHEMA_EXT)
    }
    data_files = {
        table_from_artifact(p, DATA_EXT): p for p in list_artifacts(data_dir, DATA_EXT)
    }

    for table in sorted(data_files):
        if table not in schema_tables:
            errors.append(f"Data for {table} has no schema file")
        else:
            try:
                size = data_files[table].stat().st_size
            except OSError as e:
                errors.append(f"Data file for {table} cannot be read: {e}")
                continue
            if size == 0:
                warnings.append(f"Data file for {table} is empty")

    for table in sorted(schema_tables - data_files.keys()):
        warnings.append(f"Schema for {table} has no data file")

    return DumpValidation(
        valid=not errors,
        tables=sorted(schema_tables | data_files.keys()),
        errors=errors,
        warnings=warnings,
    )
