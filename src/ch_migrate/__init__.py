"""ch-migrate: dump a ClickHouse database to disk and replay it elsewhere.

Exports each table as a ``<table>.sql`` create statement and a
``<table>.tsv`` data file (read in batches through the ``clickhouse``
client), and imports such a dump into a target server with per-table
failure isolation.

Usage:
    from ch_migrate import resolve_run_config, export_database, import_database

    config = resolve_run_config(profile_name="source")
    summary = export_database(config)
"""

__version__ = "0.1.0"

# Config
from ch_migrate.config.loader import load_config
from ch_migrate.config.models import ConnectionProfile, MigrationConfig, RunConfig

# Factory
from ch_migrate.factory import ProfileNotFoundError, connect, resolve_run_config

# Pipelines
from ch_migrate.dump.exporter import export_database
from ch_migrate.dump.importer import import_database
from ch_migrate.dump.models import RunSummary

# Errors
from ch_migrate.exceptions import (
    ConnectionFailure,
    ExternalProcessFailure,
    MigrationError,
    QueryFailure,
    ReadFailure,
    WriteFailure,
)

__all__ = [
    # Config
    "load_config",
    "ConnectionProfile",
    "MigrationConfig",
    "RunConfig",
    # Factory
    "connect",
    "resolve_run_config",
    "ProfileNotFoundError",
    # Pipelines
    "export_database",
    "import_database",
    "RunSummary",
    # Errors
    "MigrationError",
    "ConnectionFailure",
    "QueryFailure",
    "ReadFailure",
    "WriteFailure",
    "ExternalProcessFailure",
]
