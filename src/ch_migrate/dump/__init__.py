"""Export and import of ClickHouse dumps.

Usage:
    from ch_migrate.dump import export_database, import_database, validate_dump
"""

from ch_migrate.dump.artifacts import validate_dump
from ch_migrate.dump.exporter import (
    batch_windows,
    dump_table_data,
    dump_table_schema,
    export_database,
    list_tables,
)
from ch_migrate.dump.importer import (
    ensure_database,
    import_data_dir,
    import_database,
    import_schema,
    is_view,
)
from ch_migrate.dump.models import BatchWindow, RunSummary, TableOutcome

__all__ = [
    "BatchWindow",
    "RunSummary",
    "TableOutcome",
    "batch_windows",
    "dump_table_data",
    "dump_table_schema",
    "ensure_database",
    "export_database",
    "import_data_dir",
    "import_database",
    "import_schema",
    "is_view",
    "list_tables",
    "validate_dump",
]
