"""CLI for exporting and importing ClickHouse dumps.

Usage:
    ch-migrate --profile source export
    ch-migrate export --host ch-old --database analytics --batch-size 50000
    ch-migrate --profile target import --yes
    ch-migrate --profile source tables
    ch-migrate profiles
    ch-migrate validate --schema-dir schema --data-dir data

Commands:
    export    - Dump schema and data of the configured database
    import    - Restore a dump into the configured database
    tables    - List tables with engine and row count
    profiles  - List profiles from ch-migrate.toml
    validate  - Check a dump directory pair without touching a database
"""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ch_migrate.config.loader import load_config
from ch_migrate.config.models import RunConfig
from ch_migrate.dump.artifacts import validate_dump
from ch_migrate.dump.exporter import describe_tables, export_database
from ch_migrate.dump.importer import import_database
from ch_migrate.dump.models import RunSummary
from ch_migrate.exceptions import MigrationError
from ch_migrate.factory import (
    ProfileNotFoundError,
    connect,
    get_active_profile_name,
    load_dump_settings,
    resolve_run_config,
)

console = Console()

# CLI dest -> RunConfig / ConnectionProfile field
_OVERRIDE_KEYS = (
    "host",
    "port",
    "user",
    "password",
    "database",
    "read_timeout",
    "write_timeout",
    "batch_size",
    "client_path",
    "schema_dir",
    "data_dir",
)

_STATUS_STYLE = {
    "exported": "green",
    "imported": "green",
    "skipped": "yellow",
    "failed": "bold red",
}


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _parse_tables(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [t.strip() for t in value.split(",") if t.strip()]


def _load_run_config(args: argparse.Namespace) -> RunConfig | None:
    """Resolve the run configuration, printing the problem on failure."""
    overrides = {key: getattr(args, key, None) for key in _OVERRIDE_KEYS}
    try:
        return resolve_run_config(
            config_path=args.config,
            profile_name=args.profile,
            overrides=overrides,
        )
    except (FileNotFoundError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
    return None


def _print_summary(summary: RunSummary) -> int:
    table = Table(
        title=f"{summary.operation.capitalize()} of {summary.database}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Table")
    table.add_column("Status")
    table.add_column("Rows", justify="right")
    table.add_column("Detail", style="dim")

    for outcome in summary.tables:
        style = _STATUS_STYLE[outcome.status]
        table.add_row(
            outcome.table,
            f"[{style}]{outcome.status}[/{style}]",
            "" if outcome.rows is None else str(outcome.rows),
            outcome.detail,
        )

    console.print(table)

    if summary.success:
        console.print(f"[bold green]v[/bold green] {summary.operation.capitalize()} complete.")
        return 0

    console.print(
        f"\n[bold red]x[/bold red] {summary.operation.capitalize()} completed with "
        f"{len(summary.failed)} failed table(s)"
    )
    return 1


# ============================================================================
# Commands
# ============================================================================


def cmd_export(args: argparse.Namespace) -> int:
    """Export schema and data of the configured database.

    Returns:
        0 when every table exported, 1 on a fatal error or any failed table.
    """
    config = _load_run_config(args)
    if config is None:
        return 1

    console.print(
        f"Exporting [bold cyan]{config.database}[/bold cyan] "
        f"to {config.schema_dir} and {config.data_dir}",
        style="dim",
    )
    try:
        summary = export_database(config, tables=_parse_tables(args.tables))
    except MigrationError as e:
        console.print(f"[bold red]Export failed:[/bold red] {e}")
        return 1

    return _print_summary(summary)


def cmd_import(args: argparse.Namespace) -> int:
    """Import a dump into the configured database.

    Returns:
        0 when every table imported or was skipped, 1 otherwise.
    """
    config = _load_run_config(args)
    if config is None:
        return 1

    if not args.yes:
        c = config.connection
        console.print(f"This will create and load [bold cyan]{config.database}[/bold cyan] on {c.host}:{c.port}")
        console.print(f"   Schema: {config.schema_dir}")
        console.print(f"   Data:   {config.data_dir}")
        response = input("Continue? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    try:
        summary = import_database(config, tables=_parse_tables(args.tables))
    except MigrationError as e:
        console.print(f"[bold red]Import failed:[/bold red] {e}")
        return 1

    return _print_summary(summary)


def cmd_tables(args: argparse.Namespace) -> int:
    """List tables of the configured database with engine and row count."""
    config = _load_run_config(args)
    if config is None:
        return 1

    try:
        client = connect(config.connection, config.database)
        try:
            infos = describe_tables(client, config.database)
        finally:
            client.close()
    except MigrationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    table = Table(title=f"Tables in {config.database}", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Engine")
    table.add_column("Rows", justify="right")
    for info in infos:
        table.add_row(
            info.name,
            f"[yellow]{info.engine}[/yellow]" if info.is_view else info.engine,
            "-" if info.rows is None else str(info.rows),
        )
    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from the config file.

    Reads only the local TOML config -- no database calls.

    Returns:
        0 on success, 1 if the config file is missing.
    """
    try:
        config = load_config(args.config)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        current = get_active_profile_name(config, args.profile)
    except ProfileNotFoundError:
        current = None

    table = Table(title="Connection Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Server")
    table.add_column("Database")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            f"{profile.host}:{profile.port}",
            profile.database,
            profile.description,
        )

    console.print(table)
    if current:
        console.print("\n[bold green]*[/bold green] = selected profile")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a dump directory pair.

    Returns:
        0 when the dump is valid (warnings allowed), 1 otherwise.
    """
    try:
        settings = load_dump_settings(args.config)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except ValidationError as e:
        console.print(f"[red]Invalid configuration:[/red]\n{e}")
        return 1

    schema_dir = args.schema_dir or settings.schema_dir
    data_dir = args.data_dir or settings.data_dir
    result = validate_dump(schema_dir, data_dir)

    console.print(f"Validating dump: {schema_dir} + {data_dir}")

    if result.errors:
        console.print(f"\n[bold red]x INVALID[/bold red] - Found {len(result.errors)} errors:")
        for error in result.errors:
            console.print(f"   - {error}")

    if result.warnings:
        console.print(f"\n[yellow]Found {len(result.warnings)} warnings:[/yellow]")
        for warning in result.warnings:
            console.print(f"   - {warning}")

    if result.valid:
        console.print(f"\n[bold green]v[/bold green] Dump is valid ({len(result.tables)} tables)")
        return 0
    return 1


# ============================================================================
# Main entry point
# ============================================================================


def _connection_parser() -> argparse.ArgumentParser:
    """Flags that override profile and ``[dump]`` values."""
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("connection overrides")
    group.add_argument("--host", help="ClickHouse host")
    group.add_argument("--port", type=int, help="ClickHouse native port")
    group.add_argument("--user", help="ClickHouse user")
    group.add_argument("--password", help="ClickHouse password")
    group.add_argument("--database", "--dbname", dest="database", help="Database name")
    group.add_argument("--read-timeout", type=int, help="Read timeout in seconds")
    group.add_argument("--write-timeout", type=int, help="Write timeout in seconds")

    dump = parent.add_argument_group("dump settings")
    dump.add_argument("--client-path", help="Path to the clickhouse client executable")
    dump.add_argument("--schema-dir", type=Path, help="Directory of <table>.sql files")
    dump.add_argument("--data-dir", type=Path, help="Directory of <table>.tsv files")
    return parent


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = argparse.ArgumentParser(
        prog="ch-migrate",
        description="Dump a ClickHouse database to disk and replay it elsewhere",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: ./ch-migrate.toml if present)",
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Profile from the config file (default: CH_MIGRATE_PROFILE)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    connection = _connection_parser()

    # export command
    p_export = subparsers.add_parser(
        "export",
        parents=[connection],
        help="Dump schema and data of the configured database",
    )
    p_export.add_argument(
        "--batch-size",
        type=int,
        help="Number of rows to fetch per batch",
    )
    p_export.add_argument(
        "--tables",
        help="Comma-separated list of tables to export (default: all)",
    )
    p_export.set_defaults(func=cmd_export)

    # import command
    p_import = subparsers.add_parser(
        "import",
        parents=[connection],
        help="Restore a dump into the configured database",
    )
    p_import.add_argument(
        "--tables",
        help="Comma-separated list of tables to import (default: all)",
    )
    p_import.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Skip confirmation prompt",
    )
    p_import.set_defaults(func=cmd_import)

    # tables command
    p_tables = subparsers.add_parser(
        "tables",
        parents=[connection],
        help="List tables with engine and row count",
    )
    p_tables.set_defaults(func=cmd_tables)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List profiles from the config file",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # validate command
    p_validate = subparsers.add_parser(
        "validate",
        help="Check a dump directory pair",
    )
    p_validate.add_argument("--schema-dir", type=Path, help="Directory of <table>.sql files")
    p_validate.add_argument("--data-dir", type=Path, help="Directory of <table>.tsv files")
    p_validate.set_defaults(func=cmd_validate)

    args = parser.parse_args()
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
