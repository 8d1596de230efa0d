"""TOML loader for ch-migrate.toml."""

import tomllib
from pathlib import Path

from ch_migrate.config.models import ConnectionProfile, DumpSettings, MigrationConfig

DEFAULT_CONFIG_NAME = "ch-migrate.toml"


def load_config(config_path: Path | None = None) -> MigrationConfig:
    """Load migration configuration from a TOML file.

    Args:
        config_path: Path to the config file (default: ./ch-migrate.toml)

    Returns:
        MigrationConfig with all profiles and dump settings

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If a profile or the dump table is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / DEFAULT_CONFIG_NAME

    if not config_path.exists():
        raise FileNotFoundError(
            f"Migration config not found: {config_path}\n"
            f"Create it with [profiles.<name>] tables or pass connection flags."
        )

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = ConnectionProfile(**profile_data)

    return MigrationConfig(
        profiles=profiles,
        dump=DumpSettings(**data.get("dump", {})),
    )
