"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from ch_migrate.config import load_config, ConnectionProfile, RunConfig
"""

from ch_migrate.config.loader import load_config
from ch_migrate.config.models import (
    ConnectionProfile,
    DumpSettings,
    MigrationConfig,
    RunConfig,
)

__all__ = [
    "load_config",
    "ConnectionProfile",
    "DumpSettings",
    "MigrationConfig",
    "RunConfig",
]
