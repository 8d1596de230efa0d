"""Connection provisioning and run-configuration resolution.

A run's configuration comes from an optional ch-migrate.toml profile with
CLI overrides layered on top.  Profile selection order:

1. Explicit ``profile_name`` argument (``--profile``)
2. ``CH_MIGRATE_PROFILE`` env var
3. The only profile, when the config file defines exactly one
"""

import logging
import os
from pathlib import Path
from typing import Any, Callable

from sqlalchemy.engine import URL

from ch_migrate.adapters.base import DatabaseClient
from ch_migrate.adapters.clickhouse import ClickHouseAdapter
from ch_migrate.config.loader import DEFAULT_CONFIG_NAME, load_config
from ch_migrate.config.models import (
    ConnectionProfile,
    DumpSettings,
    MigrationConfig,
    RunConfig,
)
from ch_migrate.exceptions import ConnectionFailure

logger = logging.getLogger(__name__)

PROFILE_ENV_VAR = "CH_MIGRATE_PROFILE"
CONNECT_TIMEOUT = 10  # seconds

_CONNECTION_FIELDS = set(ConnectionProfile.model_fields)

# (profile, database) -> connected client; database None means "no database selected"
Connector = Callable[[ConnectionProfile, str | None], DatabaseClient]


class ProfileNotFoundError(Exception):
    """Raised when no usable connection profile is configured."""

    pass


# ============================================================================
# Profile resolution
# ============================================================================


def get_active_profile_name(
    config: MigrationConfig, profile_name: str | None = None
) -> str | None:
    """Pick the profile to use from ``config``.

    Returns:
        Profile name, or None when the config defines no profiles at all.

    Raises:
        ProfileNotFoundError: If the named profile does not exist, or several
            profiles exist and none was chosen.
    """
    name = profile_name or os.environ.get(PROFILE_ENV_VAR)

    if name is None:
        if not config.profiles:
            return None
        if len(config.profiles) == 1:
            return next(iter(config.profiles))
        raise ProfileNotFoundError(
            "Several profiles configured; choose one with --profile or "
            f"{PROFILE_ENV_VAR}.\n"
            f"Available profiles: {', '.join(config.profiles)}"
        )

    if name not in config.profiles:
        available = ", ".join(config.profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found. Available: {available}"
        )
    return name


def _find_config(config_path: Path | None) -> MigrationConfig | None:
    """Load the explicit config file, else ./ch-migrate.toml when present."""
    if config_path is not None:
        return load_config(config_path)
    if (Path.cwd() / DEFAULT_CONFIG_NAME).exists():
        return load_config()
    return None


def load_dump_settings(config_path: Path | None = None) -> DumpSettings:
    """The ``[dump]`` table of the config file, or the defaults without one.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
    """
    config = _find_config(config_path)
    return config.dump if config is not None else DumpSettings()


def resolve_run_config(
    config_path: Path | None = None,
    profile_name: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> RunConfig:
    """Build the immutable ``RunConfig`` for one invocation.

    The config file is optional when no path is given: a missing
    ./ch-migrate.toml just means every value comes from ``overrides``.

    Args:
        config_path: Explicit config file (must exist when given).
        profile_name: Profile to use from the config file.
        overrides: Values from the command line; ``None`` entries are ignored.
            Connection keys (``host``, ``database``, ...) override the profile,
            the rest override the ``[dump]`` table.

    Raises:
        FileNotFoundError: If an explicit ``config_path`` does not exist.
        ProfileNotFoundError: If profile selection fails.
        pydantic.ValidationError: If the merged values are invalid
            (e.g. no database, batch size below 1).
    """
    config = _find_config(config_path)
    if config is None:
        if profile_name:
            raise ProfileNotFoundError(
                f"Profile '{profile_name}' requested but no {DEFAULT_CONFIG_NAME} found"
            )
        config = MigrationConfig()

    name = get_active_profile_name(config, profile_name)

    connection: dict[str, Any] = {}
    if name is not None:
        connection = config.profiles[name].model_dump()
    run: dict[str, Any] = config.dump.model_dump()

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key in _CONNECTION_FIELDS:
            connection[key] = value
        else:
            run[key] = value

    return RunConfig(connection=ConnectionProfile(**connection), **run)


# ============================================================================
# Connection
# ============================================================================


def build_url(profile: ConnectionProfile, database: str | None = None) -> URL:
    """Build the ``clickhouse+native`` URL for ``profile``.

    Args:
        profile: Connection parameters.
        database: Database to select; None connects without one (server default).
    """
    return URL.create(
        "clickhouse+native",
        username=profile.user,
        password=profile.password.get_secret_value() or None,
        host=profile.host,
        port=profile.port,
        database=database or None,
        query={
            "connect_timeout": str(CONNECT_TIMEOUT),
            "send_receive_timeout": str(max(profile.read_timeout, profile.write_timeout)),
        },
    )


def connect(profile: ConnectionProfile, database: str | None = None) -> DatabaseClient:
    """Open a connection and verify it with a ping.

    Raises:
        ConnectionFailure: If the adapter cannot be created or the ping fails.
    """
    target = database or "(no database)"
    try:
        adapter = ClickHouseAdapter(build_url(profile, database))
    except Exception as e:
        raise ConnectionFailure(
            f"Failed to create connection to ClickHouse {profile.host}:{profile.port}: {e}"
        ) from e

    try:
        adapter.ping()
    except Exception as e:
        adapter.close()
        raise ConnectionFailure(
            f"Failed to connect to ClickHouse {profile.host}:{profile.port}: {e}"
        ) from e

    logger.info("Connection to ClickHouse %s successful", target)
    return adapter
