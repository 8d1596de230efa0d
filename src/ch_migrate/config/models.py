"""Pydantic models for connection profiles and run configuration."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ConnectionProfile(BaseModel):
    """ClickHouse connection profile from ch-migrate.toml."""

    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int = 9000
    user: str = "default"
    password: SecretStr = SecretStr("")
    database: str
    read_timeout: int = Field(default=30, gt=0)   # seconds
    write_timeout: int = Field(default=30, gt=0)  # seconds
    description: str = ""


class DumpSettings(BaseModel):
    """The ``[dump]`` table: batching, client and artifact locations."""

    batch_size: int = Field(default=10000, ge=1)
    client_path: str = "clickhouse"
    schema_dir: Path = Path("schema")
    data_dir: Path = Path("data")


class MigrationConfig(BaseModel):
    """Complete configuration from ch-migrate.toml."""

    profiles: dict[str, ConnectionProfile] = Field(default_factory=dict)
    dump: DumpSettings = Field(default_factory=DumpSettings)


class RunConfig(BaseModel):
    """Resolved, immutable configuration for one export or import run."""

    model_config = ConfigDict(frozen=True)

    connection: ConnectionProfile
    batch_size: int = Field(default=10000, ge=1)
    client_path: str = "clickhouse"
    schema_dir: Path = Path("schema")
    data_dir: Path = Path("data")

    @property
    def database(self) -> str:
        """Name of the database being exported or imported."""
        return self.connection.database

    def describe(self) -> str:
        """One-line summary safe for logs (password is never included)."""
        c = self.connection
        return (
            f"{c.user}@{c.host}:{c.port}/{c.database} "
            f"batch_size={self.batch_size} client={self.client_path} "
            f"schema_dir={self.schema_dir} data_dir={self.data_dir}"
        )
