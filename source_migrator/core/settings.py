"""Runtime tuning settings for source migration.

Provides centralized timeout and concurrency configuration using Pydantic
BaseSettings with environment variable support for operational tuning.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import UTF8_CCSID


class MigratorSettings(BaseSettings):
    """Migration timeout and concurrency configuration."""

    max_concurrency: int = Field(
        8,
        alias="MIGRATOR_MAX_CONCURRENCY",
        ge=0,
        description="Maximum in-flight member transfers (0 = unbounded)",
    )

    transfer_timeout: int = Field(
        120, alias="TRANSFER_TIMEOUT", description="Per-member CPYTOSTMF timeout in seconds"
    )

    catalog_query_timeout: int = Field(
        60, alias="CATALOG_QUERY_TIMEOUT", description="Catalog query timeout in seconds"
    )

    migration_deadline: float | None = Field(
        None,
        alias="MIGRATION_DEADLINE",
        description="Overall run deadline in seconds; stops dispatching when exceeded",
    )

    stmf_ccsid: int = Field(UTF8_CCSID, alias="STMF_CCSID", description="Stream file CCSID")

    ssh_max_connections: int = Field(
        8, alias="SSH_MAX_CONNECTIONS", ge=1, description="Pooled SSH connections per host"
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)


# Global settings instance
migrator_settings = MigratorSettings()

# Constants for easy import
MAX_CONCURRENCY: int = migrator_settings.max_concurrency
TRANSFER_TIMEOUT: int = migrator_settings.transfer_timeout
CATALOG_QUERY_TIMEOUT: int = migrator_settings.catalog_query_timeout
MIGRATION_DEADLINE: float | None = migrator_settings.migration_deadline
STMF_CCSID: int = migrator_settings.stmf_ccsid
SSH_MAX_CONNECTIONS: int = migrator_settings.ssh_max_connections
