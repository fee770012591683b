"""Configuration management for the source migrator."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from ..constants import DEFAULT_SSH_PORT, LOCAL_HOST_ID
from .exceptions import ConfigurationError

logger = structlog.get_logger()


class SourceHost(BaseModel):
    """Connection details for an IBM i host reachable over SSH."""

    hostname: str
    user: str
    port: int = DEFAULT_SSH_PORT
    identity_file: str | None = None
    password: str | None = None
    description: str = ""
    enabled: bool = True


class MigrationDefaults(BaseModel):
    """Defaults applied to every migration run unless overridden on the CLI."""

    output_dir: str = "sources"
    max_concurrency: int | None = Field(default=None, ge=0)
    transfer_timeout: int | None = Field(default=None, gt=0)
    deadline: float | None = Field(default=None, gt=0)


class MigratorConfig(BaseSettings):
    """Main configuration for the source migrator."""

    hosts: dict[str, SourceHost] = Field(default_factory=dict)
    default_host: str | None = Field(default=None, alias="SOURCE_MIGRATOR_HOST")
    migration: MigrationDefaults = Field(default_factory=MigrationDefaults)
    log_level: str = Field(default="WARNING", alias="LOG_LEVEL")
    config_file: str = Field(default="config/hosts.yml", alias="SOURCE_MIGRATOR_CONFIG")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    def resolve_host(self, host_id: str | None = None) -> SourceHost | None:
        """Return the SSH host to migrate from, or None to run locally.

        Args:
            host_id: Explicit host identifier; falls back to ``default_host``

        Raises:
            ConfigurationError: If the host is unknown or disabled
        """
        host_id = host_id or self.default_host
        if not host_id or host_id == LOCAL_HOST_ID:
            return None

        host = self.hosts.get(host_id)
        if host is None:
            available = ", ".join(sorted(self.hosts)) or "none configured"
            raise ConfigurationError(f"Host '{host_id}' not found (available: {available})")
        if not host.enabled:
            raise ConfigurationError(f"Host '{host_id}' is disabled")
        return host


def get_config_dir() -> Path:
    """Get config directory.

    Priority order:
    1. SOURCE_MIGRATOR_CONFIG_DIR (explicit override)
    2. XDG_CONFIG_HOME/source-migrator
    3. Local project config (./config)
    """
    if env_dir := os.getenv("SOURCE_MIGRATOR_CONFIG_DIR"):
        return Path(env_dir)
    if xdg_home := os.getenv("XDG_CONFIG_HOME"):
        xdg_dir = Path(xdg_home) / "source-migrator"
        if xdg_dir.is_dir():
            return xdg_dir
    return Path.cwd() / "config"


def load_config(config_path: str | None = None) -> MigratorConfig:
    """Load configuration from multiple sources (synchronous interface).

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Loaded configuration

    Note:
        For async code, use load_config_async() instead.
    """
    try:
        asyncio.get_running_loop()
        raise RuntimeError(
            "load_config() cannot be called from within an async context. "
            "Use 'await load_config_async()' instead."
        )
    except RuntimeError as e:
        if "no running event loop" in str(e).lower():
            return asyncio.run(load_config_async(config_path))
        raise


async def load_config_async(config_path: str | None = None) -> MigratorConfig:
    """Load configuration from multiple sources (async interface).

    Sources are applied in order: user config, project config, environment.

    Args:
        config_path: Optional path to YAML config file

    Returns:
        Loaded configuration
    """
    load_dotenv()

    config = MigratorConfig()

    user_config_path = Path.home() / ".config" / "source-migrator" / "hosts.yml"
    await _load_config_file(config, user_config_path)

    default_config_file = os.getenv("SOURCE_MIGRATOR_CONFIG", str(get_config_dir() / "hosts.yml"))
    project_config_path = Path(config_path or default_config_file)
    if config_path and not project_config_path.exists():
        raise ConfigurationError(f"Config file not found: {project_config_path}")
    await _load_config_file(config, project_config_path)

    config.config_file = str(project_config_path)

    _apply_env_overrides(config)

    return config


async def _load_config_file(config: MigratorConfig, config_path: Path) -> None:
    """Load and apply configuration from a YAML file."""
    if not config_path.exists():
        return

    yaml_config = await _load_yaml_config(config_path)
    try:
        _apply_host_config(config, yaml_config)
        _apply_migration_config(config, yaml_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e

    if default_host := yaml_config.get("default_host"):
        config.default_host = str(default_host)

    logger.debug("Loaded config file", path=str(config_path), hosts=len(config.hosts))


def _apply_host_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    """Apply host configuration from YAML data."""
    if "hosts" in yaml_config and yaml_config["hosts"]:
        for host_id, host_data in yaml_config["hosts"].items():
            config.hosts[host_id] = SourceHost(**host_data)


def _apply_migration_config(config: MigratorConfig, yaml_config: dict[str, Any]) -> None:
    """Apply migration defaults from YAML data."""
    migration = yaml_config.get("migration")
    if not migration:
        return
    merged = config.migration.model_dump()
    _merge_config(merged, migration)
    config.migration = MigrationDefaults(**merged)


def _apply_env_overrides(config: MigratorConfig) -> None:
    """Apply environment variable overrides."""
    if host_env := os.getenv("SOURCE_MIGRATOR_HOST"):
        config.default_host = host_env
    if output_env := os.getenv("SOURCE_MIGRATOR_OUTPUT_DIR"):
        config.migration.output_dir = output_env
    if os.getenv("LOG_LEVEL"):
        config.log_level = os.getenv("LOG_LEVEL", config.log_level)


async def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load YAML configuration file."""
    try:
        content = await asyncio.to_thread(config_path.read_text)

        content = _expand_yaml_config(content)

        loaded = yaml.safe_load(content)
        # yaml.safe_load can return None, str, list, etc.
        if not isinstance(loaded, dict):
            return {}
        return loaded
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to load config from {config_path}: {e}") from e


def _expand_yaml_config(content: str) -> str:
    """Securely expand environment variables with allowlist."""

    allowed_env_vars = {
        "HOME",
        "USER",
        "XDG_CONFIG_HOME",
        "SOURCE_MIGRATOR_CONFIG",
        "SOURCE_MIGRATOR_CONFIG_DIR",
        "SOURCE_MIGRATOR_HOST",
        "SOURCE_MIGRATOR_OUTPUT_DIR",
        "IBMI_HOST",
        "IBMI_USER",
        "IBMI_PASSWORD",
        "SSH_KEY_PATH",
        "LOG_LEVEL",
    }

    def replace_if_allowed(match: re.Match) -> str:
        var_name = match.group(1) or match.group(2)
        original_pattern = match.group(0)

        if var_name in allowed_env_vars:
            return os.getenv(var_name, original_pattern)  # Keep original if not found
        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
            pattern=original_pattern,
        )
        return original_pattern

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", replace_if_allowed, content)


def _merge_config(base: dict[str, Any], update: dict[str, Any]) -> None:
    """Merge configuration dictionaries with deep merging."""
    for key, value in update.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _merge_config(base[key], value)
        else:
            base[key] = value
