"""Wiring of host channel, catalog, filesystem and transfer for a migration run."""

from dataclasses import dataclass

import structlog

from .core.config_loader import MigratorConfig
from .core.filesystem import Filesystem, LocalFilesystem, RemoteFilesystem
from .core.host_runner import CommandRunner, LocalCommandRunner, SSHCommandRunner
from .core.metadata import CatalogService, Db2CatalogService
from .core.settings import CATALOG_QUERY_TIMEOUT, SSH_MAX_CONNECTIONS, TRANSFER_TIMEOUT
from .core.ssh_pool import SSHConnectionPool
from .core.transfer import BaseTransfer, CpyToStmfTransfer

logger = structlog.get_logger()


@dataclass
class MigrationRuntime:
    """Collaborators the orchestrator needs, bound to one source system."""

    runner: CommandRunner
    catalog: CatalogService
    filesystem: Filesystem
    transfer: BaseTransfer

    async def close(self) -> None:
        await self.runner.close()


def create_runtime(
    config: MigratorConfig,
    host_id: str | None = None,
    transfer_timeout: float | None = None,
    ssh_max_connections: int = SSH_MAX_CONNECTIONS,
) -> MigrationRuntime:
    """Build the runtime for the configured host.

    Without a host (or with host ``local``) everything runs on this machine,
    which is how the migrator is used from PASE on the IBM i itself.

    Raises:
        ConfigurationError: If the host is unknown or disabled
    """
    host = config.resolve_host(host_id)

    if host is None:
        runner: CommandRunner = LocalCommandRunner()
        filesystem: Filesystem = LocalFilesystem()
    else:
        pool = SSHConnectionPool(max_connections_per_host=ssh_max_connections)
        runner = SSHCommandRunner(host, pool)
        filesystem = RemoteFilesystem(runner)

    timeout = transfer_timeout or config.migration.transfer_timeout or TRANSFER_TIMEOUT
    runtime = MigrationRuntime(
        runner=runner,
        catalog=Db2CatalogService(runner, timeout=CATALOG_QUERY_TIMEOUT),
        filesystem=filesystem,
        transfer=CpyToStmfTransfer(runner, timeout=timeout),
    )
    logger.debug(
        "Migration runtime created",
        target=runner.describe(),
        transfer=runtime.transfer.get_transfer_type(),
        transfer_timeout=timeout,
    )
    return runtime
