"""Host command runners: local PASE execution or pooled SSH to a remote IBM i."""

import asyncio
import getpass
import os
import shlex
from abc import ABC, abstractmethod

import structlog

from .config_loader import SourceHost
from .exceptions import CommandExecutionError
from .ssh_pool import SSHConnectionPool
from .subprocess_manager import CommandResult, SubprocessManager

logger = structlog.get_logger()


class CommandRunner(ABC):
    """Runs commands on the IBM i that owns the source members."""

    def __init__(self):
        self.logger = logger.bind(component=self.__class__.__name__.lower())

    @abstractmethod
    async def run(self, args: list[str], timeout: float) -> CommandResult:
        """Run a command and return its result without checking the exit code.

        Args:
            args: Command and arguments
            timeout: Timeout in seconds

        Raises:
            CommandExecutionError: If the command could not be executed at all
            asyncio.TimeoutError: If the command does not finish in time
        """

    @abstractmethod
    async def home_directory(self) -> str | None:
        """Home directory of the user the commands run as."""

    @abstractmethod
    def user_name(self) -> str:
        """User profile the commands run as."""

    def describe(self) -> str:
        """Short human-readable target description for logs."""
        return "local"

    async def close(self) -> None:
        """Release any held resources."""


class LocalCommandRunner(CommandRunner):
    """Runs commands directly, for use when the migrator runs in PASE on the IBM i."""

    def __init__(self, manager: SubprocessManager | None = None):
        super().__init__()
        self.manager = manager or SubprocessManager()

    async def run(self, args: list[str], timeout: float) -> CommandResult:
        return await self.manager.run_command(args, timeout=timeout, check=False)

    async def home_directory(self) -> str | None:
        home = os.path.expanduser("~")
        return None if home == "~" else home

    def user_name(self) -> str:
        return getpass.getuser().upper()

    async def close(self) -> None:
        await self.manager.cleanup_all()


class SSHCommandRunner(CommandRunner):
    """Runs commands on a remote IBM i through a pooled paramiko connection."""

    def __init__(self, host: SourceHost, pool: SSHConnectionPool):
        super().__init__()
        self.host = host
        self.pool = pool
        self._home: str | None = None

    async def run(self, args: list[str], timeout: float) -> CommandResult:
        command = shlex.join(args)
        self.logger.debug("Running remote command", host=self.host.hostname, command=command)
        exit_code, stdout, stderr = await self.pool.execute_command(
            self.host, command, timeout=timeout
        )
        return CommandResult(returncode=exit_code, stdout=stdout, stderr=stderr, cmd=command)

    async def home_directory(self) -> str | None:
        if self._home is None:
            try:
                result = await self.run(["printenv", "HOME"], timeout=30)
            except asyncio.TimeoutError as e:
                raise CommandExecutionError(
                    f"Timed out reading home directory on {self.host.hostname}"
                ) from e
            self._home = result.stdout.strip() if result.success else ""
        return self._home or None

    def user_name(self) -> str:
        return self.host.user.upper()

    def describe(self) -> str:
        return f"{self.host.user}@{self.host.hostname}:{self.host.port}"

    async def close(self) -> None:
        await self.pool.close_all()
