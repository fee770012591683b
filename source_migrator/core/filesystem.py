"""Output directory handling: filesystem backends and the library/source PF mirror."""

import asyncio
import posixpath
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from .exceptions import OutputDirectoryError
from .host_runner import CommandRunner

logger = structlog.get_logger()

MKDIR_TIMEOUT = 60


class Filesystem(ABC):
    """Minimal filesystem surface needed to mirror the output tree."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """True when ``path`` exists as a directory."""

    @abstractmethod
    async def create_dir_all(self, path: str) -> None:
        """Create ``path`` and any missing parents; no error if it already exists.

        Raises:
            OutputDirectoryError: If the directory cannot be created
        """


class LocalFilesystem(Filesystem):
    """Directories on the machine running the migrator."""

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(Path(path).is_dir)

    async def create_dir_all(self, path: str) -> None:
        try:
            await asyncio.to_thread(Path(path).mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(f"Failed to create directory {path}: {e}") from e


class RemoteFilesystem(Filesystem):
    """Directories in the IFS of a remote host, managed through shell commands."""

    def __init__(self, runner: CommandRunner, timeout: float = MKDIR_TIMEOUT):
        self.runner = runner
        self.timeout = timeout

    async def exists(self, path: str) -> bool:
        try:
            result = await self.runner.run(["test", "-d", path], timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OutputDirectoryError(f"Timed out checking directory {path}") from e
        return result.success

    async def create_dir_all(self, path: str) -> None:
        try:
            result = await self.runner.run(["mkdir", "-p", path], timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OutputDirectoryError(f"Timed out creating directory {path}") from e

        if not result.success:
            error_message = result.output or "unknown error"
            raise OutputDirectoryError(f"Failed to create directory {path}: {error_message}")


class DirectoryMirror:
    """Mirrors ``{output_root}/{library}/{source_pf}`` onto a filesystem.

    Every path handed out by ``ensure_*`` has been confirmed to exist.
    """

    def __init__(self, filesystem: Filesystem, output_root: str):
        self.filesystem = filesystem
        self.output_root = output_root.rstrip("/") or "/"
        self._confirmed: set[str] = set()
        self.logger = logger.bind(component="directory_mirror")

    def library_path(self, library: str) -> str:
        return posixpath.join(self.output_root, library)

    def container_path(self, library: str, container: str) -> str:
        return posixpath.join(self.output_root, library, container)

    async def ensure(self, path: str) -> str:
        """Create ``path`` if absent. Existing directories count as success.

        Returns:
            The confirmed path
        """
        if path in self._confirmed:
            return path

        if not await self.filesystem.exists(path):
            self.logger.info("Creating dir", path=path)
            await self.filesystem.create_dir_all(path)

        self._confirmed.add(path)
        return path

    async def ensure_library(self, library: str) -> str:
        return await self.ensure(self.library_path(library))

    async def ensure_container(self, library: str, container: str) -> str:
        return await self.ensure(self.container_path(library, container))


def resolve_output_root(out_dir: str, home_dir: str | None) -> str:
    """Resolve the output directory the way users type it.

    Absolute paths are used as given; relative ones are placed under the
    user's home directory.

    Raises:
        OutputDirectoryError: If a relative path is given and the user has no home directory
    """
    out_dir = out_dir.strip()
    if out_dir.startswith("/"):
        return posixpath.normpath(out_dir)
    if not home_dir:
        raise OutputDirectoryError("The current user has no home directory.")
    return posixpath.normpath(posixpath.join(home_dir, out_dir or "sources"))
