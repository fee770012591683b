"""Shared pytest fixtures for source migrator tests."""

import asyncio
import posixpath
from collections.abc import Callable
from pathlib import Path

import pytest

from source_migrator.core.exceptions import OutputDirectoryError, TransferError
from source_migrator.core.filesystem import Filesystem
from source_migrator.core.host_runner import CommandRunner
from source_migrator.core.metadata import CatalogService
from source_migrator.core.subprocess_manager import CommandResult
from source_migrator.core.transfer.base import BaseTransfer
from source_migrator.models.migration import MigrationTarget

# library -> source PF -> member -> source type
CatalogData = dict[str, dict[str, dict[str, str]]]


class InMemoryCatalog(CatalogService):
    """Catalog backed by a nested dict; blank source types are ineligible."""

    def __init__(self, data: CatalogData):
        self.data = data
        self.calls: list[str] = []

    def _eligible(self, library: str) -> dict[str, dict[str, str]]:
        containers = {}
        for container, members in self.data.get(library, {}).items():
            eligible = {m: t for m, t in members.items() if t.strip()}
            if eligible:
                containers[container] = eligible
        return containers

    async def library_exists(self, library: str) -> bool:
        self.calls.append("library_exists")
        return bool(self._eligible(library))

    async def container_member_counts(self, library: str) -> dict[str, int]:
        self.calls.append("container_member_counts")
        return {c: len(m) for c, m in sorted(self._eligible(library).items())}

    async def container_exists(self, library: str, container: str) -> bool:
        self.calls.append("container_exists")
        return container in self._eligible(library)

    async def list_members(self, library: str, container: str) -> list[tuple[str, str]]:
        self.calls.append("list_members")
        return sorted(self._eligible(library).get(container, {}).items())

    async def list_sources(self, library, container=None, members=None):
        self.calls.append("list_sources")
        rows = []
        for name, member_types in sorted(self._eligible(library).items()):
            if container and name != container:
                continue
            for member, source_type in sorted(member_types.items()):
                if members and member not in members:
                    continue
                rows.append((name, member, source_type))
        return rows

    async def similar_libraries(self, library: str, limit: int = 10) -> list[str]:
        return [name for name in sorted(self.data) if library in name or name in library][:limit]

    async def system_name(self) -> str:
        return "TESTSYS"

    async def system_ccsid(self) -> str:
        return "37"


class FakeFilesystem(Filesystem):
    """In-memory directory tree."""

    def __init__(self, existing: set[str] | None = None, fail_on: str | None = None):
        self.dirs: set[str] = set(existing or ())
        self.created: list[str] = []
        self.fail_on = fail_on

    async def exists(self, path: str) -> bool:
        return path in self.dirs

    async def create_dir_all(self, path: str) -> None:
        if self.fail_on and path.startswith(self.fail_on):
            raise OutputDirectoryError(f"Failed to create directory {path}: Permission denied")
        self.created.append(path)
        while path not in ("/", ""):
            self.dirs.add(path)
            path = posixpath.dirname(path)


class RecordingTransfer(BaseTransfer):
    """Transfer double that records copies and tracks concurrency.

    With ``filesystem`` set, a copy fails unless its destination directory
    already exists there.
    """

    def __init__(
        self,
        failures: dict[str, str] | None = None,
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
        filesystem: FakeFilesystem | None = None,
        write_files: bool = False,
    ):
        super().__init__()
        self.failures = failures or {}
        self.delay = delay
        self.delays = delays or {}
        self.filesystem = filesystem
        self.write_files = write_files
        self.copied: list[str] = []
        self.started: list[str] = []
        self.finished: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _copy(self, target: MigrationTarget) -> None:
        self.started.append(target.label)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(target.label, self.delay)
            if delay:
                await asyncio.sleep(delay)
            if target.label in self.failures:
                raise TransferError(self.failures[target.label])
            if self.filesystem is not None and target.destination_dir not in self.filesystem.dirs:
                raise TransferError(f"directory missing: {target.destination_dir}")
            if self.write_files:
                Path(target.destination_path).write_text(f"{target.member}\n")
            self.copied.append(target.destination_path)
        finally:
            self.in_flight -= 1
            self.finished.append(target.label)

    async def validate_requirements(self) -> tuple[bool, str]:
        return True, ""

    def get_transfer_type(self) -> str:
        return "recording"


class FakeRunner(CommandRunner):
    """Command runner that answers from a handler and records every call."""

    def __init__(
        self,
        handler: Callable[[list[str]], CommandResult | BaseException] | None = None,
        home: str | None = "/home/QPGMR",
        user: str = "QPGMR",
    ):
        super().__init__()
        self.handler = handler or (lambda args: CommandResult(0, "", "", args))
        self.home = home
        self.user = user
        self.calls: list[list[str]] = []
        self.closed = False

    async def run(self, args: list[str], timeout: float) -> CommandResult:
        self.calls.append(list(args))
        result = self.handler(list(args))
        if isinstance(result, BaseException):
            raise result
        return result

    async def home_directory(self) -> str | None:
        return self.home

    def user_name(self) -> str:
        return self.user

    async def close(self) -> None:
        self.closed = True


PRODLIB_DATA: CatalogData = {
    "PRODLIB": {
        "QRPGSRC": {"PGM1": "RPGLE", "PGM2": "RPGLE"},
        "QCLSRC": {"CMD1": "CLLE"},
        "QDDSSRC": {"OLD1": "", "OLD2": "  "},
    },
    "PRODLIB2": {"QRPGSRC": {"PGM9": "SQLRPGLE"}},
}


@pytest.fixture
def prodlib_catalog() -> InMemoryCatalog:
    """Catalog with the PRODLIB library used across scenarios."""
    return InMemoryCatalog(PRODLIB_DATA)


@pytest.fixture
def fake_filesystem() -> FakeFilesystem:
    return FakeFilesystem()


@pytest.fixture
def recording_transfer(fake_filesystem: FakeFilesystem) -> RecordingTransfer:
    return RecordingTransfer(filesystem=fake_filesystem)


def make_target(
    member: str = "PGM1",
    container: str = "QRPGSRC",
    source_type: str = "RPGLE",
    library: str = "PRODLIB",
    root: str = "/home/u1/sources",
) -> MigrationTarget:
    """Build a target the way enumeration does."""
    return MigrationTarget(
        library=library,
        container=container,
        member=member,
        source_type=source_type,
        destination_dir=f"{root}/{library}/{container}",
    )
