"""Tests for output directory handling."""

import asyncio

import pytest

from conftest import FakeFilesystem, FakeRunner
from source_migrator.core.exceptions import OutputDirectoryError
from source_migrator.core.filesystem import (
    DirectoryMirror,
    LocalFilesystem,
    RemoteFilesystem,
    resolve_output_root,
)
from source_migrator.core.subprocess_manager import CommandResult


class TestDirectoryMirror:
    async def test_mirror_twice_is_idempotent(self, tmp_path):
        mirror = DirectoryMirror(LocalFilesystem(), str(tmp_path / "sources"))

        first = await mirror.ensure_container("PRODLIB", "QRPGSRC")
        second = await DirectoryMirror(LocalFilesystem(), str(tmp_path / "sources")).ensure_container(
            "PRODLIB", "QRPGSRC"
        )

        assert first == second == str(tmp_path / "sources" / "PRODLIB" / "QRPGSRC")
        assert (tmp_path / "sources" / "PRODLIB" / "QRPGSRC").is_dir()

    async def test_existing_directory_not_recreated(self):
        filesystem = FakeFilesystem(existing={"/out/PRODLIB"})
        mirror = DirectoryMirror(filesystem, "/out")

        await mirror.ensure_library("PRODLIB")
        await mirror.ensure_container("PRODLIB", "QCLSRC")
        await mirror.ensure_container("PRODLIB", "QCLSRC")

        assert filesystem.created == ["/out/PRODLIB/QCLSRC"]

    async def test_paths(self):
        mirror = DirectoryMirror(FakeFilesystem(), "/out/")
        assert mirror.library_path("PRODLIB") == "/out/PRODLIB"
        assert mirror.container_path("PRODLIB", "QRPGSRC") == "/out/PRODLIB/QRPGSRC"

    async def test_creation_failure_propagates(self):
        mirror = DirectoryMirror(FakeFilesystem(fail_on="/out"), "/out")
        with pytest.raises(OutputDirectoryError):
            await mirror.ensure_library("PRODLIB")


class TestLocalFilesystem:
    async def test_exists_and_create(self, tmp_path):
        filesystem = LocalFilesystem()
        target = tmp_path / "a" / "b"

        assert await filesystem.exists(str(target)) is False
        await filesystem.create_dir_all(str(target))
        await filesystem.create_dir_all(str(target))
        assert await filesystem.exists(str(target)) is True

    async def test_create_under_file_fails(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x")

        with pytest.raises(OutputDirectoryError):
            await LocalFilesystem().create_dir_all(str(blocker / "child"))


class TestRemoteFilesystem:
    async def test_commands(self):
        runner = FakeRunner(lambda args: CommandResult(1 if args[0] == "test" else 0, "", "", args))
        filesystem = RemoteFilesystem(runner)

        assert await filesystem.exists("/home/u1/sources") is False
        await filesystem.create_dir_all("/home/u1/sources/PRODLIB")

        assert runner.calls == [
            ["test", "-d", "/home/u1/sources"],
            ["mkdir", "-p", "/home/u1/sources/PRODLIB"],
        ]

    async def test_mkdir_failure(self):
        runner = FakeRunner(lambda args: CommandResult(1, "", "Permission denied", args))
        with pytest.raises(OutputDirectoryError, match="Permission denied"):
            await RemoteFilesystem(runner).create_dir_all("/QSYS.LIB/x")

    async def test_timeout(self):
        runner = FakeRunner(lambda args: asyncio.TimeoutError())
        with pytest.raises(OutputDirectoryError, match="Timed out"):
            await RemoteFilesystem(runner).exists("/home/u1")


class TestResolveOutputRoot:
    def test_absolute(self):
        assert resolve_output_root("/data/src/../sources/", "/home/u1") == "/data/sources"

    def test_relative_under_home(self):
        assert resolve_output_root("sources", "/home/u1") == "/home/u1/sources"

    def test_empty_defaults_to_sources(self):
        assert resolve_output_root("", "/home/u1") == "/home/u1/sources"

    def test_relative_without_home(self):
        with pytest.raises(OutputDirectoryError, match="no home directory"):
            resolve_output_root("sources", None)
