"""Tests for the command line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import FakeFilesystem, FakeRunner, InMemoryCatalog, PRODLIB_DATA, RecordingTransfer
from source_migrator import cli
from source_migrator.core.config_loader import MigratorConfig
from source_migrator.core.exceptions import (
    CatalogQueryError,
    CommandExecutionError,
    ConfigurationError,
    ContainerNotFoundError,
    LibraryNotFoundError,
    MemberNotFoundError,
)
from source_migrator.models import MigrationSummary
from source_migrator.runtime import MigrationRuntime


@pytest.fixture
def runtime():
    filesystem = FakeFilesystem()
    return MigrationRuntime(
        runner=FakeRunner(home="/home/u1", user="U1"),
        catalog=InMemoryCatalog(PRODLIB_DATA),
        filesystem=filesystem,
        transfer=RecordingTransfer(filesystem=filesystem),
    )


@pytest.fixture
def quiet_logging():
    with (
        patch.object(cli, "setup_logging"),
        patch.object(cli, "_setup_log_directory", return_value=None),
    ):
        yield


class TestParseArgs:
    def test_full(self):
        args = cli.parse_args(
            ["-sl", "prodlib", "--spf", "qrpgsrc", "--mbrs", "PGM1", "PGM2", "-o", "/out", "--json"]
        )

        assert args.library == "prodlib"
        assert args.source_pf == "qrpgsrc"
        assert args.members == ["PGM1", "PGM2"]
        assert args.output_dir == "/out"
        assert args.json_output is True
        assert args.dry_run is False

    def test_members_require_source_pf(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            cli.parse_args(["-sl", "PRODLIB", "--mbrs", "PGM1"])

        assert exc_info.value.code == 2
        assert "specific source PF" in capsys.readouterr().err

    def test_library_required(self):
        with pytest.raises(SystemExit):
            cli.parse_args([])

    @pytest.mark.parametrize("option", [["--max-concurrency", "-1"], ["--deadline", "0"]])
    def test_invalid_limits(self, option):
        with pytest.raises(SystemExit):
            cli.parse_args(["-sl", "PRODLIB", *option])

    @pytest.mark.parametrize(
        "flags, level",
        [(["-x"], "DEBUG"), (["-v"], "INFO"), (["--log-level", "ERROR"], "ERROR")],
    )
    def test_log_level(self, flags, level):
        assert cli._resolve_log_level(cli.parse_args(["-sl", "PRODLIB", *flags])) == level


class TestRunMigration:
    async def test_whole_library(self, runtime, capsys):
        args = cli.parse_args(["-sl", "PRODLIB"])

        with patch.object(cli, "create_runtime", return_value=runtime):
            summary = await cli.run_migration(args, MigratorConfig())

        out = capsys.readouterr().out
        assert "User: U1" in out
        assert "System: TESTSYS" in out
        assert "System's CCSID: 37" in out
        assert "Migrated SourcePf: QRPGSRC | member: PGM1.RPGLE: OK" in out
        assert summary.output_root == "/home/u1/sources"
        assert summary.members_migrated == 3
        assert runtime.runner.closed is True

    async def test_failed_member_line(self, runtime, capsys):
        runtime.transfer.failures = {"QCLSRC/CMD1": "CPFA0A9"}
        args = cli.parse_args(["-sl", "PRODLIB", "--spf", "QCLSRC"])

        with patch.object(cli, "create_runtime", return_value=runtime):
            summary = await cli.run_migration(args, MigratorConfig())

        assert summary.errors == 1
        assert "Could not migrate QCLSRC/CMD1: Failed (CPFA0A9)" in capsys.readouterr().out

    async def test_config_defaults_apply(self, runtime):
        config = MigratorConfig()
        config.migration.output_dir = "/data/git"
        args = cli.parse_args(["-sl", "PRODLIB", "--dry-run"])

        with patch.object(cli, "create_runtime", return_value=runtime):
            summary = await cli.run_migration(args, config)

        assert summary.dry_run is True
        assert summary.planned_paths[0] == "/data/git/PRODLIB/QCLSRC/CMD1.CLLE"
        assert runtime.transfer.started == []

    async def test_unusable_transfer_is_fatal(self, runtime):
        runtime.transfer.validate_requirements = AsyncMock(return_value=(False, "no system"))
        args = cli.parse_args(["-sl", "PRODLIB"])

        with patch.object(cli, "create_runtime", return_value=runtime):
            with pytest.raises(CommandExecutionError, match="no system"):
                await cli.run_migration(args, MigratorConfig())

        assert runtime.runner.closed is True

    async def test_header_printed_only_after_validation(self, runtime, capsys):
        args = cli.parse_args(["-sl", "PRODLIB", "--spf", "QRPGSRC", "--mbrs", "PGMX"])

        with patch.object(cli, "create_runtime", return_value=runtime):
            with pytest.raises(MemberNotFoundError):
                await cli.run_migration(args, MigratorConfig())

        assert "User:" not in capsys.readouterr().out
        assert runtime.transfer.started == []


class TestMain:
    def test_summary_printed(self, quiet_logging, capsys):
        summary = MigrationSummary(
            library="PRODLIB", output_root="/x", containers_migrated=2, members_migrated=3
        )
        with patch.object(cli, "run_migration", AsyncMock(return_value=summary)):
            assert cli.main(["-sl", "PRODLIB"]) == cli.EXIT_OK

        out = capsys.readouterr().out
        assert "Total Source PFs migrated: 2" in out
        assert "Total members migrated: 3" in out

    def test_json_output(self, quiet_logging, capsys):
        summary = MigrationSummary(
            library="PRODLIB",
            output_root="/x",
            members_migrated=1,
            migrated_paths=["/x/PRODLIB/QRPGSRC/PGM1.RPGLE"],
        )
        with patch.object(cli, "run_migration", AsyncMock(return_value=summary)):
            assert cli.main(["-sl", "PRODLIB", "--json"]) == cli.EXIT_OK

        data = json.loads(capsys.readouterr().out)
        assert data["migrated_paths"] == ["/x/PRODLIB/QRPGSRC/PGM1.RPGLE"]
        assert data["members_migrated"] == 1

    def test_precondition_error(self, quiet_logging, capsys):
        error = LibraryNotFoundError(
            "Library PROD does not exist in your system.", missing=["PROD"], suggestions=["PRODLIB"]
        )
        with patch.object(cli, "run_migration", AsyncMock(side_effect=error)):
            assert cli.main(["-sl", "PROD"]) == cli.EXIT_PRECONDITION

        err = capsys.readouterr().err
        assert "Error: Library PROD does not exist in your system." in err
        assert "Did you mean: PRODLIB" in err

    def test_missing_source_pf_lists_available(self, quiet_logging, capsys):
        error = ContainerNotFoundError(
            "Source PF QCBLSRC does not exist in library PRODLIB",
            missing=["QCBLSRC"],
            available={"QRPGSRC": 2, "QCLSRC": 1},
        )
        with patch.object(cli, "run_migration", AsyncMock(side_effect=error)):
            assert cli.main(["-sl", "PRODLIB", "--spf", "QCBLSRC"]) == cli.EXIT_PRECONDITION

        err = capsys.readouterr().err
        assert "Available source PFs:" in err
        assert "Did you mean" not in err
        lines = [line.split() for line in err.splitlines()]
        assert ["QCLSRC", "1"] in lines
        assert ["QRPGSRC", "2"] in lines

    def test_member_not_found(self, quiet_logging):
        error = MemberNotFoundError("Members not found in PRODLIB/QRPGSRC: PGMX", missing=["PGMX"])
        with patch.object(cli, "run_migration", AsyncMock(side_effect=error)):
            assert cli.main(["-sl", "PRODLIB", "--spf", "QRPGSRC", "--mbrs", "PGMX"]) == 1

    @pytest.mark.parametrize(
        "error", [CatalogQueryError("db2util missing"), ConfigurationError("Host 'x' not found")]
    )
    def test_infrastructure_and_configuration_errors(self, quiet_logging, error):
        with patch.object(cli, "run_migration", AsyncMock(side_effect=error)):
            assert cli.main(["-sl", "PRODLIB"]) == cli.EXIT_INFRASTRUCTURE

    def test_interrupted(self, quiet_logging):
        with patch.object(cli, "run_migration", AsyncMock(side_effect=KeyboardInterrupt)):
            assert cli.main(["-sl", "PRODLIB"]) == cli.EXIT_INTERRUPTED
