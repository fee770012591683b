"""Tests for the CPYTOSTMF transfer."""

import asyncio

from conftest import FakeRunner, make_target
from source_migrator.core.exceptions import CommandExecutionError, SSHConnectionError
from source_migrator.core.subprocess_manager import CommandResult
from source_migrator.core.transfer import CpyToStmfTransfer, build_cpytostmf_command


class TestBuildCommand:
    def test_fixed_options(self):
        command = build_cpytostmf_command(make_target())

        assert command == (
            "CPYTOSTMF FROMMBR('/QSYS.LIB/PRODLIB.LIB/QRPGSRC.FILE/PGM1.MBR') "
            "TOSTMF('/home/u1/sources/PRODLIB/QRPGSRC/PGM1.RPGLE') "
            "STMFOPT(*REPLACE) STMFCCSID(1208) ENDLINFMT(*LF)"
        )

    def test_quotes_in_destination_are_doubled(self):
        command = build_cpytostmf_command(make_target(root="/home/o'brien/sources"))
        assert "TOSTMF('/home/o''brien/sources/PRODLIB/QRPGSRC/PGM1.RPGLE')" in command

    def test_custom_ccsid(self):
        assert "STMFCCSID(819)" in build_cpytostmf_command(make_target(), stmf_ccsid=819)


class TestCpyToStmfTransfer:
    async def test_success(self):
        runner = FakeRunner()
        transfer = CpyToStmfTransfer(runner, timeout=5)

        outcome = await transfer.copy(make_target())

        assert outcome.success
        assert runner.calls[0][0] == "/QOpenSys/usr/bin/system"
        assert runner.calls[0][1].startswith("CPYTOSTMF FROMMBR(")

    async def test_failure_reports_last_message_id(self):
        output = "CPF2817: Copy command ended.\nCPFA0A9: Object not found."
        runner = FakeRunner(lambda args: CommandResult(255, "", output, args))

        outcome = await CpyToStmfTransfer(runner).copy(make_target())

        assert not outcome.success
        assert outcome.reason == "CPYTOSTMF failed (exit 255): CPFA0A9"

    async def test_failure_without_message_id(self):
        runner = FakeRunner(lambda args: CommandResult(1, "", "", args))
        outcome = await CpyToStmfTransfer(runner).copy(make_target())
        assert outcome.reason == "CPYTOSTMF failed (exit 1): no output"

    async def test_timeout_becomes_outcome(self):
        runner = FakeRunner(lambda args: asyncio.TimeoutError())
        outcome = await CpyToStmfTransfer(runner).copy(make_target())
        assert outcome.reason == "transfer timed out"

    async def test_host_errors_become_outcomes(self):
        for error in (SSHConnectionError("channel closed"), CommandExecutionError("no system")):
            runner = FakeRunner(lambda args, error=error: error)
            outcome = await CpyToStmfTransfer(runner).copy(make_target())
            assert not outcome.success
            assert outcome.reason == str(error)

    async def test_validate_requirements(self):
        assert await CpyToStmfTransfer(FakeRunner()).validate_requirements() == (True, "")

        missing = FakeRunner(lambda args: CommandResult(1, "", "", args))
        usable, message = await CpyToStmfTransfer(missing).validate_requirements()
        assert usable is False
        assert "/QOpenSys/usr/bin/system not available on local" == message

    def test_transfer_type(self):
        assert CpyToStmfTransfer(FakeRunner()).get_transfer_type() == "cpytostmf"
