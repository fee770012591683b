"""CPYTOSTMF transfer: copies a source member into an IFS stream file."""

import asyncio
import re

from ...constants import END_OF_LINE_LF, PASE_SYSTEM_COMMAND, STMF_OPTION_REPLACE
from ...models.migration import MigrationTarget
from ...utils import cl_quote
from ..exceptions import TransferError
from ..host_runner import CommandRunner
from ..settings import STMF_CCSID, TRANSFER_TIMEOUT
from .base import BaseTransfer

# IBM i message identifiers such as CPFA0A9 or CPF2817
_MESSAGE_ID_RE = re.compile(r"\b([A-Z]{3}[0-9A-F]{4})\b")


def build_cpytostmf_command(
    target: MigrationTarget,
    stmf_ccsid: int = STMF_CCSID,
    end_of_line: str = END_OF_LINE_LF,
    stmf_option: str = STMF_OPTION_REPLACE,
) -> str:
    """Build the CL command that copies ``target`` to its stream file."""
    return (
        f"CPYTOSTMF FROMMBR({cl_quote(target.source_path)}) "
        f"TOSTMF({cl_quote(target.destination_path)}) "
        f"STMFOPT({stmf_option}) STMFCCSID({stmf_ccsid}) ENDLINFMT({end_of_line})"
    )


class CpyToStmfTransfer(BaseTransfer):
    """Runs CPYTOSTMF through the PASE ``system`` utility."""

    def __init__(
        self,
        runner: CommandRunner,
        timeout: float = TRANSFER_TIMEOUT,
        stmf_ccsid: int = STMF_CCSID,
        system_command: str = PASE_SYSTEM_COMMAND,
    ):
        super().__init__()
        self.runner = runner
        self.timeout = timeout
        self.stmf_ccsid = stmf_ccsid
        self.system_command = system_command

    def get_transfer_type(self) -> str:
        return "cpytostmf"

    async def validate_requirements(self) -> tuple[bool, str]:
        """Check that the ``system`` utility is available on the host."""
        try:
            result = await self.runner.run(["test", "-x", self.system_command], timeout=30)
        except asyncio.TimeoutError:
            return False, "Timed out checking for the system utility"

        if result.success:
            return True, ""
        return False, f"{self.system_command} not available on {self.runner.describe()}"

    async def _copy(self, target: MigrationTarget) -> None:
        command = build_cpytostmf_command(target, stmf_ccsid=self.stmf_ccsid)
        self.logger.debug("Running CPYTOSTMF", member=target.label, command=command)

        result = await self.runner.run([self.system_command, command], timeout=self.timeout)

        if not result.success:
            output = result.output
            message_ids = _MESSAGE_ID_RE.findall(output)
            detail = message_ids[-1] if message_ids else (output[:300] or "no output")
            raise TransferError(f"CPYTOSTMF failed (exit {result.returncode}): {detail}")
