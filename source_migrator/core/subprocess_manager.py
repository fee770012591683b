"""Centralized subprocess management with proper resource handling."""

import asyncio
import os
from typing import Any, Optional

import structlog

from .exceptions import CommandExecutionError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30  # Default timeout in seconds
KILL_TIMEOUT = 5  # Time to wait after SIGTERM before SIGKILL


class CommandResult:
    """Result of a host command execution."""

    def __init__(
        self,
        returncode: int,
        stdout: str,
        stderr: str,
        cmd: list[str] | str,
    ):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.cmd = cmd

    @property
    def success(self) -> bool:
        """Check if the command succeeded."""
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return "\n".join(part.strip() for part in (self.stdout, self.stderr) if part.strip())

    def check_returncode(self) -> None:
        """Raise an exception if the command failed."""
        if self.returncode != 0:
            error_msg = self.stderr.strip() or self.stdout.strip() or "Command failed"
            raise CommandExecutionError(
                f"Command failed with exit code {self.returncode}: {error_msg}"
            )

    def __repr__(self) -> str:
        return f"CommandResult(returncode={self.returncode!r}, cmd={self.cmd!r})"


class SubprocessManager:
    """Manages local subprocess execution with proper resource cleanup."""

    def __init__(self):
        self._active_processes: set[asyncio.subprocess.Process] = set()
        self._cleanup_lock = asyncio.Lock()

    async def run_command(
        self,
        cmd: list[str],
        *,
        timeout: Optional[float] = None,
        check: bool = True,
        cwd: Optional[str] = None,
        env: Optional[dict[str, str]] = None,
        stdin: Optional[str] = None,
    ) -> CommandResult:
        """
        Run a command asynchronously with proper resource management.

        Args:
            cmd: Command and arguments as a list
            timeout: Timeout in seconds (default: DEFAULT_TIMEOUT)
            check: Raise exception if command fails
            cwd: Working directory for the command
            env: Environment variables
            stdin: Input to provide to the command

        Returns:
            CommandResult with returncode, stdout, and stderr

        Raises:
            CommandExecutionError: If the command cannot be started, or check=True and it fails
            asyncio.TimeoutError: If command times out
        """
        if timeout is None:
            timeout = DEFAULT_TIMEOUT

        logger.debug(
            "Executing command",
            command=" ".join(cmd),
            timeout=timeout,
            cwd=cwd,
        )

        kwargs: dict[str, Any] = {
            "cwd": cwd,
            "env": env or os.environ.copy(),
            "stdout": asyncio.subprocess.PIPE,
            "stderr": asyncio.subprocess.PIPE,
        }
        if stdin is not None:
            kwargs["stdin"] = asyncio.subprocess.PIPE

        process = None
        try:
            try:
                process = await asyncio.create_subprocess_exec(*cmd, **kwargs)
            except OSError as e:
                raise CommandExecutionError(f"Failed to start {cmd[0]}: {e}") from e

            async with self._cleanup_lock:
                self._active_processes.add(process)

            try:
                stdin_bytes = stdin.encode() if stdin is not None else None
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    process.communicate(input=stdin_bytes), timeout=timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Command timed out, terminating process",
                    command=" ".join(cmd),
                    timeout=timeout,
                    pid=process.pid,
                )
                await self._terminate(process)
                raise asyncio.TimeoutError(
                    f"Command timed out after {timeout} seconds: {' '.join(cmd)}"
                )

            result = CommandResult(
                returncode=process.returncode or 0,
                stdout=stdout_bytes.decode(errors="replace") if stdout_bytes else "",
                stderr=stderr_bytes.decode(errors="replace") if stderr_bytes else "",
                cmd=cmd,
            )

            if check:
                result.check_returncode()

            return result

        finally:
            if process is not None:
                async with self._cleanup_lock:
                    self._active_processes.discard(process)

                if process.returncode is None:
                    await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate gracefully, then kill."""
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=KILL_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Process did not terminate gracefully, sending SIGKILL", pid=process.pid)
            process.kill()
            await process.wait()
        except ProcessLookupError:
            # Process already terminated
            pass

    async def cleanup_all(self) -> None:
        """Cleanup all active processes."""
        async with self._cleanup_lock:
            processes = list(self._active_processes)

        if not processes:
            return

        logger.info("Cleaning up active processes", count=len(processes))

        for process in processes:
            if process.returncode is None:
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass

        await asyncio.sleep(KILL_TIMEOUT)

        for process in processes:
            if process.returncode is None:
                try:
                    process.kill()
                    await process.wait()
                except ProcessLookupError:
                    pass

        async with self._cleanup_lock:
            self._active_processes.clear()

