"""
Process Executor

Subprocess boundary for the external reasoning engine (and git). The task
runner depends only on the ProcessExecutor protocol so tests can inject a
fake implementation.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol


logger = logging.getLogger(__name__)

MAX_DIAGNOSTIC_CHARS = 2000


def truncate_output(text: Optional[str], limit: int = MAX_DIAGNOSTIC_CHARS) -> str:
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [truncated {len(text) - limit} chars]"


class EngineExecutionError(Exception):
    """Engine process could not run to a usable result"""
    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        output_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.command = list(command or [])
        self.exit_code = exit_code
        self.stdout = truncate_output(stdout)
        self.stderr = truncate_output(stderr)
        self.output_path = output_path

    def diagnostics(self) -> str:
        """Operator-facing summary with command, exit code and output."""
        parts = [self.message]
        if self.command:
            parts.append(f"command: {' '.join(self.command)}")
        if self.exit_code is not None:
            parts.append(f"exit code: {self.exit_code}")
        if self.output_path:
            parts.append(f"output: {self.output_path}")
        if self.stderr.strip():
            parts.append(f"stderr: {self.stderr.strip()}")
        if self.stdout.strip():
            parts.append(f"stdout: {self.stdout.strip()}")
        return "; ".join(parts)


class EngineTimeoutError(EngineExecutionError):
    """Engine process exceeded its time budget and was killed"""


class EngineCancelledError(EngineExecutionError):
    """Engine process was cancelled through the cancellation token"""


@dataclass
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str


class ProcessExecutor(Protocol):
    async def execute(
        self,
        command: List[str],
        stdin: Optional[str] = None,
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        ...


class AsyncSubprocessExecutor:
    """
    Runs commands with asyncio subprocesses.

    Spawn failures raise EngineExecutionError; a timeout or a set
    cancellation event kills the process and raises the matching subclass.
    Non-zero exit codes are returned, not raised.
    """

    async def execute(
        self,
        command: List[str],
        stdin: Optional[str] = None,
        *,
        cwd: Optional[str] = None,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExecutionResult:
        logger.debug(f"Executing: {' '.join(command)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            raise EngineExecutionError(f"Failed to start {command[0]}: {e}", command=command) from e

        communicate = asyncio.ensure_future(
            proc.communicate(input=stdin.encode("utf-8") if stdin is not None else None)
        )
        cancel_wait = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None
        waiters = {communicate} | ({cancel_wait} if cancel_wait else set())

        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._kill(proc, communicate)
            raise
        finally:
            if cancel_wait is not None and not cancel_wait.done():
                cancel_wait.cancel()

        if communicate not in done:
            await self._kill(proc, communicate)
            if cancel_wait is not None and cancel_wait in done:
                raise EngineCancelledError("Engine run cancelled", command=command)
            raise EngineTimeoutError(f"Engine run timed out after {timeout}s", command=command)

        stdout_bytes, stderr_bytes = communicate.result()
        return ExecutionResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
        )

    async def _kill(self, proc: asyncio.subprocess.Process, communicate: asyncio.Future) -> None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        communicate.cancel()
        await proc.wait()
