"""Subprocess executor used to invoke the Go toolchain.

Runs a command to completion in a working directory and returns its combined
stdout/stderr together with the exit code. A non-zero exit from a process
that started is *not* an error here; only a failure to launch is.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)


@dataclass
class CommandOutput:
    """Result of a command that was started successfully."""

    output: bytes
    """Combined standard output and standard error."""

    exit_code: int
    """Exit code of the process (-1 when killed on timeout)."""

    timed_out: bool = False
    """True if the process was terminated due to timeout."""

    duration_ms: float = 0.0
    """Actual duration of execution in milliseconds."""


class LaunchError(Exception):
    """Raised when a command could not be started or executed at all."""

    def __init__(self, message: str, command: Sequence[str]) -> None:
        super().__init__(message)
        self.command = list(command)


class Executor(Protocol):
    """Callable contract for running an external command."""

    async def __call__(
        self, cwd: Path, name: str, *args: str, timeout: float | None = None
    ) -> CommandOutput: ...


async def _terminate(process: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    await process.wait()


async def run_command(
    cwd: Path,
    name: str,
    *args: str,
    timeout: float | None = None,
) -> CommandOutput:
    """Execute *name* with *args* in *cwd* and wait for it to finish.

    Cancelling the awaiting task kills the child process before the
    cancellation propagates.

    Args:
        cwd: Working directory for the subprocess.
        name: Executable to run (looked up on ``PATH``).
        *args: Command arguments.
        timeout: Maximum seconds to wait. ``None`` waits indefinitely.

    Returns:
        CommandOutput with the combined output and exit code.

    Raises:
        LaunchError: If the executable is missing, the working directory does
            not exist, or the OS refuses to start the process.
        ValueError: If *name* is empty or *timeout* is not positive.
    """
    if not name:
        raise ValueError("Command cannot be empty")

    if timeout is not None and timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    command = [name, *args]
    work_dir = Path(cwd)
    if not work_dir.is_dir():
        raise LaunchError(f"Working directory does not exist: {work_dir}", command)

    logger.debug("Running command: %s (cwd=%s, timeout=%s)", " ".join(command), work_dir, timeout)

    start_time = time.perf_counter()

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            cwd=work_dir,
        )
    except FileNotFoundError as exc:
        logger.error("Command not found: %s", name)
        raise LaunchError(f"Command not found: {name}", command) from exc
    except OSError as exc:
        raise LaunchError(f"Failed to start {name}: {exc}", command) from exc

    timed_out = False
    try:
        output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Command timed out after %s seconds: %s", timeout, name)
        timed_out = True
        await _terminate(process)
        output = b""
    except asyncio.CancelledError:
        logger.info("Command cancelled, killing %s (pid %s)", name, process.pid)
        await asyncio.shield(_terminate(process))
        raise

    duration_ms = (time.perf_counter() - start_time) * 1000
    exit_code = -1 if timed_out else (process.returncode or 0)

    logger.debug(
        "Command completed: exit_code=%d, duration=%.2fms, timed_out=%s",
        exit_code,
        duration_ms,
        timed_out,
    )

    return CommandOutput(
        output=output or b"",
        exit_code=exit_code,
        timed_out=timed_out,
        duration_ms=duration_ms,
    )
