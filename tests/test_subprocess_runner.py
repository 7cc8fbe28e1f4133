"""Tests for the subprocess executor."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from seer.utils.subprocess_runner import LaunchError, run_command

# ── Basic Execution Tests ────────────────────────────────────────────


@pytest.mark.asyncio
async def test_run_command_success(tmp_path: Path) -> None:
    """Test successful command execution."""
    result = await run_command(tmp_path, "echo", "hello", "world")

    assert result.exit_code == 0
    assert b"hello world" in result.output
    assert result.timed_out is False
    assert result.duration_ms > 0


@pytest.mark.asyncio
async def test_run_command_uses_working_directory(tmp_path: Path) -> None:
    (tmp_path / "marker.txt").write_text("content")

    result = await run_command(tmp_path, "ls")

    assert b"marker.txt" in result.output


@pytest.mark.asyncio
async def test_run_command_combines_stdout_and_stderr(tmp_path: Path) -> None:
    script = "import sys; print('out', flush=True); sys.stderr.write('err')"
    result = await run_command(tmp_path, sys.executable, "-c", script)

    assert b"out" in result.output
    assert b"err" in result.output


@pytest.mark.asyncio
async def test_nonzero_exit_is_not_an_error(tmp_path: Path) -> None:
    """A process that starts and fails reports its exit code without raising."""
    result = await run_command(tmp_path, sys.executable, "-c", "import sys; sys.exit(42)")

    assert result.exit_code == 42


# ── Launch Errors ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_command_not_found_raises_launch_error(tmp_path: Path) -> None:
    with pytest.raises(LaunchError, match="Command not found") as exc_info:
        await run_command(tmp_path, "nonexistent_command_xyz123", "arg")

    assert exc_info.value.command == ["nonexistent_command_xyz123", "arg"]


@pytest.mark.asyncio
async def test_missing_working_directory_raises_launch_error() -> None:
    with pytest.raises(LaunchError, match="Working directory does not exist"):
        await run_command(Path("/nonexistent/path/xyz"), "echo", "test")


@pytest.mark.asyncio
async def test_empty_command_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Command cannot be empty"):
        await run_command(tmp_path, "")


@pytest.mark.asyncio
async def test_invalid_timeout_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Timeout must be positive"):
        await run_command(tmp_path, "echo", timeout=0)


# ── Timeout and Cancellation ─────────────────────────────────────────


@pytest.mark.asyncio
async def test_timeout_kills_process(tmp_path: Path) -> None:
    start = time.perf_counter()
    result = await run_command(
        tmp_path, sys.executable, "-c", "import time; time.sleep(10)", timeout=0.2
    )

    assert result.timed_out is True
    assert result.exit_code == -1
    assert time.perf_counter() - start < 5


@pytest.mark.asyncio
async def test_cancellation_kills_process(tmp_path: Path) -> None:
    """Cancelling the awaiting task terminates the child process."""
    pid_file = tmp_path / "pid"
    script = (
        "import os, time, pathlib; "
        f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
        "time.sleep(30)"
    )
    task = asyncio.create_task(run_command(tmp_path, sys.executable, "-c", script))

    for _ in range(100):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    pid = int(pid_file.read_text())
    # the child has been reaped, so the pid no longer exists
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
