"""Shared fixtures and test doubles."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import pytest

from seer.utils.subprocess_runner import CommandOutput, LaunchError
from seer.watchers.notifier import Notifier

# ── Notification backend double ──────────────────────────────────


class FakeNotifier(Notifier):
    """In-memory backend: records registrations, events are pushed by tests."""

    def __init__(self, *, fail_on: set[str] | None = None) -> None:
        super().__init__()
        self.added: list[str] = []
        self.removed: list[str] = []
        self.closed = False
        self._fail_on = fail_on or set()

    def add(self, path: str) -> None:
        if path in self._fail_on:
            raise PermissionError(f"cannot watch {path}")
        if path not in self.added:
            self.added.append(path)

    def remove(self, path: str) -> None:
        self.removed.append(path)
        prefix = path.rstrip(os.sep) + os.sep
        self.added = [p for p in self.added if p != path and not p.startswith(prefix)]

    def watch_list(self) -> list[str]:
        return list(self.added)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


# ── Executor double ──────────────────────────────────────────────


class FakeExecutor:
    """Records invocations and replays a canned command output."""

    def __init__(
        self,
        output: bytes = b"",
        exit_code: int = 0,
        *,
        error: LaunchError | None = None,
    ) -> None:
        self.output = output
        self.exit_code = exit_code
        self.error = error
        self.calls: list[tuple[Path, str, tuple[str, ...], float | None]] = []

    async def __call__(
        self, cwd: Path, name: str, *args: str, timeout: float | None = None
    ) -> CommandOutput:
        self.calls.append((cwd, name, args, timeout))
        if self.error is not None:
            raise self.error
        return CommandOutput(output=self.output, exit_code=self.exit_code)


# ── go test -json helpers ────────────────────────────────────────


def go_event(action: str, package: str = "", test: str = "", **extra: Any) -> str:
    """Build one ``go test -json`` line."""
    data: dict[str, Any] = {"Time": "2024-03-01T10:00:00.123456789Z", "Action": action}
    if package:
        data["Package"] = package
    if test:
        data["Test"] = test
    data.update(extra)
    return json.dumps(data)


def go_stream(*lines: str) -> bytes:
    return ("\n".join(lines) + "\n").encode("utf-8")


def make_tree(root: Path, rel_paths: list[str]) -> None:
    """Create directories (trailing ``/``) and empty files under *root*."""
    for rel in rel_paths:
        target = root / rel
        if rel.endswith("/"):
            target.mkdir(parents=True, exist_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.touch()
