"""Test run result models.

A ``Result`` aggregates one ``go test -json`` invocation: per-package
``Package`` records built from the stream of ``TestEvent`` lines, plus the
run-scoped scratch directory that holds the coverage profile.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

# Go emits RFC 3339 timestamps with nanosecond precision; datetime stops at microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


class CleanupError(Exception):
    """Raised when a result's scratch directory cannot be deleted."""


class EventDecodeError(ValueError):
    """Raised when a line is not a well-formed test event."""


def _parse_time(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise EventDecodeError(f"Time must be a string, got {type(value).__name__}")
    try:
        return datetime.fromisoformat(_FRACTION_RE.sub(r"\1", value))
    except ValueError as exc:
        raise EventDecodeError(f"invalid Time {value!r}") from exc


def _parse_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise EventDecodeError(f"{key} must be a string, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class TestEvent:
    """One line of ``go test -json`` output."""

    __test__ = False

    action: str
    package: str = ""
    test: str = ""
    output: str = ""
    elapsed: float = 0.0
    time: datetime | None = None

    @classmethod
    def from_json(cls, line: bytes | str) -> TestEvent:
        """Decode a single JSON line.

        Raises:
            EventDecodeError: If the line is not a JSON object with the
                expected field types.
        """
        try:
            data = json.loads(line)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise EventDecodeError(f"invalid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise EventDecodeError(f"expected a JSON object, got {type(data).__name__}")

        elapsed = data.get("Elapsed", 0)
        if elapsed is None:
            elapsed = 0
        if isinstance(elapsed, bool) or not isinstance(elapsed, (int, float)):
            raise EventDecodeError(f"Elapsed must be a number, got {elapsed!r}")

        return cls(
            action=_parse_str(data, "Action"),
            package=_parse_str(data, "Package"),
            test=_parse_str(data, "Test"),
            output=_parse_str(data, "Output"),
            elapsed=float(elapsed),
            time=_parse_time(data.get("Time")),
        )


@dataclass
class Package:
    """Aggregated outcome of one Go package within a run."""

    name: str
    success: bool = False
    """Package-level pass flag, set by the package ``pass``/``fail`` event."""

    passed: int = 0
    failed: int = 0
    skipped: int = 0

    tests: dict[str, TestEvent] = field(default_factory=dict)
    """First event seen for each test, keyed by test name."""

    coverage: float = 0.0
    """Statement coverage percentage reported by the package."""

    elapsed: float = 0.0
    """Seconds reported by the most recent pass/fail/skip event."""

    @property
    def total(self) -> int:
        """Number of tests that reached a terminal state."""
        return self.passed + self.failed + self.skipped


@dataclass
class Result:
    """Outcome of a single test run.

    Owns the run's scratch directory until :meth:`close` deletes it.
    """

    run_id: str
    start: datetime = field(default_factory=lambda: datetime.now(UTC))
    end: datetime | None = None
    duration: float = 0.0
    """Wall-clock seconds spent in the test command."""

    exit_code: int = 0
    success: bool = True
    packages: dict[str, Package] = field(default_factory=dict)
    scratch_dir: Path | None = None

    @property
    def failed_packages(self) -> list[str]:
        """Names of packages whose package-level event was not ``pass``."""
        return [name for name, pkg in self.packages.items() if not pkg.success]

    @property
    def total_passed(self) -> int:
        return sum(pkg.passed for pkg in self.packages.values())

    @property
    def total_failed(self) -> int:
        return sum(pkg.failed for pkg in self.packages.values())

    @property
    def total_skipped(self) -> int:
        return sum(pkg.skipped for pkg in self.packages.values())

    @property
    def closed(self) -> bool:
        """Whether the scratch directory has been released."""
        return self.scratch_dir is None

    def close(self) -> None:
        """Delete the scratch directory. Calling it again is a no-op.

        Raises:
            CleanupError: If the directory could not be deleted. The handle is
                kept so a later call can retry.
        """
        if self.scratch_dir is None:
            return

        try:
            shutil.rmtree(self.scratch_dir)
        except FileNotFoundError:
            logger.debug("Scratch directory already gone: %s", self.scratch_dir)
        except OSError as exc:
            raise CleanupError(f"failed to delete temp dir {self.scratch_dir}: {exc}") from exc

        self.scratch_dir = None

    def __enter__(self) -> Result:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
