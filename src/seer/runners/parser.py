"""Fold a ``go test -json`` event stream into per-package results.

``go test`` multiplexes events from concurrently running packages and tests,
so every lookup is by key. Events with a ``Test`` field update the owning
package's counters; events without one describe the package itself.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from seer.models.result import EventDecodeError, Package, TestEvent

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_COVERAGE_RE = re.compile(r"([0-9]*\.?[0-9]*)\s*%")


class ParseError(Exception):
    """Raised when a line makes the whole run's output unusable."""


class UnknownPackageError(LookupError):
    """Raised when a test event references a package not seen yet."""


class TestEventParser:
    """Incremental parser for ``go test -json`` output.

    Feed it lines as they arrive; :attr:`packages` always reflects every line
    consumed so far.
    """

    __test__ = False

    def __init__(self) -> None:
        self._packages: dict[str, Package] = {}

    @property
    def packages(self) -> dict[str, Package]:
        return self._packages

    def feed(self, line: bytes | str) -> None:
        """Fold one line into the aggregate.

        Undecodable lines, events without a package and test events for an
        unknown package are logged and skipped.

        Raises:
            ParseError: If a package's coverage line holds a malformed number.
        """
        if not line.strip():
            return

        try:
            event = TestEvent.from_json(line)
        except EventDecodeError as exc:
            logger.error("Error decoding event: %s", exc)
            return

        if not event.package:
            logger.info("Skipping event without package: %s", event)
            return

        if event.test:
            try:
                self._handle_test_event(event)
            except UnknownPackageError as exc:
                logger.error("Failed to handle event: %s", exc)
            return

        self._handle_package_event(event)

    def feed_lines(self, lines: Iterable[bytes | str]) -> None:
        for line in lines:
            self.feed(line)

    def _handle_package_event(self, event: TestEvent) -> None:
        pkg = self._packages.get(event.package)
        if pkg is None:
            logger.info("Handling new package %s", event.package)
            pkg = Package(name=event.package)
            self._packages[event.package] = pkg

        if event.action == "pass":
            pkg.success = True
            pkg.elapsed = event.elapsed
        elif event.action == "fail":
            pkg.success = False
            pkg.elapsed = event.elapsed
        elif event.action == "output":
            self._update_coverage(pkg, event)
        else:
            logger.debug("Unhandled package event: %s", event)

    def _update_coverage(self, pkg: Package, event: TestEvent) -> None:
        match = _COVERAGE_RE.search(event.output)
        if match is None:
            return
        try:
            pkg.coverage = float(match.group(1))
        except ValueError as exc:
            raise ParseError(
                f"failed to convert {match.group(1)!r} to float (package {event.package})"
            ) from exc

    def _handle_test_event(self, event: TestEvent) -> None:
        pkg = self._packages.get(event.package)
        if pkg is None:
            raise UnknownPackageError(f"package does not exist: {event.package}")

        pkg.tests.setdefault(event.test, event)

        if event.action == "pass":
            pkg.passed += 1
        elif event.action == "fail":
            pkg.failed += 1
        elif event.action == "skip":
            pkg.skipped += 1
        else:
            logger.debug("Unhandled test event: %s", event)
            return

        pkg.elapsed = event.elapsed


def parse_output(data: bytes) -> dict[str, Package]:
    """Parse a complete ``go test -json`` output buffer.

    Raises:
        ParseError: Propagated from :meth:`TestEventParser.feed`.
    """
    parser = TestEventParser()
    parser.feed_lines(data.splitlines())
    return parser.packages
