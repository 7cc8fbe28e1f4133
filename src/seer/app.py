"""Application loop: feeds watcher batches into test runs."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from seer.models.result import CleanupError
from seer.runners.go_test import GoTestRunner, PackageResolutionError, RunError
from seer.watchers.file_watcher import FileWatcher

if TYPE_CHECKING:
    from collections.abc import Callable

    from seer.config import SeerConfig
    from seer.models.event import Batch
    from seer.models.result import Result
    from seer.watchers.file_watcher import BatchChannel

logger = logging.getLogger(__name__)


class WatcherLike(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    def channel(self) -> BatchChannel[Batch]: ...


class RunnerLike(Protocol):
    async def run(self, *packages: str) -> Result: ...

    async def find_package(self, file: str | Path) -> str: ...


class App:
    """Watches the project and re-runs tests for the packages that changed."""

    def __init__(
        self,
        config: SeerConfig,
        *,
        watcher: WatcherLike | None = None,
        runner: RunnerLike | None = None,
        on_result: Callable[[Result], None] | None = None,
    ) -> None:
        root = Path(config.root)
        self._watcher = watcher or FileWatcher(root, config.watcher)
        self._runner = runner or GoTestRunner(root, config.runner)
        self._on_result = on_result

    async def run(self) -> None:
        """Start the watcher and process batches until its channel closes.

        Raises:
            WatcherStartError: If the watcher cannot start.
        """
        logger.info("Starting watcher")
        await self._watcher.start()

        async for batch in self._watcher.channel():
            await self.handle_batch(batch)

        logger.info("Watcher channel closed, exiting")

    async def stop(self) -> None:
        await self._watcher.stop()

    async def resolve_packages(self, batch: Batch) -> list[str]:
        """Map every changed path to its package, dropping unresolved ones."""
        packages: list[str] = []
        for path in batch.paths():
            try:
                pkg = await self._runner.find_package(path)
            except PackageResolutionError as exc:
                logger.error("Failed to find package for %s: %s", path, exc)
                continue
            if pkg and pkg not in packages:
                packages.append(pkg)
        return packages

    async def handle_batch(self, batch: Batch) -> None:
        packages = await self.resolve_packages(batch)
        if not packages:
            logger.info("No packages affected by %d changed files", len(batch))
            return

        try:
            result = await self._runner.run(*packages)
        except RunError as exc:
            logger.error("Failed to execute tests: %s", exc)
            return

        try:
            if self._on_result is not None:
                self._on_result(result)
        finally:
            try:
                result.close()
            except CleanupError as exc:
                logger.error("Failed to delete test results: %s", exc)
