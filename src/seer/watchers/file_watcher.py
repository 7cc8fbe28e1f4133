"""Event-driven filesystem watcher that batches source changes.

Registers every directory under the project root with a notification
backend, classifies raw events into a :class:`~seer.models.event.Batch`,
and flushes the batch onto a :class:`BatchChannel` on a fixed interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Generic, TypeVar

from seer.models.event import Batch, Operation
from seer.watchers.notifier import EventOp, Notifier, RawEvent, WatchdogNotifier

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_CLOSED = object()


class WatcherError(Exception):
    """Base class for watcher failures."""


class WatcherStartError(WatcherError):
    """Raised when the backend cannot initialize or the initial walk fails."""


class WatchEventError(WatcherError):
    """Raised when a single filesystem event cannot be classified."""


class ChannelClosedError(WatcherError):
    """Raised when sending on a closed channel."""


class WatcherState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class FileWatchConfig:
    """Configuration for the file watcher."""

    skip_dirs: list[str] = field(default_factory=lambda: ["vendor"])
    """Directory names pruned from the walk in addition to dot and ``~`` names."""

    source_suffixes: tuple[str, ...] = (".go",)
    """File suffixes whose changes are batched."""

    flush_interval: float = 0.5
    """Seconds between flush checks."""


class BatchChannel(Generic[_T]):
    """Single-producer, single-consumer rendezvous channel.

    :meth:`send` returns only after the consumer has taken the item, so at
    most one item is ever in flight. Closing delivers end-of-stream to the
    consumer once any item already in flight has been taken.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, item: _T) -> None:
        """Hand *item* to the consumer and wait until it has been received.

        Raises:
            ChannelClosedError: If the channel is already closed.
        """
        if self._closed:
            raise ChannelClosedError("send on closed channel")
        self._queue.put_nowait(item)
        await self._queue.join()

    def close(self) -> None:
        """Signal end-of-stream. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def receive(self) -> _T | None:
        """Return the next item, or ``None`` once the channel is closed."""
        item = await self._queue.get()
        self._queue.task_done()
        if item is _CLOSED:
            # keep end-of-stream visible to later receivers
            self._queue.put_nowait(_CLOSED)
            return None
        return item  # type: ignore[return-value]

    def __aiter__(self) -> AsyncIterator[_T]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[_T]:
        while True:
            item = await self.receive()
            if item is None:
                return
            yield item


class FileWatcher:
    """Watches a source tree and emits batches of changed source files.

    Lifecycle: ``IDLE`` -> :meth:`start` -> ``RUNNING`` -> :meth:`stop` ->
    ``STOPPED``. A single asyncio task processes backend events and timer
    ticks; while a flush is waiting for the consumer no new events are
    classified.
    """

    def __init__(
        self,
        root_dir: Path,
        config: FileWatchConfig | None = None,
        *,
        notifier_factory: Callable[[], Notifier] = WatchdogNotifier,
    ) -> None:
        """Initialize the file watcher.

        Args:
            root_dir: Root directory of the project to watch.
            config: Watcher configuration. Uses defaults if not provided.
            notifier_factory: Creates the notification backend on :meth:`start`.
        """
        self._root_dir = Path(root_dir).resolve()
        self._config = config or FileWatchConfig()
        self._notifier_factory = notifier_factory
        self._notifier: Notifier | None = None
        self._batch = Batch()
        self._channel: BatchChannel[Batch] = BatchChannel()
        self._task: asyncio.Task[None] | None = None
        self._state = WatcherState.IDLE

    @property
    def state(self) -> WatcherState:
        return self._state

    @property
    def batch(self) -> Batch:
        """The batch currently being accumulated."""
        return self._batch

    def channel(self) -> BatchChannel[Batch]:
        """Return the channel that flushed batches are sent on."""
        return self._channel

    def watch_list(self) -> list[str]:
        """Directories currently registered with the backend."""
        return self._notifier.watch_list() if self._notifier else []

    async def start(self) -> None:
        """Register the directory tree and start the processing loop.

        Raises:
            WatcherError: If the watcher was already started.
            WatcherStartError: If the backend cannot initialize or the
                directory walk fails.
        """
        if self._state is not WatcherState.IDLE:
            raise WatcherError(f"cannot start watcher in state {self._state.value}")

        try:
            self._notifier = self._notifier_factory()
        except OSError as exc:
            raise WatcherStartError(f"failed to initialize notifier: {exc}") from exc

        try:
            self.register_tree(str(self._root_dir))
        except OSError as exc:
            self._notifier.close()
            raise WatcherStartError(f"failed to traverse sub directories: {exc}") from exc

        self._state = WatcherState.RUNNING
        self._task = asyncio.create_task(self._watch(), name="seer-watcher")

    async def stop(self) -> None:
        """Stop the loop, close the backend and close the output channel.

        Safe to call more than once.

        Raises:
            WatcherError: If the backend failed to close. The channel is
                closed regardless.
        """
        if self._state is WatcherState.STOPPED:
            return
        self._state = WatcherState.STOPPED

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        try:
            if self._notifier is not None:
                self._notifier.close()
        except OSError as exc:
            raise WatcherError(f"failed to close notifier: {exc}") from exc
        finally:
            self._channel.close()
            logger.info("File watcher stopped")

    # ── Directory registration ───────────────────────────────────────

    def should_skip(self, name: str) -> bool:
        """Return True for names that are never watched or batched."""
        if name.startswith(".") or name.endswith("~"):
            return True
        return name in self._config.skip_dirs

    def register_tree(self, top: str) -> None:
        """Register *top* and every non-skipped directory below it.

        Skipped directories are pruned together with their subtree.

        Raises:
            OSError: If the walk or a registration fails.
        """
        if self._notifier is None:
            raise WatcherError("watcher has no notifier")

        if self.should_skip(os.path.basename(os.path.normpath(top))):
            logger.info("Ignoring skip-able directory %s", top)
            return

        def _raise(exc: OSError) -> None:
            raise exc

        for dirpath, dirnames, _ in os.walk(top, onerror=_raise):
            self._notifier.add(dirpath)
            logger.debug("Directory added to notifier: %s", dirpath)

            kept = []
            for name in dirnames:
                if self.should_skip(name):
                    logger.info("Ignoring skip-able directory %s", os.path.join(dirpath, name))
                    continue
                kept.append(name)
            dirnames[:] = kept

    # ── Event loop ───────────────────────────────────────────────────

    async def _watch(self) -> None:
        assert self._notifier is not None
        notifier = self._notifier
        loop = asyncio.get_running_loop()
        interval = self._config.flush_interval

        logger.info("Watching for changes across %d directories", len(notifier.watch_list()))

        event_get: asyncio.Future[RawEvent] | None = None
        error_get: asyncio.Future[Exception] | None = None
        next_tick = loop.time() + interval

        try:
            while True:
                if event_get is None:
                    event_get = asyncio.ensure_future(notifier.events.get())
                if error_get is None:
                    error_get = asyncio.ensure_future(notifier.errors.get())

                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait(
                    {event_get, error_get},
                    timeout=timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if error_get in done:
                    logger.error("Notifier error: %s", error_get.result())
                    error_get = None

                if event_get in done:
                    raw = event_get.result()
                    event_get = None
                    try:
                        self.handle_event(raw)
                    except WatchEventError as exc:
                        logger.error("Error handling %s event for %s: %s", raw.op, raw.path, exc)

                now = loop.time()
                if now >= next_tick:
                    await self._flush()
                    # like a ticker, ticks missed while flushing are dropped
                    next_tick += interval * (int((loop.time() - next_tick) / interval) + 1)
        finally:
            for pending in (event_get, error_get):
                if pending is not None:
                    pending.cancel()

    async def _flush(self) -> None:
        if not self._batch.events:
            return

        batch = self._batch
        self._batch = Batch()

        logger.info("Publishing %d events", len(batch))
        await self._channel.send(batch)

    # ── Classification ───────────────────────────────────────────────

    def _should_skip_path(self, path: str) -> bool:
        try:
            relative = Path(path).relative_to(self._root_dir)
        except ValueError:
            relative = Path(Path(path).name)
        return any(self.should_skip(part) for part in relative.parts)

    def _is_source_file(self, path: str) -> bool:
        return path.endswith(self._config.source_suffixes)

    def handle_event(self, event: RawEvent) -> None:
        """Classify one raw event into the current batch.

        Raises:
            WatchEventError: If a created path cannot be inspected or a new
                directory cannot be registered.
        """
        logger.debug("New %s event received for %s", event.op, event.path)

        if EventOp.CHMOD in event.op or self._should_skip_path(event.path):
            logger.debug("Skipping %s event for %s", event.op, event.path)
            return

        if EventOp.REMOVE in event.op or EventOp.RENAME in event.op:
            # a directory that reappears under this name is registered afresh
            self._forget(event.path)

        if EventOp.WRITE in event.op:
            self._handle_write(event.path)
        elif EventOp.CREATE in event.op:
            self._handle_create(event.path)
        elif EventOp.REMOVE in event.op:
            self._handle_remove(event.path)
        else:
            logger.debug("Event not handled: %s %s", event.op, event.path)

    def _forget(self, path: str) -> None:
        if self._notifier is not None:
            self._notifier.remove(path)

    def _handle_write(self, path: str) -> None:
        if self._is_source_file(path):
            logger.info("File written: %s", path)
            self._batch.add(path, Operation.WRITE)

    def _handle_remove(self, path: str) -> None:
        if self._is_source_file(path):
            logger.info("File deleted: %s", path)
            self._batch.add(path, Operation.DELETE)

    def _handle_create(self, path: str) -> None:
        try:
            is_dir = stat.S_ISDIR(os.stat(path).st_mode)
        except FileNotFoundError:
            logger.debug("Ignoring event, %s no longer exists", path)
            return
        except OSError as exc:
            raise WatchEventError(f"failed to stat {path}: {exc}") from exc

        if is_dir:
            try:
                self.register_tree(path)
            except OSError as exc:
                raise WatchEventError(f"failed to walk new directory {path}: {exc}") from exc

        if self._is_source_file(path):
            logger.info("File created, adding to batch: %s", path)
            self._batch.add(path, Operation.CREATE)
