"""Filesystem notification backends.

A backend registers individual directories and delivers raw events and
backend errors on two asyncio queues. ``WatchdogNotifier`` is the production
backend; tests substitute an in-memory one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Flag, auto

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

logger = logging.getLogger(__name__)


class EventOp(Flag):
    """Raw operation bits reported by a backend."""

    CREATE = auto()
    WRITE = auto()
    REMOVE = auto()
    RENAME = auto()
    CHMOD = auto()

    def __str__(self) -> str:
        return "|".join(op.name for op in EventOp if op in self and op.name)


@dataclass(frozen=True)
class RawEvent:
    """A single unclassified filesystem event."""

    path: str
    op: EventOp


class Notifier(ABC):
    """Directory-level change notification backend.

    Implementations must be created while an event loop is running; events and
    errors are always delivered on that loop.
    """

    def __init__(self) -> None:
        self.events: asyncio.Queue[RawEvent] = asyncio.Queue()
        self.errors: asyncio.Queue[Exception] = asyncio.Queue()

    @abstractmethod
    def add(self, path: str) -> None:
        """Register a single directory (not its subtree) for notifications.

        Raises:
            OSError: If the directory cannot be watched.
        """

    @abstractmethod
    def remove(self, path: str) -> None:
        """Forget *path* and every registered directory below it.

        Unknown paths are ignored.
        """

    @abstractmethod
    def watch_list(self) -> list[str]:
        """Return the directories currently registered."""

    @abstractmethod
    def close(self) -> None:
        """Stop delivering events and release backend resources."""


class _QueueingHandler(FileSystemEventHandler):
    """Forwards watchdog callbacks from the observer thread onto the loop."""

    def __init__(self, notifier: WatchdogNotifier) -> None:
        self._notifier = notifier

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            raw_events = _translate(event)
        except Exception as exc:
            self._notifier.publish_error(exc)
            return
        for raw in raw_events:
            self._notifier.publish(raw)


def _translate(event: FileSystemEvent) -> list[RawEvent]:
    src = os.fsdecode(event.src_path)

    if event.event_type == EVENT_TYPE_CREATED:
        return [RawEvent(src, EventOp.CREATE)]
    if event.event_type == EVENT_TYPE_MODIFIED:
        # inotify reports a directory as modified whenever its entries change
        op = EventOp.CHMOD if event.is_directory else EventOp.WRITE
        return [RawEvent(src, op)]
    if event.event_type == EVENT_TYPE_DELETED:
        return [RawEvent(src, EventOp.REMOVE)]
    if event.event_type == EVENT_TYPE_MOVED:
        dest = os.fsdecode(event.dest_path)
        return [RawEvent(src, EventOp.RENAME), RawEvent(dest, EventOp.CREATE)]

    # opened / closed notifications carry no content change
    return [RawEvent(src, EventOp.CHMOD)]


def _is_within(path: str, top: str) -> bool:
    return path == top or path.startswith(top.rstrip(os.sep) + os.sep)


class WatchdogNotifier(Notifier):
    """Backend built on a ``watchdog`` observer.

    The first directory added that is not below an existing watch gets one
    recursive watch, so a whole tree shares a single emitter and inotify
    instance. Directories added below it are only recorded; events from
    pruned subtrees still arrive and are filtered by the caller.
    """

    def __init__(self) -> None:
        super().__init__()
        self._loop = asyncio.get_running_loop()
        self._handler = _QueueingHandler(self)
        self._watches: dict[str, ObservedWatch] = {}
        self._registered: dict[str, None] = {}
        self._closed = False
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.start()

    def add(self, path: str) -> None:
        if path in self._registered:
            return
        if not any(_is_within(path, top) for top in self._watches):
            self._watches[path] = self._observer.schedule(self._handler, path, recursive=True)
            logger.debug("Recursive watch scheduled on %s", path)
        self._registered[path] = None

    def remove(self, path: str) -> None:
        for registered in [p for p in self._registered if _is_within(p, path)]:
            del self._registered[registered]

        for top in [t for t in self._watches if _is_within(t, path)]:
            watch = self._watches.pop(top)
            # the emitter may already have stopped with its directory
            with contextlib.suppress(KeyError):
                self._observer.unschedule(watch)
            logger.debug("Watch on %s removed", top)

    def watch_list(self) -> list[str]:
        return list(self._registered)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._observer.unschedule_all()
        self._observer.stop()
        self._observer.join()
        self._watches.clear()
        self._registered.clear()

    def publish(self, event: RawEvent) -> None:
        if self._closed:
            return
        self._loop.call_soon_threadsafe(self.events.put_nowait, event)

    def publish_error(self, exc: Exception) -> None:
        if self._closed:
            return
        logger.debug("Backend error: %s", exc)
        self._loop.call_soon_threadsafe(self.errors.put_nowait, exc)
