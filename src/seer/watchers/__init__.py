"""Filesystem watching: notification backends and the batching watcher."""

from seer.watchers.file_watcher import (
    BatchChannel,
    ChannelClosedError,
    FileWatchConfig,
    FileWatcher,
    WatcherError,
    WatchEventError,
    WatcherStartError,
    WatcherState,
)
from seer.watchers.notifier import EventOp, Notifier, RawEvent, WatchdogNotifier

__all__ = [
    "BatchChannel",
    "ChannelClosedError",
    "EventOp",
    "FileWatchConfig",
    "FileWatcher",
    "Notifier",
    "RawEvent",
    "WatchEventError",
    "WatchdogNotifier",
    "WatcherError",
    "WatcherStartError",
    "WatcherState",
]
