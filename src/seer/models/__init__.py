"""Data models shared between the watcher and the runner."""

from seer.models.event import Batch, Operation
from seer.models.result import CleanupError, Package, Result, TestEvent

__all__ = [
    "Batch",
    "CleanupError",
    "Operation",
    "Package",
    "Result",
    "TestEvent",
]
