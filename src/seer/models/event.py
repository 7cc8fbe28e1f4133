"""Change operations and the batch that carries them from watcher to runner."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Operation(Enum):
    """Kind of change observed for a source file."""

    CREATE = "create"
    DELETE = "delete"
    WRITE = "write"

    def __str__(self) -> str:
        return self.name


@dataclass
class Batch:
    """Deduplicated set of changed paths collected between two flushes.

    The first operation recorded for a path wins; later operations for the
    same path are dropped until the batch is flushed.
    """

    events: dict[str, Operation] = field(default_factory=dict)

    def add(self, path: str, operation: Operation) -> None:
        """Record *operation* for *path* unless the path is already present."""
        if path in self.events:
            return
        self.events[path] = operation

    def paths(self) -> list[str]:
        """Return the changed paths. Order is not significant."""
        return list(self.events)

    def __len__(self) -> int:
        return len(self.events)
