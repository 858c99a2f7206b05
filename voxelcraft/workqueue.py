"""A thread-safe queue of chunk jobs for the background worker."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from enum import IntEnum

from voxelcraft.chunk import Chunk


class WorkerItemType(IntEnum):
    """The kind of job to run on a chunk."""

    LOAD = 0
    SAVE = 1
    BASE_GEN = 2
    DECORATE = 3
    POLY_GEN = 4


@dataclass(frozen=True)
class WorkerItem:
    """A job of some type for one chunk.

    ``uuid`` records which life of the chunk the job was queued for; the queue
    fills it in, and the worker drops jobs whose chunk has since been reused.
    """

    type: WorkerItemType
    chunk: Chunk
    uuid: int = 0


class WorkQueue:
    """Jobs waiting for the worker, with an event raised whenever one is added."""

    def __init__(self) -> None:
        self._items: list[WorkerItem] = []
        self._lock = threading.Lock()
        self.item_added = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add_item(self, item: WorkerItem) -> WorkerItem:
        """Queue a job, counting it among the chunk's running tasks."""
        chunk = item.chunk
        item = replace(item, uuid=chunk.uuid)
        chunk.tasks_running += 1
        if item.type == WorkerItemType.POLY_GEN:
            chunk.graphical_tasks_running += 1
        with self._lock:
            self._items.append(item)
        self.item_added.set()
        return item

    def drain(self) -> list[WorkerItem]:
        """Take every queued job, oldest first, leaving the queue empty."""
        with self._lock:
            items, self._items = self._items, []
        return items