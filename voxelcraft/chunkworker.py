"""A background thread that runs queued chunk jobs through registered handlers."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from voxelcraft.chunk import GenProgress
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue

Handler = Callable[[WorkQueue, WorkerItem], None]


@dataclass
class _HandlerEntry:
    func: Handler
    owner: Any
    active: bool = True


class ChunkWorker:
    """Owns a work queue and a thread that processes it."""

    def __init__(self, queue: WorkQueue | None = None) -> None:
        self.queue = queue if queue is not None else WorkQueue()
        self.working = False
        self._handlers: dict[WorkerItemType, list[_HandlerEntry]] = {t: [] for t in WorkerItemType}
        self._thread: threading.Thread | None = None
        self._stop_requested = False

    def __enter__(self) -> ChunkWorker:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        """Start the worker thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("worker is already running")
        self._stop_requested = False
        self.working = False
        self._thread = threading.Thread(target=self._run, name="chunk-worker", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Let the thread work off the queue, then end it and wait for it."""
        if self._thread is None:
            return
        self._stop_requested = True
        self.queue.item_added.set()
        self._thread.join()
        self._thread = None

    def finish(self) -> None:
        """Block until the queue is empty and no job is being worked on."""
        if self._thread is None or not self._thread.is_alive():
            raise RuntimeError("worker is not running")
        self.queue.item_added.set()
        while self.working or len(self.queue) > 0:
            time.sleep(0.001)

    def add_handler(self, item_type: WorkerItemType, func: Handler, owner: Any) -> None:
        """Run ``func(queue, item)`` for every job of ``item_type``."""
        self._handlers[WorkerItemType(item_type)].append(_HandlerEntry(func, owner))

    def set_handler_active(self, item_type: WorkerItemType, owner: Any, active: bool) -> None:
        """Switch the first handler registered by ``owner`` on or off."""
        for entry in self._handlers[WorkerItemType(item_type)]:
            if entry.owner is owner:
                entry.active = active
                return

    def process(self, items: Sequence[WorkerItem] | Iterable[WorkerItem]) -> None:
        """Run a batch of jobs, newest first, skipping those for reused chunks."""
        for item in reversed(list(items)):
            chunk = item.chunk
            if item.uuid != chunk.uuid:
                continue
            for entry in list(self._handlers[item.type]):
                if entry.active:
                    entry.func(self.queue, item)

            if item.type == WorkerItemType.BASE_GEN:
                chunk.gen_progress = GenProgress.TERRAIN
            elif item.type == WorkerItemType.DECORATE:
                chunk.gen_progress = GenProgress.FINISHED

            chunk.tasks_running -= 1
            if item.type == WorkerItemType.POLY_GEN:
                chunk.graphical_tasks_running -= 1

    def _run(self) -> None:
        while not self._stop_requested or len(self.queue) > 0:
            self.working = False
            self.queue.item_added.wait()
            self.queue.item_added.clear()
            self.working = True
            self.process(self.queue.drain())
        self.working = False