import pytest

from voxelcraft.chunk import Chunk, GenProgress
from voxelcraft.chunkworker import ChunkWorker
from voxelcraft.workqueue import WorkerItem, WorkerItemType


def _queued(worker, item_type, chunk):
    return worker.queue.add_item(WorkerItem(item_type, chunk))


def test_process_calls_handlers_and_updates_progress():
    worker = ChunkWorker()
    seen = []
    worker.add_handler(WorkerItemType.BASE_GEN, lambda q, item: seen.append(item.chunk), owner="gen")
    chunk = Chunk(0, 0)
    worker.process(worker.queue.drain() or [_queued(worker, WorkerItemType.BASE_GEN, chunk)])
    assert seen == [chunk]
    assert chunk.gen_progress == GenProgress.TERRAIN
    assert chunk.tasks_running == 0


def test_decorate_finishes_chunk():
    worker = ChunkWorker()
    chunk = Chunk(0, 0)
    item = _queued(worker, WorkerItemType.DECORATE, chunk)
    worker.process([item])
    assert chunk.gen_progress == GenProgress.FINISHED


def test_poly_gen_decrements_graphical_tasks():
    worker = ChunkWorker()
    chunk = Chunk(0, 0)
    item = _queued(worker, WorkerItemType.POLY_GEN, chunk)
    worker.process([item])
    assert chunk.graphical_tasks_running == 0
    assert chunk.tasks_running == 0
    assert chunk.gen_progress == GenProgress.EMPTY


def test_process_runs_newest_first():
    worker = ChunkWorker()
    order = []
    worker.add_handler(WorkerItemType.SAVE, lambda q, item: order.append(item.chunk.x), owner=None)
    items = [_queued(worker, WorkerItemType.SAVE, Chunk(i, 0)) for i in range(3)]
    worker.process(items)
    assert order == [2, 1, 0]


def test_stale_item_is_skipped():
    worker = ChunkWorker()
    calls = []
    worker.add_handler(WorkerItemType.LOAD, lambda q, item: calls.append(item), owner=None)
    chunk = Chunk(0, 0)
    chunk.tasks_running = 1
    worker.process([WorkerItem(WorkerItemType.LOAD, chunk, uuid=chunk.uuid ^ 1)])
    assert calls == []
    assert chunk.tasks_running == 1


def test_inactive_handler_not_called():
    worker = ChunkWorker()
    owner_a, owner_b = object(), object()
    calls = []
    worker.add_handler(WorkerItemType.LOAD, lambda q, item: calls.append("a"), owner=owner_a)
    worker.add_handler(WorkerItemType.LOAD, lambda q, item: calls.append("b"), owner=owner_b)
    worker.set_handler_active(WorkerItemType.LOAD, owner_a, False)
    worker.process([_queued(worker, WorkerItemType.LOAD, Chunk(0, 0))])
    assert calls == ["b"]
    worker.set_handler_active(WorkerItemType.LOAD, owner_a, True)
    worker.process([_queued(worker, WorkerItemType.LOAD, Chunk(1, 0))])
    assert calls == ["b", "a", "b"]


def test_handler_receives_worker_queue():
    worker = ChunkWorker()
    queues = []
    worker.add_handler(WorkerItemType.LOAD, lambda q, item: queues.append(q), owner=None)
    worker.process([_queued(worker, WorkerItemType.LOAD, Chunk(0, 0))])
    assert queues == [worker.queue]


def test_threaded_worker_processes_queue():
    seen = []
    with ChunkWorker() as worker:
        worker.add_handler(WorkerItemType.BASE_GEN, lambda q, item: seen.append(item.chunk), owner=None)
        chunks = [Chunk(i, i) for i in range(5)]
        for chunk in chunks:
            _queued(worker, WorkerItemType.BASE_GEN, chunk)
        worker.finish()
        assert sorted(c.x for c in seen) == [c.x for c in chunks]
        assert all(c.gen_progress == GenProgress.TERRAIN for c in chunks)
        assert len(worker.queue) == 0


def test_stop_works_off_remaining_items():
    worker = ChunkWorker()
    worker.start()
    chunk = Chunk(0, 0)
    _queued(worker, WorkerItemType.DECORATE, chunk)
    worker.stop()
    assert chunk.gen_progress == GenProgress.FINISHED
    assert chunk.tasks_running == 0


def test_finish_without_thread_raises():
    with pytest.raises(RuntimeError):
        ChunkWorker().finish()


def test_start_twice_raises():
    with ChunkWorker() as worker:
        with pytest.raises(RuntimeError):
            worker.start()