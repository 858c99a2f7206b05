from voxelcraft.chunk import Chunk
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue


def test_add_item_stamps_uuid_and_counts_task():
    queue = WorkQueue()
    chunk = Chunk(2, 3)
    item = queue.add_item(WorkerItem(WorkerItemType.LOAD, chunk))
    assert item.uuid == chunk.uuid
    assert item.chunk is chunk
    assert chunk.tasks_running == 1
    assert chunk.graphical_tasks_running == 0


def test_add_item_overrides_given_uuid():
    queue = WorkQueue()
    chunk = Chunk(0, 0)
    item = queue.add_item(WorkerItem(WorkerItemType.SAVE, chunk, uuid=chunk.uuid ^ 1))
    assert item.uuid == chunk.uuid


def test_poly_gen_counts_as_graphical_task():
    queue = WorkQueue()
    chunk = Chunk(0, 0)
    queue.add_item(WorkerItem(WorkerItemType.POLY_GEN, chunk))
    queue.add_item(WorkerItem(WorkerItemType.POLY_GEN, chunk))
    assert chunk.tasks_running == 2
    assert chunk.graphical_tasks_running == 2


def test_drain_returns_items_in_order_and_empties():
    queue = WorkQueue()
    chunks = [Chunk(i, 0) for i in range(3)]
    for chunk in chunks:
        queue.add_item(WorkerItem(WorkerItemType.BASE_GEN, chunk))
    assert len(queue) == len(chunks)
    items = queue.drain()
    assert [item.chunk for item in items] == chunks
    assert len(queue) == 0
    assert queue.drain() == []


def test_event_set_on_add():
    queue = WorkQueue()
    assert not queue.item_added.is_set()
    queue.add_item(WorkerItem(WorkerItemType.DECORATE, Chunk(0, 0)))
    assert queue.item_added.is_set()