"""The loaded world: a cache of chunks around the player and a pool to recycle them."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum

from voxelcraft.chunk import (
    CHUNK_HEIGHT,
    CHUNK_SIZE,
    CLUSTER_PER_CHUNK,
    Block,
    Chunk,
    GenProgress,
    to_chunk_coord,
    to_local_coord,
)
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue

CHUNKCACHE_SIZE = 9
CHUNKPOOL_SIZE = CHUNKCACHE_SIZE * CHUNKCACHE_SIZE + CHUNKCACHE_SIZE * 6
RANDOMTICKS_PER_CHUNK = 32

_INT_MAX = 2**31 - 1
_MASK32 = 0xFFFFFFFF


class WorldGenType(IntEnum):
    """Terrain generator used for a world."""

    SMEA = 0
    SUPER_FLAT = 1


@dataclass
class GenSettings:
    """Seed and generator of a world."""

    seed: int = 28112000
    type: WorldGenType = WorldGenType.SUPER_FLAT


RandomTick = Callable[["World", Chunk, list[int], list[int], list[int]], None]


class _Xorshift32:
    def __init__(self, seed: int) -> None:
        self.state = (seed & _MASK32) or 1

    def next(self) -> int:
        x = self.state
        x ^= (x << 13) & _MASK32
        x ^= x >> 17
        x ^= (x << 5) & _MASK32
        self.state = x
        return x


class World:
    """Blocks of the chunks cached around ``(cache_translation_x, cache_translation_z)``.

    ``random_tick``, when set, is called for each fully generated chunk on every
    tick with the local x, y and z coordinates of its random block ticks.
    """

    def __init__(self, workqueue: WorkQueue, random_tick: RandomTick | None = None) -> None:
        self.name = "TestWelt"
        self.workqueue = workqueue
        self.gen_settings = GenSettings()
        self.random_tick = random_tick
        self.reset()

    def reset(self) -> None:
        """Empty the cache and refill the chunk pool."""
        self.cache_translation_x = 0
        self.cache_translation_z = 0
        self.chunk_cache: list[list[Chunk | None]] = [
            [None] * CHUNKCACHE_SIZE for _ in range(CHUNKCACHE_SIZE)
        ]
        self.free_chunks: list[Chunk] = [Chunk(_INT_MAX, _INT_MAX) for _ in range(CHUNKPOOL_SIZE)]
        self._random = _Xorshift32(random.getrandbits(32))

    def load_chunk(self, x: int, z: int) -> Chunk | None:
        """Take a chunk from the pool for (x, z); None if the pool has none to spare.

        A pooled chunk still holding (x, z) is handed back as it is; otherwise
        an idle one is started over and a load job is queued for it.
        """
        for i, chunk in enumerate(self.free_chunks):
            if chunk.x == x and chunk.z == z:
                del self.free_chunks[i]
                chunk.references += 1
                return chunk
        for i, chunk in enumerate(self.free_chunks):
            if not chunk.tasks_running:
                del self.free_chunks[i]
                chunk = Chunk(x, z)
                self.workqueue.add_item(WorkerItem(WorkerItemType.LOAD, chunk))
                chunk.references += 1
                return chunk
        return None

    def unload_chunk(self, chunk: Chunk) -> None:
        """Queue the chunk for saving and give it back to the pool."""
        self.workqueue.add_item(WorkerItem(WorkerItemType.SAVE, chunk))
        self.free_chunks.append(chunk)
        chunk.references -= 1

    def get_chunk(self, x: int, z: int) -> Chunk | None:
        """The cached chunk at chunk coordinates (x, z), or None."""
        half = CHUNKCACHE_SIZE // 2
        low_x = self.cache_translation_x - half
        low_z = self.cache_translation_z - half
        if low_x <= x <= self.cache_translation_x + half and low_z <= z <= self.cache_translation_z + half:
            return self.chunk_cache[x - low_x][z - low_z]
        return None

    def _chunk_at(self, x: int, z: int) -> Chunk | None:
        return self.get_chunk(to_chunk_coord(x), to_chunk_coord(z))

    def get_block(self, x: int, y: int, z: int) -> Block:
        """The block at world coordinates; air outside the loaded area."""
        if not 0 <= y < CHUNK_HEIGHT:
            return Block.AIR
        chunk = self._chunk_at(x, z)
        if chunk is None:
            return Block.AIR
        return chunk.get_block(to_local_coord(x), y, to_local_coord(z))

    def get_metadata(self, x: int, y: int, z: int) -> int:
        """The metadata at world coordinates; 0 outside the loaded area."""
        if not 0 <= y < CHUNK_HEIGHT:
            return 0
        chunk = self._chunk_at(x, z)
        if chunk is None:
            return 0
        return chunk.get_metadata(to_local_coord(x), y, to_local_coord(z))

    def _edit(self, x: int, y: int, z: int, change: Callable[[Chunk, int, int], None]) -> None:
        if not 0 <= y < CHUNK_HEIGHT:
            return
        cx, cz = to_chunk_coord(x), to_chunk_coord(z)
        chunk = self.get_chunk(cx, cz)
        if chunk is None:
            return
        lx, lz = to_local_coord(x), to_local_coord(z)
        change(chunk, lx, lz)
        self._notify_neighbours(chunk, cx, cz, lx, lz, y)

    def _notify_neighbours(self, chunk: Chunk, cx: int, cz: int, lx: int, lz: int, y: int) -> None:
        cluster = y // CHUNK_SIZE
        edge = CHUNK_SIZE - 1
        for on_edge, dx, dz in ((lx == 0, -1, 0), (lx == edge, 1, 0), (lz == 0, 0, -1), (lz == edge, 0, 1)):
            if on_edge:
                neighbour = self.get_chunk(cx + dx, cz + dz)
                if neighbour is not None:
                    neighbour.request_graphics_update(cluster)
        ly = to_local_coord(y)
        if ly == 0 and cluster - 1 >= 0:
            chunk.request_graphics_update(cluster - 1)
        if ly == edge and cluster + 1 < CLUSTER_PER_CHUNK:
            chunk.request_graphics_update(cluster + 1)

    def set_block(self, x: int, y: int, z: int, block: Block) -> None:
        """Place a block; ignored outside the loaded area."""
        self._edit(x, y, z, lambda chunk, lx, lz: chunk.set_block(lx, y, lz, block))

    def set_block_and_meta(self, x: int, y: int, z: int, block: Block, metadata: int) -> None:
        """Place a block with its metadata; ignored outside the loaded area."""
        self._edit(x, y, z, lambda chunk, lx, lz: chunk.set_block_and_meta(lx, y, lz, block, metadata))

    def set_metadata(self, x: int, y: int, z: int, metadata: int) -> None:
        """Change a block's metadata; ignored outside the loaded area."""
        self._edit(x, y, z, lambda chunk, lx, lz: chunk.set_metadata(lx, y, lz, metadata))

    def get_height(self, x: int, z: int) -> int:
        """Height of the column at world (x, z); 0 outside the loaded area."""
        chunk = self._chunk_at(x, z)
        if chunk is None:
            return 0
        return chunk.get_height(to_local_coord(x), to_local_coord(z))

    def update_chunk_cache(self, origin_x: int, origin_z: int) -> None:
        """Centre the cache on a chunk, loading new chunks and unloading those left behind.

        Cells of the cache that are still empty are loaded as well, so the first
        call fills the cache.
        """
        same_origin = origin_x == self.cache_translation_x and origin_z == self.cache_translation_z
        if same_origin and all(chunk is not None for row in self.chunk_cache for chunk in row):
            return
        half = CHUNKCACHE_SIZE // 2
        old = [row[:] for row in self.chunk_cache]
        old_x = self.cache_translation_x - half
        old_z = self.cache_translation_z - half
        diff_x = origin_x - self.cache_translation_x
        diff_z = origin_z - self.cache_translation_z

        for i in range(CHUNKCACHE_SIZE):
            for j in range(CHUNKCACHE_SIZE):
                wx = origin_x + i - half
                wz = origin_z + j - half
                kept = None
                if old_x <= wx < old_x + CHUNKCACHE_SIZE and old_z <= wz < old_z + CHUNKCACHE_SIZE:
                    kept = old[i + diff_x][j + diff_z]
                    old[i + diff_x][j + diff_z] = None
                self.chunk_cache[i][j] = kept if kept is not None else self.load_chunk(wx, wz)

        for row in old:
            for chunk in row:
                if chunk is not None:
                    self.unload_chunk(chunk)

        self.cache_translation_x = origin_x
        self.cache_translation_z = origin_z

    def tick(self) -> None:
        """Queue generation work and run random block ticks."""
        last = CHUNKCACHE_SIZE - 1
        for x, row in enumerate(self.chunk_cache):
            for z, chunk in enumerate(row):
                if chunk is None:
                    continue
                if chunk.gen_progress == GenProgress.EMPTY and not chunk.tasks_running:
                    self.workqueue.add_item(WorkerItem(WorkerItemType.BASE_GEN, chunk))

                if 0 < x < last and 0 < z < last and chunk.gen_progress == GenProgress.TERRAIN and not chunk.tasks_running:
                    if self._decoration_ready(x, z):
                        self.workqueue.add_item(WorkerItem(WorkerItemType.DECORATE, chunk))
                    values = [to_local_coord(self._random.next()) for _ in range(3 * RANDOMTICKS_PER_CHUNK)]
                    if self.random_tick is not None:
                        self.random_tick(self, chunk, values[0::3], values[1::3], values[2::3])

    def _decoration_ready(self, x: int, z: int) -> bool:
        for dx in (-1, 0, 1):
            for dz in (-1, 0, 1):
                border = self.chunk_cache[x + dx][z + dz]
                if border is None or border.gen_progress == GenProgress.EMPTY or not border.tasks_running:
                    return False
        return True