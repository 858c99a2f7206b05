"""Chunks of the world: columns of 16x16x16 clusters of blocks."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from voxelcraft.direction import Direction

CHUNK_SIZE = 16
CLUSTER_PER_CHUNK = 16
CHUNK_HEIGHT = CHUNK_SIZE * CLUSTER_PER_CHUNK
CLUSTER_VOLUME = CHUNK_SIZE**3


class Block(IntEnum):
    """Block types stored in a cluster."""

    AIR = 0
    STONE = 1
    DIRT = 2
    GRASS = 3
    COBBLESTONE = 4
    SAND = 5
    LOG = 6
    LEAVES = 7
    GLASS = 8
    STONEBRICK = 9
    BRICK = 10
    PLANKS = 11
    WOOL = 12
    BEDROCK = 13


TRANSPARENT_BLOCKS = frozenset({Block.AIR, Block.LEAVES, Block.GLASS})


class GenProgress(IntEnum):
    """How far generation of a chunk has come."""

    EMPTY = 0
    TERRAIN = 1
    FINISHED = 2


_SEE_THROUGH = (
    # W    E    B    T    N    S
    (255, 0, 1, 3, 6, 10),  # West
    (0, 255, 2, 4, 7, 11),  # East
    (1, 2, 255, 5, 8, 12),  # Bottom
    (3, 4, 5, 255, 9, 13),  # Top
    (6, 7, 8, 9, 255, 14),  # North
    (10, 11, 12, 13, 14, 255),  # South
)


def to_chunk_coord(coord: int) -> int:
    """The chunk (or cluster) coordinate holding a world coordinate."""
    return coord // CHUNK_SIZE


def to_local_coord(coord: int) -> int:
    """The position of a world coordinate inside its chunk."""
    return coord % CHUNK_SIZE


def see_through_bit(a: Direction, b: Direction) -> int:
    """Visibility bit meaning a cluster can be seen through from side a to side b."""
    a, b = Direction(a), Direction(b)
    if a == b or Direction.INVALID in (a, b):
        raise ValueError(f"no see-through bit for {a.name} -> {b.name}")
    return 1 << _SEE_THROUGH[a][b]


def can_see_through(visibility: int, a: Direction, b: Direction) -> bool:
    """Whether a visibility mask lets one look from side a out of side b."""
    return bool(visibility & see_through_bit(a, b))


def _index(x: int, y: int, z: int) -> int:
    return (x * CHUNK_SIZE + y) * CHUNK_SIZE + z


_UUID_MASK = 0xFFFFFFFF
_uuid_state = 314159265
_uuid_lock = threading.Lock()


def _next_uuid() -> int:
    global _uuid_state
    with _uuid_lock:
        x = _uuid_state
        x ^= (x << 13) & _UUID_MASK
        x ^= x >> 17
        x ^= (x << 5) & _UUID_MASK
        _uuid_state = x
        return x


@dataclass(eq=False)
class Cluster:
    """A 16x16x16 cube of blocks with their metadata and light nibbles."""

    y: int
    blocks: bytearray = field(default_factory=lambda: bytearray(CLUSTER_VOLUME))
    metadata_light: bytearray = field(default_factory=lambda: bytearray(CLUSTER_VOLUME))
    revision: int = 0
    empty_revision: int = 0
    empty: bool = True
    vbo: Any = None
    vertices: int = 0
    transparent_vbo: Any = None
    transparent_vertices: int = 0
    see_through: int = 0
    vbo_revision: int = 0
    force_vbo_update: bool = False

    def is_empty(self) -> bool:
        """Whether every block is air; cached per revision."""
        if self.empty_revision == self.revision:
            return self.empty
        self.empty_revision = self.revision
        self.empty = not any(self.blocks)
        return self.empty


@dataclass(eq=False)
class Chunk:
    """A full-height column of clusters at chunk coordinates (x, z)."""

    x: int
    z: int
    clusters: list[Cluster] = field(
        default_factory=lambda: [Cluster(i) for i in range(CLUSTER_PER_CHUNK)]
    )
    heightmap: bytearray = field(default_factory=lambda: bytearray(CHUNK_SIZE * CHUNK_SIZE))
    heightmap_revision: int = 0
    revision: int = 0
    display_revision: int = 0
    gen_progress: GenProgress = GenProgress.EMPTY
    tasks_running: int = 0
    graphical_tasks_running: int = 0
    uuid: int = field(default_factory=_next_uuid)
    references: int = 0
    force_vbo_update: bool = False

    def _locate(self, x: int, y: int, z: int) -> tuple[Cluster, int]:
        if not (0 <= x < CHUNK_SIZE and 0 <= z < CHUNK_SIZE and 0 <= y < CHUNK_HEIGHT):
            raise IndexError(f"block ({x}, {y}, {z}) lies outside the chunk")
        return self.clusters[y // CHUNK_SIZE], _index(x, y % CHUNK_SIZE, z)

    def get_block(self, x: int, y: int, z: int) -> Block:
        cluster, i = self._locate(x, y, z)
        return Block(cluster.blocks[i])

    def set_block(self, x: int, y: int, z: int, block: Block) -> None:
        cluster, i = self._locate(x, y, z)
        cluster.blocks[i] = int(block)
        cluster.revision += 1
        self.revision += 1

    def get_metadata(self, x: int, y: int, z: int) -> int:
        cluster, i = self._locate(x, y, z)
        return cluster.metadata_light[i] & 0xF

    def set_metadata(self, x: int, y: int, z: int, metadata: int) -> None:
        cluster, i = self._locate(x, y, z)
        cluster.metadata_light[i] = (cluster.metadata_light[i] & 0xF0) | (metadata & 0xF)
        cluster.revision += 1
        self.revision += 1

    def set_block_and_meta(self, x: int, y: int, z: int, block: Block, metadata: int) -> None:
        cluster, i = self._locate(x, y, z)
        cluster.blocks[i] = int(block)
        cluster.metadata_light[i] = (cluster.metadata_light[i] & 0xF0) | (metadata & 0xF)
        cluster.revision += 1
        self.revision += 1

    def _column_height(self, x: int, z: int) -> int | None:
        for cy in reversed(range(CLUSTER_PER_CHUNK)):
            cluster = self.clusters[cy]
            if cluster.is_empty():
                continue
            for j in reversed(range(CHUNK_SIZE)):
                if cluster.blocks[_index(x, j, z)] != Block.AIR:
                    return cy * CHUNK_SIZE + j + 1
        return None

    def generate_heightmap(self) -> None:
        """Recompute the height of every column if blocks changed since last time."""
        if self.heightmap_revision != self.revision:
            for x in range(CHUNK_SIZE):
                for z in range(CHUNK_SIZE):
                    height = self._column_height(x, z)
                    if height is not None:
                        self.heightmap[x * CHUNK_SIZE + z] = height & 0xFF
        self.heightmap_revision = self.revision

    def get_height(self, x: int, z: int) -> int:
        """One above the topmost non-air block of a column, 0 if there is none."""
        if not (0 <= x < CHUNK_SIZE and 0 <= z < CHUNK_SIZE):
            raise IndexError(f"column ({x}, {z}) lies outside the chunk")
        self.generate_heightmap()
        return self.heightmap[x * CHUNK_SIZE + z]

    def request_graphics_update(self, cluster: int) -> None:
        """Mark one cluster as needing its mesh rebuilt."""
        self.clusters[cluster].force_vbo_update = True
        self.force_vbo_update = True