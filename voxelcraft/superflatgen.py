"""Flat terrain: bedrock, stone, dirt and a layer of grass."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from voxelcraft.chunk import CHUNK_SIZE, Block
from voxelcraft.workqueue import WorkerItem, WorkQueue

if TYPE_CHECKING:
    from voxelcraft.world import World

LAYERS: tuple[Block, ...] = (Block.BEDROCK,) + (Block.STONE,) * 10 + (Block.DIRT,) * 5 + (Block.GRASS,)


@dataclass
class SuperFlatGen:
    """Fills each chunk with the same flat layers, bottom up."""

    world: World | None = None

    def generate(self, queue: WorkQueue, item: WorkerItem) -> None:
        """Fill the item's chunk with the flat layers."""
        chunk = item.chunk
        for y, block in enumerate(LAYERS):
            for x in range(CHUNK_SIZE):
                for z in range(CHUNK_SIZE):
                    chunk.set_block(x, y, z, block)