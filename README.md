# voxelcraft

The core of a block-based voxel world, as a library. It covers the block data, the cache of chunks around a player, a background job worker, flat terrain, save games on disk and mesh building for clusters.

## Modules

- `voxelcraft.direction` holds `Direction`, the six block faces plus `INVALID`. Each direction has `offset()`, `opposite()` and `axis()`, and `Axis` gives the axis it runs along.
- `voxelcraft.chunk` defines `Block`, `GenProgress`, `Cluster` and `Chunk`.
  - A `Chunk` is a column of sixteen 16×16×16 clusters. It provides `get_block`/`set_block`, `get_metadata`/`set_metadata` and `set_block_and_meta`. `get_height` reads a heightmap that `generate_heightmap` builds lazily. `request_graphics_update` marks a cluster for meshing.
  - `Cluster.is_empty()` caches its answer for each revision.
  - The helpers `to_chunk_coord`, `to_local_coord`, `see_through_bit` and `can_see_through` convert coordinates and handle the see-through visibility masks.
- `voxelcraft.workqueue` has the `WorkQueue` class. It holds `WorkerItem`s, each of a `WorkerItemType`: `LOAD`, `SAVE`, `BASE_GEN`, `DECORATE` or `POLY_GEN`.
  - `add_item` stamps each item with the chunk's uuid and counts it among the chunk's running tasks.
  - `drain` takes every queued item.
- `voxelcraft.chunkworker` has the `ChunkWorker` class, which runs queued items on a background thread.
  - It passes each item to the handlers registered with `add_handler`. `set_handler_active` switches a handler on or off.
  - It skips items whose chunk has been reused, and it advances `gen_progress` after `BASE_GEN` and `DECORATE` items.
  - `start`, `finish` and `stop` control the thread, and the worker can be used as a context manager.
- `voxelcraft.world` keeps a pool of chunks in a `World` object, together with a 9×9 cache centred on `(cache_translation_x, cache_translation_z)`.
  - Blocks, metadata and heights are read and written in world coordinates. Edits on a cluster edge request graphics updates for the clusters next to it.
  - `update_chunk_cache` moves the cache. It loads chunks that enter the cache and unloads chunks that leave it, which queues `LOAD` and `SAVE` items.
  - `tick` queues `BASE_GEN` and `DECORATE` items. It also calls an optional `random_tick` callback with random local block coordinates.
  - `GenSettings` and `WorldGenType` record the seed and the generator type.
- `voxelcraft.superflatgen` has `SuperFlatGen.generate`, a worker handler. It fills a chunk with one layer of bedrock, ten of stone, five of dirt and one of grass.
- `voxelcraft.superchunk` has `SuperChunk`, which stores the chunks of an 8×8 block of columns.
  - The data goes in a `s.X.Z.dat` file as zlib-compressed MessagePack, placed on 2048-byte sectors.
  - A `s.X.Z.mp` index lists a `ChunkInfo` for each chunk.
  - `save_chunk` skips chunks whose revision is already stored.
  - Damaged or unwritable data raises `SaveError`.
- `voxelcraft.savemanager` has `SaveManager`, which keeps a world and a `PlayerState` in a directory under a saves directory.
  - `load` creates the save directory if needed and reads `level.mp`, when it exists, into the world and player.
  - `unload` writes `level.mp` and closes the open superchunks.
  - `load_chunk` and `save_chunk` are worker handlers.
- `voxelcraft.polygen` has `PolyGen`, which builds the meshes of changed clusters.
  - `generate` is a worker handler. It collects the visible `Face`s and computes each cluster's see-through mask by flood fill.
  - It turns the faces into opaque and transparent `WorldVertex` lists in a `ClusterMesh`, packed into blocks from a `VBOCache`.
  - `harvest` installs the waiting meshes on their clusters once the oldest has waited a few calls.
  - Texture positions and colours come from optional `texture` and `color` callbacks.
- `voxelcraft.vbocache` has `VBOCache`, which hands out `VBOBlock`s. It reuses a freed block when that block wastes at most 2048 bytes.
- `voxelcraft.texturemap` has `TextureMap`, which stitches 16×16 image tiles into a 128×128 RGBA atlas with two mipmap levels.
  - `get_icon` returns the `MapIcon` for a file name.
  - The module also provides `texture_hash` (djb2), `morton_offset`, `tile_image32`, `tile_image8` and `downscale_image`.

## Installing

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Example

```python
from voxelcraft.chunk import Block
from voxelcraft.chunkworker import ChunkWorker
from voxelcraft.superflatgen import SuperFlatGen
from voxelcraft.workqueue import WorkerItemType
from voxelcraft.world import World

with ChunkWorker() as worker:
    world = World(worker.queue)
    gen = SuperFlatGen(world)
    worker.add_handler(WorkerItemType.BASE_GEN, gen.generate, gen)

    world.update_chunk_cache(0, 0)  # fills the cache, queues LOAD items
    worker.finish()
    world.tick()                    # queues BASE_GEN for every idle, empty chunk
    worker.finish()

    print(world.get_block(0, 16, 0) is Block.GRASS)  # True
```

## What it does not do

- There is no renderer, window or input handling. `PolyGen` produces vertex data, and `TextureMap` produces atlas bytes, but nothing draws them.
- There are no block definitions beyond the `Block` enum. Opacity comes from a fixed set of transparent blocks, and textures and colours must be supplied to `PolyGen` as callbacks.
- The only terrain generator is `SuperFlatGen`. `WorldGenType.SMEA` is only a recorded setting. No `DECORATE` handler and no random-tick behaviour are included.
- There is no command-line program.