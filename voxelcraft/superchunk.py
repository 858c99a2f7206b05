"""Region files holding the saved chunks of an 8x8 block of chunk columns."""

from __future__ import annotations

import os
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgpack

from voxelcraft.chunk import (
    CHUNK_SIZE,
    CLUSTER_PER_CHUNK,
    CLUSTER_VOLUME,
    Chunk,
    GenProgress,
)

SUPERCHUNK_SIZE = 8
SECTOR_SIZE = 2048

_HEIGHTMAP_SIZE = CHUNK_SIZE * CHUNK_SIZE
_DECODE_ERRORS = (ValueError, KeyError, IndexError, TypeError, AttributeError)


class SaveError(Exception):
    """Saved game data is missing, damaged or could not be written."""


def chunk_to_superchunk_coord(coord: int) -> int:
    """The superchunk coordinate holding a chunk coordinate."""
    return coord // SUPERCHUNK_SIZE


def _local(coord: int) -> int:
    return coord % SUPERCHUNK_SIZE


@dataclass(frozen=True)
class ChunkInfo:
    """Where a chunk's compressed data lives in the data file.

    ``position`` and ``block_size`` count sectors of 2048 bytes; an
    ``actual_size`` of 0 means nothing has been stored.
    """

    position: int = 0
    compressed_size: int = 0
    actual_size: int = 0
    block_size: int = 0
    revision: int = 0


def _fit(data: Any, size: int) -> bytes:
    if not isinstance(data, bytes) or len(data) < size:
        raise ValueError("binary field is too short")
    return data[:size]


def _encode_chunk(chunk: Chunk) -> dict[str, Any]:
    clusters = []
    for cluster in chunk.clusters:
        empty = cluster.is_empty()
        node: dict[str, Any] = {}
        if not empty:
            node["blocks"] = bytes(cluster.blocks)
            node["metadataLight"] = bytes(cluster.metadata_light)
        node["revision"] = cluster.revision
        node["empty"] = empty
        clusters.append(node)
    return {
        "clusters": clusters,
        "genProgress": int(chunk.gen_progress),
        "heightmap": bytes(chunk.heightmap),
    }


def _decode_chunk(chunk: Chunk, root: Any, revision: int) -> None:
    nodes = root["clusters"]
    if len(nodes) < CLUSTER_PER_CHUNK:
        raise IndexError("too few clusters stored")
    for cluster, node in zip(chunk.clusters, nodes):
        cluster.revision = int(node["revision"])
        empty = node.get("empty")
        if empty is not None:
            cluster.empty_revision = cluster.revision
            cluster.empty = bool(empty)
        else:
            cluster.empty_revision = 0
            cluster.empty = False
        blocks = node.get("blocks")
        if isinstance(blocks, bytes):
            cluster.blocks = bytearray(_fit(blocks, CLUSTER_VOLUME))
        metadata = node.get("metadataLight")
        if isinstance(metadata, bytes):
            cluster.metadata_light = bytearray(_fit(metadata, CLUSTER_VOLUME))

    chunk.gen_progress = GenProgress(int(root["genProgress"]))

    heightmap = root["heightmap"]
    if heightmap is not None:
        chunk.heightmap = bytearray(_fit(heightmap, _HEIGHTMAP_SIZE))
        chunk.heightmap_revision = revision
    else:
        chunk.heightmap_revision = 0

    chunk.revision = revision


class SuperChunk:
    """The index and data file of one superchunk inside ``directory``.

    ``grid[x][z]`` describes the chunk at local coordinates (x, z) and
    ``sectors`` tells which sectors of the data file are in use.
    """

    def __init__(self, directory: str | os.PathLike[str], x: int, z: int) -> None:
        self.x = x
        self.z = z
        self.directory = Path(directory)
        self.grid: list[list[ChunkInfo]] = [
            [ChunkInfo()] * SUPERCHUNK_SIZE for _ in range(SUPERCHUNK_SIZE)
        ]
        self.sectors: list[bool] = []

        if self.index_path.exists():
            self._read_index()

        try:
            self._data = open(self.data_path, "r+b")
        except FileNotFoundError:
            self._data = open(self.data_path, "w+b")

    @property
    def index_path(self) -> Path:
        return self.directory / f"s.{self.x}.{self.z}.mp"

    @property
    def data_path(self) -> Path:
        return self.directory / f"s.{self.x}.{self.z}.dat"

    def __enter__(self) -> SuperChunk:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _read_index(self) -> None:
        try:
            root = msgpack.unpackb(self.index_path.read_bytes(), raw=False)
            entries = root["chunkIndices"]
            count = SUPERCHUNK_SIZE * SUPERCHUNK_SIZE
            if len(entries) < count:
                raise IndexError("too few chunk indices")
            for k, entry in enumerate(entries[:count]):
                info = ChunkInfo(
                    int(entry["position"]),
                    int(entry["compressedSize"]),
                    int(entry["actualSize"]),
                    int(entry["blockSize"]),
                    int(entry["revision"]),
                )
                self.grid[k % SUPERCHUNK_SIZE][k // SUPERCHUNK_SIZE] = info
                if info.actual_size > 0:
                    self._mark_used(info)
        except _DECODE_ERRORS as exc:
            raise SaveError(f"could not load superchunk manifest {self.x} {self.z}") from exc

    def _mark_used(self, info: ChunkInfo) -> None:
        end = info.position + info.block_size
        if end > len(self.sectors):
            self.sectors.extend([False] * (end - len(self.sectors)))
        self.sectors[info.position : end] = [True] * info.block_size

    def _reserve(self, amount: int) -> int:
        run_start = -1
        run = 0
        for i, used in enumerate(self.sectors):
            if not used:
                if run_start == -1:
                    run_start = i
                run += 1
            else:
                run = 0
                run_start = -1
            if run == amount:
                self.sectors[run_start : run_start + amount] = [True] * amount
                return run_start
        self.sectors.extend([True] * amount)
        return len(self.sectors) - amount

    def _release(self, address: int, size: int) -> None:
        self.sectors[address : address + size] = [False] * size

    def save_index(self) -> None:
        """Write the chunk index file."""
        entries = [
            {
                "position": info.position,
                "compressedSize": info.compressed_size,
                "actualSize": info.actual_size,
                "blockSize": info.block_size,
                "revision": info.revision,
            }
            for j in range(SUPERCHUNK_SIZE)
            for info in (self.grid[i][j] for i in range(SUPERCHUNK_SIZE))
        ]
        data = msgpack.packb({"chunkIndices": entries}, use_bin_type=True)
        try:
            self.index_path.write_bytes(data)
        except OSError as exc:
            raise SaveError(f"could not save superchunk index {self.x} {self.z}") from exc

    def save_chunk(self, chunk: Chunk) -> None:
        """Store a chunk unless the stored copy already has its revision."""
        lx, lz = _local(chunk.x), _local(chunk.z)
        info = self.grid[lx][lz]
        if info.revision == chunk.revision:
            return

        raw = msgpack.packb(_encode_chunk(chunk), use_bin_type=True)
        compressed = zlib.compress(raw)
        block_size = len(compressed) // SECTOR_SIZE + 1

        if info.actual_size > 0:
            self._release(info.position, info.block_size)
        address = self._reserve(block_size)

        self._data.seek(address * SECTOR_SIZE)
        if self._data.write(compressed) != len(compressed):
            raise SaveError("Couldn't write complete chunk data to file")
        self._data.flush()

        self.grid[lx][lz] = ChunkInfo(address, len(compressed), len(raw), block_size, chunk.revision)

    def load_chunk(self, chunk: Chunk) -> None:
        """Fill a chunk from its stored copy; untouched if nothing is stored."""
        info = self.grid[_local(chunk.x)][_local(chunk.z)]
        if info.actual_size <= 0:
            return
        self._data.seek(info.position * SECTOR_SIZE)
        data = self._data.read(info.compressed_size)
        if len(data) != info.compressed_size:
            raise SaveError("Read chunk data size isn't equal to the expected size")
        try:
            raw = zlib.decompress(data)
        except zlib.error:
            return
        try:
            _decode_chunk(chunk, msgpack.unpackb(raw, raw=False), info.revision)
        except _DECODE_ERRORS as exc:
            raise SaveError(f"could not load chunk ({chunk.x}, {chunk.z}) from superchunk") from exc

    def close(self) -> None:
        """Write the index and close the data file."""
        if self._data.closed:
            return
        try:
            self.save_index()
        finally:
            self._data.close()