"""Mesh building for clusters: visible faces, see-through masks and vertex buffers."""

from __future__ import annotations

import math
import struct
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any

from voxelcraft.chunk import (
    CHUNK_SIZE,
    CLUSTER_VOLUME,
    TRANSPARENT_BLOCKS,
    Block,
    Chunk,
    Cluster,
    see_through_bit,
    to_chunk_coord,
    to_local_coord,
)
from voxelcraft.direction import FACES, Direction
from voxelcraft.vbocache import VBOBlock, VBOCache
from voxelcraft.workqueue import WorkerItem, WorkQueue

TextureLookup = Callable[[Block, Direction, int], tuple[int, int]]
ColorLookup = Callable[[Block, int, Direction], tuple[int, int, int]]

ICON_SPAN = 32768 // 8
HARVEST_DELAY = 2

_VERTEX = struct.Struct("<3h2h3B3B")
_EDGE = CHUNK_SIZE - 1


@dataclass(frozen=True)
class WorldVertex:
    """A vertex as the world shader reads it: position, texture coordinate and colour."""

    xyz: tuple[int, int, int]
    uv: tuple[int, int]
    rgb: tuple[int, int, int] = (255, 255, 255)
    extra: tuple[int, int, int] = (0, 0, 0)


def _v(xyz: tuple[int, int, int], uv: tuple[int, int]) -> WorldVertex:
    return WorldVertex(xyz, uv)


# Six vertices (two triangles) per face, in Direction order.
CUBE_SIDES: tuple[WorldVertex, ...] = (
    # West
    _v((0, 0, 0), (0, 0)), _v((0, 0, 1), (1, 0)), _v((0, 1, 1), (1, 1)),
    _v((0, 1, 1), (1, 1)), _v((0, 1, 0), (0, 1)), _v((0, 0, 0), (0, 0)),
    # East
    _v((1, 0, 0), (1, 0)), _v((1, 1, 0), (1, 1)), _v((1, 1, 1), (0, 1)),
    _v((1, 1, 1), (0, 1)), _v((1, 0, 1), (0, 0)), _v((1, 0, 0), (1, 0)),
    # Bottom
    _v((0, 0, 0), (0, 1)), _v((1, 0, 0), (1, 1)), _v((1, 0, 1), (1, 0)),
    _v((1, 0, 1), (1, 0)), _v((0, 0, 1), (0, 0)), _v((0, 0, 0), (0, 1)),
    # Top
    _v((0, 1, 0), (0, 1)), _v((0, 1, 1), (0, 0)), _v((1, 1, 1), (1, 0)),
    _v((1, 1, 1), (1, 0)), _v((1, 1, 0), (1, 1)), _v((0, 1, 0), (0, 1)),
    # North
    _v((0, 0, 0), (1, 0)), _v((0, 1, 0), (1, 1)), _v((1, 1, 0), (0, 1)),
    _v((1, 1, 0), (0, 1)), _v((1, 0, 0), (0, 0)), _v((0, 0, 0), (1, 0)),
    # South
    _v((0, 0, 1), (0, 0)), _v((1, 0, 1), (1, 0)), _v((1, 1, 1), (1, 1)),
    _v((1, 1, 1), (1, 1)), _v((0, 1, 1), (0, 1)), _v((0, 0, 1), (0, 0)),
)


@dataclass(frozen=True)
class Face:
    """One visible side of a block inside a cluster."""

    x: int
    y: int
    z: int
    direction: Direction
    block: Block
    ao: int
    metadata: int
    transparent: bool


@dataclass(eq=False)
class ClusterMesh:
    """A freshly built mesh waiting to replace the one a cluster draws."""

    x: int
    y: int
    z: int
    opaque: list[WorldVertex] = field(default_factory=list)
    transparent: list[WorldVertex] = field(default_factory=list)
    vbo: VBOBlock | None = None
    transparent_vbo: VBOBlock | None = None
    visibility: int = 0
    delay: int = 0

    @property
    def vertices(self) -> int:
        return len(self.opaque)

    @property
    def transparent_vertices(self) -> int:
        return len(self.transparent)


def _default_texture(block: Block, direction: Direction, metadata: int) -> tuple[int, int]:
    return (0, 0)


def _default_color(block: Block, metadata: int, direction: Direction) -> tuple[int, int, int]:
    return (255, 255, 255)


def _index(x: int, y: int, z: int) -> int:
    return (x * CHUNK_SIZE + y) * CHUNK_SIZE + z


def _inside(x: int, y: int, z: int) -> bool:
    return 0 <= x < CHUNK_SIZE and 0 <= y < CHUNK_SIZE and 0 <= z < CHUNK_SIZE


def _opaque(block: int) -> bool:
    return block not in TRANSPARENT_BLOCKS


def _s16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _edge(coord: int, low: Direction, high: Direction) -> Direction:
    if coord == 0:
        return low
    if coord == _EDGE:
        return high
    return Direction.INVALID


class _ClusterBuild:
    """Face collection state for one cluster."""

    def __init__(self, world: Any, chunk: Chunk, index: int) -> None:
        self.world = world
        self.chunk = chunk
        self.index = index
        self.cluster: Cluster = chunk.clusters[index]
        self.faces: list[Face] = []
        self.visited = bytearray(CLUSTER_VOLUME)

    def _world_coords(self, x: int, y: int, z: int) -> tuple[int, int, int]:
        return (
            self.chunk.x * CHUNK_SIZE + x,
            self.index * CHUNK_SIZE + y,
            self.chunk.z * CHUNK_SIZE + z,
        )

    def block(self, x: int, y: int, z: int) -> int:
        if _inside(x, y, z):
            return self.cluster.blocks[_index(x, y, z)]
        return int(self.world.get_block(*self._world_coords(x, y, z)))

    def meta(self, x: int, y: int, z: int) -> int:
        if _inside(x, y, z):
            return self.cluster.metadata_light[_index(x, y, z)] & 0xF
        return int(self.world.get_metadata(*self._world_coords(x, y, z)))

    def add_face(self, x: int, y: int, z: int, direction: Direction, block: int, metadata: int,
                 transparent: bool) -> None:
        if _inside(x, y, z):
            self.faces.append(Face(x, y, z, direction, Block(block), 0, metadata, transparent))

    def flood_fill(self, x: int, y: int, z: int, entries: tuple[Direction, ...]) -> int:
        """Walk the see-through region from (x, y, z); return the sides it connects."""
        if self.visited[_index(x, y, z)] & 1:
            return 0
        exits = {d for d in entries if d is not Direction.INVALID}
        blocks = self.cluster.blocks
        stack = [(x, y, z)]
        while stack:
            ix, iy, iz = stack.pop()
            here = blocks[_index(ix, iy, iz)]
            for direction in FACES:
                dx, dy, dz = direction.offset()
                nx, ny, nz = ix + dx, iy + dy, iz + dz
                if not _inside(nx, ny, nz):
                    exits.add(direction)
                    continue
                n = _index(nx, ny, nz)
                neighbour = blocks[n]
                opaque = _opaque(neighbour)
                if not opaque and not self.visited[n] & 1:
                    self.visited[n] |= 1
                    stack.append((nx, ny, nz))
                if (here == Block.AIR or opaque) and neighbour != Block.AIR:
                    self.add_face(nx, ny, nz, direction.opposite(), neighbour,
                                  self.cluster.metadata_light[n] & 0xF, not opaque)
        visibility = 0
        for a in exits:
            for b in exits:
                if a != b:
                    visibility |= see_through_bit(a, b)
        return visibility

    def boundary_cell(self, x: int, y: int, z: int, entries: tuple[Direction, ...], side: Direction,
                      own_meta_for_neighbour: bool = False) -> int:
        """Fill from a border cell and add its face towards the outside if uncovered."""
        i = _index(x, y, z)
        block = self.cluster.blocks[i]
        meta = self.cluster.metadata_light[i] & 0xF
        visibility = 0
        if not _opaque(block):
            visibility = self.flood_fill(x, y, z, entries)
        dx, dy, dz = side.offset()
        neighbour = self.block(x + dx, y + dy, z + dz)
        neighbour_meta = meta if own_meta_for_neighbour else self.meta(x + dx, y + dy, z + dz)
        del neighbour_meta  # opacity depends on the block type alone
        if not _opaque(neighbour) and block != Block.AIR:
            self.add_face(x, y, z, side, block, meta, not _opaque(block))
        return visibility

    def collect(self) -> int:
        """Collect every visible face; return the cluster's see-through mask."""
        visibility = 0
        r = range(CHUNK_SIZE)
        for x in (0, _EDGE):
            x_dir = Direction.WEST if x == 0 else Direction.EAST
            for z in r:
                z_dir = _edge(z, Direction.NORTH, Direction.SOUTH)
                for y in r:
                    y_dir = _edge(y, Direction.BOTTOM, Direction.TOP)
                    visibility |= self.boundary_cell(x, y, z, (x_dir, y_dir, z_dir), x_dir)
        for y in (0, _EDGE):
            y_dir = Direction.BOTTOM if y == 0 else Direction.TOP
            for x in r:
                x_dir = _edge(x, Direction.WEST, Direction.EAST)
                for z in r:
                    z_dir = _edge(z, Direction.SOUTH, Direction.NORTH)
                    visibility |= self.boundary_cell(x, y, z, (x_dir, y_dir, z_dir), y_dir)
        for z in (0, _EDGE):
            z_dir = Direction.NORTH if z == 0 else Direction.SOUTH
            for x in r:
                x_dir = _edge(x, Direction.WEST, Direction.EAST)
                for y in r:
                    y_dir = _edge(y, Direction.BOTTOM, Direction.TOP)
                    visibility |= self.boundary_cell(x, y, z, (x_dir, y_dir, z_dir), z_dir,
                                                     own_meta_for_neighbour=True)
        return visibility


class PolyGen:
    """Builds cluster meshes on the worker and hands them to the renderer.

    ``player``, if given, needs ``x``, ``y`` and ``z`` attributes; the cluster
    it stands in is also filled from its position so enclosed spaces get walls.
    ``texture`` and ``color`` give each block face its atlas position and tint.
    """

    def __init__(
        self,
        world: Any,
        player: Any = None,
        texture: TextureLookup | None = None,
        color: ColorLookup | None = None,
        vbo_cache: VBOCache | None = None,
    ) -> None:
        self.world = world
        self.player = player
        self._texture = texture or _default_texture
        self._color = color or _default_color
        self.vbo_cache = vbo_cache if vbo_cache is not None else VBOCache()
        self.pending: list[ClusterMesh] = []
        self._lock = threading.Lock()

    def _player_cell(self) -> tuple[int, int, int] | None:
        if self.player is None:
            return None
        return (math.floor(self.player.x), math.floor(self.player.y), math.floor(self.player.z))

    def _face_vertices(self, face: Face, origin: tuple[int, int, int]) -> Iterator[WorldVertex]:
        icon_u, icon_v = self._texture(face.block, face.direction, face.metadata)
        rgb = tuple(int(c) & 0xFF for c in self._color(face.block, face.metadata, face.direction))
        ox, oy, oz = origin
        start = int(face.direction) * 6
        for vertex in CUBE_SIDES[start : start + 6]:
            x, y, z = vertex.xyz
            u, v = vertex.uv
            yield WorldVertex(
                (_s16(x + ox), _s16(y + oy), _s16(z + oz)),
                (
                    _s16((ICON_SPAN - 1 if u == 1 else 1) + icon_u),
                    _s16((ICON_SPAN - 1 if v == 1 else 1) + icon_v),
                ),
                rgb,  # type: ignore[arg-type]
                vertex.extra,
            )

    def _upload(self, vertices: list[WorldVertex]) -> VBOBlock | None:
        if not vertices:
            return None
        block = self.vbo_cache.alloc(len(vertices) * _VERTEX.size)
        assert block.memory is not None
        for k, vertex in enumerate(vertices):
            _VERTEX.pack_into(block.memory, k * _VERTEX.size, *vertex.xyz, *vertex.uv, *vertex.rgb, *vertex.extra)
        return block

    def _build(self, chunk: Chunk, index: int) -> ClusterMesh:
        build = _ClusterBuild(self.world, chunk, index)
        visibility = build.collect()

        cell = self._player_cell()
        if cell is not None:
            px, py, pz = cell
            if (to_chunk_coord(px) == chunk.x and to_chunk_coord(pz) == chunk.z
                    and to_chunk_coord(py) == index):
                build.flood_fill(to_local_coord(px), to_local_coord(py), to_local_coord(pz),
                                 (Direction.INVALID,) * 3)

        mesh = ClusterMesh(chunk.x, index, chunk.z, visibility=visibility)
        for face in build.faces:
            origin = (
                face.x + chunk.x * CHUNK_SIZE,
                face.y + index * CHUNK_SIZE,
                face.z + chunk.z * CHUNK_SIZE,
            )
            target = mesh.transparent if face.transparent else mesh.opaque
            target.extend(self._face_vertices(face, origin))
        mesh.vbo = self._upload(mesh.opaque)
        mesh.transparent_vbo = self._upload(mesh.transparent)
        return mesh

    def generate(self, queue: WorkQueue, item: WorkerItem) -> None:
        """Worker handler: rebuild the meshes of every changed cluster of the item's chunk."""
        chunk = item.chunk
        for index, cluster in enumerate(chunk.clusters):
            if cluster.revision == cluster.vbo_revision and not cluster.force_vbo_update:
                continue
            cluster.vbo_revision = cluster.revision
            cluster.force_vbo_update = False
            mesh = self._build(chunk, index)
            with self._lock:
                self.pending.append(mesh)
        chunk.display_revision = chunk.revision
        chunk.force_vbo_update = False

    def _apply(self, mesh: ClusterMesh) -> None:
        chunk = self.world.get_chunk(mesh.x, mesh.z)
        if chunk is None:
            return
        cluster = chunk.clusters[mesh.y]
        if cluster.vertices > 0 and cluster.vbo is not None:
            self.vbo_cache.free(cluster.vbo)
        if cluster.transparent_vertices > 0 and cluster.transparent_vbo is not None:
            self.vbo_cache.free(cluster.transparent_vbo)
        cluster.vbo = mesh.vbo
        cluster.vertices = mesh.vertices
        cluster.transparent_vbo = mesh.transparent_vbo
        cluster.transparent_vertices = mesh.transparent_vertices
        cluster.see_through = mesh.visibility

    def harvest(self) -> int:
        """Install waiting meshes once the oldest has waited a few frames; return how many."""
        if not self._lock.acquire(blocking=False):
            return 0
        try:
            if not self.pending:
                return 0
            first = self.pending[0]
            waited = first.delay
            first.delay += 1
            if waited <= HARVEST_DELAY:
                return 0
            applied = 0
            while self.pending:
                self._apply(self.pending.pop())
                applied += 1
            return applied
        finally:
            self._lock.release()