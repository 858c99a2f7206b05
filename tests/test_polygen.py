import struct

import pytest

from voxelcraft.chunk import CHUNK_SIZE, CLUSTER_VOLUME, Block, can_see_through
from voxelcraft.direction import FACES, Direction
from voxelcraft.polygen import CUBE_SIDES, ICON_SPAN, ClusterMesh, PolyGen, WorldVertex
from voxelcraft.savemanager import PlayerState
from voxelcraft.vbocache import VBOCache
from voxelcraft.workqueue import WorkerItem, WorkerItemType, WorkQueue
from voxelcraft.world import World


@pytest.fixture
def world():
    w = World(WorkQueue())
    w.update_chunk_cache(0, 0)
    return w


def _item(chunk):
    return WorkerItem(WorkerItemType.POLY_GEN, chunk, chunk.uuid)


def _faces(vertices):
    return [vertices[k : k + 6] for k in range(0, len(vertices), 6)]


def _generate(polygen, world, chunk):
    polygen.generate(world.workqueue, _item(chunk))
    return polygen.pending


@pytest.mark.parametrize("value", range(6))
def test_cube_sides_lie_on_their_face(value):
    direction = Direction(value)
    verts = CUBE_SIDES[value * 6 : value * 6 + 6]
    axis = int(direction.axis())
    coord = 1 if sum(direction.offset()) > 0 else 0
    assert len(verts) == 6
    assert [v.xyz[axis] for v in verts] == [coord] * 6


def test_single_block_gives_six_opaque_faces(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    pending = _generate(polygen, world, chunk)
    assert len(pending) == 1
    mesh = pending[0]
    assert (mesh.x, mesh.y, mesh.z) == (0, 0, 0)
    assert mesh.transparent == []
    assert len(mesh.opaque) == 6 * len(FACES)
    assert all(5 <= c <= 6 for v in mesh.opaque for c in v.xyz)
    assert all(u in (1, ICON_SPAN - 1) for v in mesh.opaque for u in v.uv)
    assert all(v.rgb == (255, 255, 255) for v in mesh.opaque)


def test_open_cluster_is_see_through_everywhere(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    for a in FACES:
        for b in FACES:
            if a != b:
                assert can_see_through(mesh.visibility, a, b)


def test_solid_cluster_has_outer_shell_and_no_visibility(world):
    chunk = world.get_chunk(0, 0)
    cluster = chunk.clusters[0]
    cluster.blocks = bytearray([Block.STONE] * CLUSTER_VOLUME)
    cluster.revision += 1
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    assert mesh.visibility == 0
    assert len(_faces(mesh.opaque)) == 6 * CHUNK_SIZE * CHUNK_SIZE


def test_glass_goes_to_transparent_mesh(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(3, 3, 3, Block.GLASS)
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    assert mesh.opaque == []
    assert mesh.vbo is None
    assert mesh.transparent_vertices == 6 * len(FACES)
    assert mesh.transparent_vbo.size >= mesh.transparent_vertices * 16


def test_unchanged_clusters_are_skipped(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(1, 1, 1, Block.DIRT)
    polygen = PolyGen(world)
    _generate(polygen, world, chunk)
    assert chunk.display_revision == chunk.revision
    _generate(polygen, world, chunk)
    assert len(polygen.pending) == 1


def test_forced_update_rebuilds(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(1, 1, 1, Block.DIRT)
    polygen = PolyGen(world)
    _generate(polygen, world, chunk)
    chunk.request_graphics_update(0)
    _generate(polygen, world, chunk)
    assert len(polygen.pending) == 2
    assert chunk.clusters[0].force_vbo_update is False
    assert chunk.force_vbo_update is False


def test_harvest_waits_then_installs(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    for _ in range(3):
        assert polygen.harvest() == 0
    assert chunk.clusters[0].vertices == 0
    assert polygen.harvest() == 1
    cluster = chunk.clusters[0]
    assert polygen.pending == []
    assert cluster.vertices == mesh.vertices
    assert cluster.vbo is mesh.vbo
    assert cluster.see_through == mesh.visibility


def test_vbo_memory_holds_packed_vertices(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    unpacked = struct.unpack_from("<3h2h3B3B", mesh.vbo.memory, 16)
    v = mesh.opaque[1]
    assert unpacked == (*v.xyz, *v.uv, *v.rgb, *v.extra)


def test_replaced_mesh_returns_to_cache(world):
    cache = VBOCache()
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world, vbo_cache=cache)
    _generate(polygen, world, chunk)
    for _ in range(4):
        polygen.harvest()
    chunk.request_graphics_update(0)
    _generate(polygen, world, chunk)
    for _ in range(4):
        polygen.harvest()
    assert len(cache) == 1


def test_custom_texture_and_color(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(4, 4, 4, Block.GRASS)
    seen = []

    def texture(block, direction, metadata):
        seen.append((block, direction))
        return (256, 512)

    def color(block, metadata, direction):
        return (10, 20, 30)

    polygen = PolyGen(world, texture=texture, color=color)
    mesh = _generate(polygen, world, chunk)[0]
    assert {d for _, d in seen} == set(FACES)
    assert all(b == Block.GRASS for b, _ in seen)
    assert all(v.rgb == (10, 20, 30) for v in mesh.opaque)
    assert all(v.uv[0] - 256 in (1, ICON_SPAN - 1) for v in mesh.opaque)
    assert all(v.uv[1] - 512 in (1, ICON_SPAN - 1) for v in mesh.opaque)


def test_world_offsets_of_other_chunk(world):
    chunk = world.get_chunk(1, 0)
    chunk.set_block(0, 2 * CHUNK_SIZE, 0, Block.STONE)
    polygen = PolyGen(world)
    mesh = _generate(polygen, world, chunk)[0]
    assert mesh.y == 2
    corners = {v.xyz for v in mesh.opaque}
    base = (CHUNK_SIZE, 2 * CHUNK_SIZE, 0)
    expected = {
        (base[0] + dx, base[1] + dy, base[2] + dz)
        for dx in (0, 1) for dy in (0, 1) for dz in (0, 1)
    }
    assert corners == expected


def test_covered_side_across_clusters_has_no_face(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, CHUNK_SIZE - 1, 5, Block.STONE)
    chunk.set_block(5, CHUNK_SIZE, 5, Block.STONE)
    polygen = PolyGen(world)
    meshes = _generate(polygen, world, chunk)
    lower = next(m for m in meshes if m.y == 0)
    tops = [f for f in _faces(lower.opaque) if all(v.xyz[1] == CHUNK_SIZE for v in f)]
    assert tops == []
    assert len(_faces(lower.opaque)) == len(FACES) - 1


def test_player_cluster_is_filled_from_player(world):
    chunk = world.get_chunk(0, 0)
    # a closed box of stone around an air pocket
    for x in range(3, 8):
        for y in range(3, 8):
            for z in range(3, 8):
                inner = 4 <= x <= 6 and 4 <= y <= 6 and 4 <= z <= 6
                if not inner:
                    chunk.set_block(x, y, z, Block.STONE)
    without = PolyGen(world)
    outside = _generate(without, world, chunk)[0]
    chunk.request_graphics_update(0)
    with_player = PolyGen(world, player=PlayerState(x=5.5, y=5.5, z=5.5))
    inside = _generate(with_player, world, chunk)[0]
    inner_faces = [f for f in _faces(inside.opaque) if all(4 <= c <= 7 for v in f for c in v.xyz)]
    assert len(inside.opaque) > len(outside.opaque)
    assert len(inner_faces) == len(inside.opaque) // 6 - len(outside.opaque) // 6


def test_meshes_of_unloaded_chunks_are_dropped(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(5, 5, 5, Block.STONE)
    polygen = PolyGen(world)
    polygen.pending.append(ClusterMesh(100, 0, 100, [WorldVertex((0, 0, 0), (0, 0))]))
    _generate(polygen, world, chunk)
    for _ in range(3):
        polygen.harvest()
    assert polygen.harvest() == 2
    assert chunk.clusters[0].vertices == 6 * len(FACES)


def test_harvest_with_nothing_pending(world):
    polygen = PolyGen(world)
    assert polygen.harvest() == 0
    assert polygen.pending == []


def test_face_directions_point_to_air(world):
    chunk = world.get_chunk(0, 0)
    chunk.set_block(8, 8, 8, Block.STONE)
    directions = []

    def texture(block, direction, metadata):
        directions.append(direction)
        return (0, 0)

    polygen = PolyGen(world, texture=texture)
    mesh = _generate(polygen, world, chunk)[0]
    assert len(mesh.opaque) == 6 * len(FACES)
    assert sorted(directions) == sorted(FACES)
    assert Direction.INVALID not in directions