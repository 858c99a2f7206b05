"""Saving and loading of worlds: the level manifest and the chunks in superchunks."""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import msgpack

from voxelcraft.superchunk import SaveError, SuperChunk, chunk_to_superchunk_coord
from voxelcraft.workqueue import WorkerItem, WorkQueue
from voxelcraft.world import World, WorldGenType

LEVEL_FILE = "level.mp"
SUPERCHUNK_DIR = "superchunks"

_DECODE_ERRORS = (ValueError, KeyError, IndexError, TypeError, AttributeError)


@dataclass
class PlayerState:
    """The parts of a player that are kept in a save."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    flying: bool = False
    crouching: bool = False


class SaveManager:
    """Keeps one world and its player in a save directory below ``saves_dir``."""

    def __init__(self, world: World, player: PlayerState, saves_dir: str | os.PathLike[str]) -> None:
        self.world = world
        self.player = player
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        self.directory: Path | None = None
        self.superchunks: list[SuperChunk] = []
        self._lock = threading.RLock()

    def _require_directory(self) -> Path:
        if self.directory is None:
            raise RuntimeError("no world has been loaded")
        return self.directory

    def load(self, name: str) -> None:
        """Open the save called ``name``, creating it, and read its manifest if present."""
        directory = self.saves_dir / name
        directory.mkdir(parents=True, exist_ok=True)
        (directory / SUPERCHUNK_DIR).mkdir(exist_ok=True)
        self.directory = directory

        level = directory / LEVEL_FILE
        if not level.exists():
            return
        try:
            root = msgpack.unpackb(level.read_bytes(), raw=False)
            self._apply_manifest(root)
        except _DECODE_ERRORS as exc:
            raise SaveError(f"could not load world manifest {name}") from exc

    def _apply_manifest(self, root: Any) -> None:
        world_name = root["name"]
        if not isinstance(world_name, str):
            raise TypeError("world name is not a string")
        world_type = root.get("worldType")
        gen_type = WorldGenType(world_type) if world_type is not None else WorldGenType.SUPER_FLAT
        node = root["players"][0]
        state = PlayerState(
            x=float(node["x"]),
            y=float(node["y"]) + 0.1,
            z=float(node["z"]),
            pitch=float(node["pitch"]),
            yaw=float(node["yaw"]),
            flying=bool(node.get("flying") or False),
            crouching=bool(node.get("crouching") or False),
        )
        self.world.name = world_name
        self.world.gen_settings.type = gen_type
        for key, value in vars(state).items():
            setattr(self.player, key, value)

    def unload(self) -> None:
        """Write the manifest and close every open superchunk."""
        directory = self._require_directory()
        player = self.player
        manifest = {
            "name": self.world.name,
            "players": [
                {
                    "x": float(player.x),
                    "y": float(player.y),
                    "z": float(player.z),
                    "pitch": float(player.pitch),
                    "yaw": float(player.yaw),
                    "flying": bool(player.flying),
                    "crouching": bool(player.crouching),
                }
            ],
            "worldType": int(self.world.gen_settings.type),
        }
        data = msgpack.packb(manifest, use_bin_type=True, use_single_float=True)
        try:
            (directory / LEVEL_FILE).write_bytes(data)
        except OSError as exc:
            raise SaveError("could not save world manifest") from exc

        with self._lock:
            for superchunk in self.superchunks:
                superchunk.close()
            self.superchunks.clear()

    def _superchunk_for(self, chunk_x: int, chunk_z: int) -> SuperChunk:
        directory = self._require_directory()
        x, z = chunk_to_superchunk_coord(chunk_x), chunk_to_superchunk_coord(chunk_z)
        for superchunk in self.superchunks:
            if superchunk.x == x and superchunk.z == z:
                return superchunk
        superchunk = SuperChunk(directory / SUPERCHUNK_DIR, x, z)
        self.superchunks.append(superchunk)
        return superchunk

    def load_chunk(self, queue: WorkQueue, item: WorkerItem) -> None:
        """Worker handler: fill the item's chunk from the save."""
        with self._lock:
            self._superchunk_for(item.chunk.x, item.chunk.z).load_chunk(item.chunk)

    def save_chunk(self, queue: WorkQueue, item: WorkerItem) -> None:
        """Worker handler: store the item's chunk in the save."""
        with self._lock:
            self._superchunk_for(item.chunk.x, item.chunk.z).save_chunk(item.chunk)