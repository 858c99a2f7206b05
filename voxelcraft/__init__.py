"""Voxel world core: chunks, world cache, job worker, flat terrain, save games and meshing."""

__version__ = "0.1.0"