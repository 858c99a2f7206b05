"""Texture atlas building, texture name hashing and GPU tile layout helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from itertools import islice

from PIL import Image

TEXTURE_MAPSIZE = 128
TEXTURE_TILESIZE = 16
TEXTURE_MAPTILES = TEXTURE_MAPSIZE // TEXTURE_TILESIZE
MIPMAP_LEVELS = 2

_OPAQUE_BLACK = bytes((0, 0, 0, 0xFF))

_log = logging.getLogger(__name__)


def texture_hash(name: str) -> int:
    """The 32-bit djb2 hash of a texture file name."""
    h = 5381
    for c in name.encode():
        h = (h * 33 + c) & 0xFFFFFFFF
    return h


def _morton_interleave(x: int, y: int) -> int:
    i = (x & 7) | ((y & 7) << 8)
    i = (i ^ (i << 2)) & 0x1313
    i = (i ^ (i << 1)) & 0x1515
    return (i | (i >> 7)) & 0x3F


def morton_offset(x: int, y: int, bytes_per_pixel: int) -> int:
    """Byte offset of pixel (x, y) inside a row of 8x8 Morton-ordered tiles."""
    return (_morton_interleave(x, y) + (x & ~7) * 8) * bytes_per_pixel


def _check_tileable(width: int, height: int, length: int) -> None:
    if width % 8 or height % 8 or width <= 0 or height <= 0:
        raise ValueError(f"image size {width}x{height} is not a multiple of 8")
    if length != width * height:
        raise ValueError(f"expected {width * height} pixels, got {length}")


def tile_image32(src: Sequence[int], width: int, height: int) -> list[int]:
    """Rearrange bottom-up rows of 32-bit pixels into the GPU tiled layout."""
    _check_tileable(width, height, len(src))
    dst = [0] * (width * height)
    for j in range(height):
        coarse_y = j & ~7
        row = (height - 1 - j) * width
        for i in range(width):
            dst[morton_offset(i, j, 1) + coarse_y * width] = src[i + row]
    return dst


def tile_image8(src: bytes, size: int) -> bytearray:
    """Rearrange a square 8-bit image into the GPU tiled layout."""
    _check_tileable(size, size, len(src))
    dst = bytearray(size * size)
    for j in range(size):
        coarse_y = j & ~7
        row = (size - 1 - j) * size
        for i in range(size):
            dst[morton_offset(i, j, 1) + coarse_y * size] = src[i + row]
    return dst


def downscale_image(data: bytes, size: int) -> bytes:
    """Halve a (2*size)x(2*size) 4-channel image by averaging 2x2 pixel blocks."""
    if len(data) < (2 * size) ** 2 * 4:
        raise ValueError("image data too short for the requested size")
    out = bytearray(size * size * 4)
    stride = size * 2 * 4
    for j in range(size):
        for i in range(size):
            src = (i * 2 + j * 2 * size * 2) * 4
            dst = (i + j * size) * 4
            for c in range(4):
                total = data[src + c] + data[src + 4 + c] + data[src + stride + c] + data[src + stride + 4 + c]
                out[dst + c] = total // 4
    return bytes(out)


@dataclass(frozen=True)
class MapIcon:
    """Where a texture sits in the atlas, in 1/32768 texture units."""

    texture_hash: int = 0
    u: int = 0
    v: int = 0


def _load_tile(name: str) -> bytes | None:
    try:
        with Image.open(name) as img:
            rgba = img.convert("RGBA")
    except OSError:
        _log.warning("Could not read texture %s", name)
        return None
    if rgba.size != (TEXTURE_TILESIZE, TEXTURE_TILESIZE):
        _log.warning("Image size(%d, %d) doesn't match", *rgba.size)
        return None
    return rgba.tobytes()


class TextureMap:
    """An atlas of 16x16 block textures with its mipmap levels.

    ``levels`` holds RGBA bytes, rows from bottom to top; level 0 is the full
    atlas and each following level is half the size of the one before.
    """

    def __init__(self, files: Iterable[str | os.PathLike[str]]) -> None:
        self.icons: list[MapIcon] = [MapIcon()] * (TEXTURE_MAPTILES * TEXTURE_MAPTILES)
        buffer = bytearray(_OPAQUE_BLACK * (TEXTURE_MAPSIZE * TEXTURE_MAPSIZE))
        row_bytes = TEXTURE_TILESIZE * 4
        loc_x = loc_y = 0
        for slot, path in enumerate(islice(files, len(self.icons))):
            name = os.fspath(path)
            pixels = _load_tile(name)
            if pixels is None:
                continue
            for y in range(TEXTURE_TILESIZE):
                src = (TEXTURE_TILESIZE - 1 - y) * row_bytes
                dst = ((loc_y + y) * TEXTURE_MAPSIZE + loc_x) * 4
                buffer[dst : dst + row_bytes] = pixels[src : src + row_bytes]
            self.icons[slot] = MapIcon(texture_hash(name), 256 * loc_x, 256 * loc_y)
            loc_x += TEXTURE_TILESIZE
            if loc_x == TEXTURE_MAPSIZE:
                loc_y += TEXTURE_TILESIZE
                loc_x = 0

        self.levels: list[bytes] = [bytes(buffer)]
        size = TEXTURE_MAPSIZE // 2
        for _ in range(MIPMAP_LEVELS):
            self.levels.append(downscale_image(self.levels[-1], size))
            size //= 2

    def get_icon(self, filename: str | os.PathLike[str]) -> MapIcon:
        """The icon stitched from ``filename``, or an all-zero icon."""
        h = texture_hash(os.fspath(filename))
        return next((icon for icon in self.icons if icon.texture_hash == h), MapIcon())