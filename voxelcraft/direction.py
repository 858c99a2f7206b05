"""Block face directions, their neighbour offsets and the axes they lie on."""

from __future__ import annotations

from enum import IntEnum


class Axis(IntEnum):
    """World axis."""

    X = 0
    Y = 1
    Z = 2


class Direction(IntEnum):
    """One of the six faces of a block, or ``INVALID`` for none."""

    WEST = 0
    EAST = 1
    BOTTOM = 2
    TOP = 3
    NORTH = 4
    SOUTH = 5
    INVALID = 6

    def offset(self) -> tuple[int, int, int]:
        """Unit step (dx, dy, dz) towards the neighbour on this side."""
        return _OFFSETS[self]

    def opposite(self) -> Direction:
        """The direction pointing the other way."""
        return _OPPOSITES[self]

    def axis(self) -> Axis:
        """The axis this direction runs along."""
        return _AXES[self]


FACES: tuple[Direction, ...] = tuple(d for d in Direction if d is not Direction.INVALID)

_OFFSETS = {
    Direction.WEST: (-1, 0, 0),
    Direction.EAST: (1, 0, 0),
    Direction.BOTTOM: (0, -1, 0),
    Direction.TOP: (0, 1, 0),
    Direction.NORTH: (0, 0, -1),
    Direction.SOUTH: (0, 0, 1),
    Direction.INVALID: (0, 0, 0),
}

_OPPOSITES = {
    Direction.WEST: Direction.EAST,
    Direction.EAST: Direction.WEST,
    Direction.BOTTOM: Direction.TOP,
    Direction.TOP: Direction.BOTTOM,
    Direction.NORTH: Direction.SOUTH,
    Direction.SOUTH: Direction.NORTH,
    Direction.INVALID: Direction.INVALID,
}

_AXES = {
    Direction.WEST: Axis.X,
    Direction.EAST: Axis.X,
    Direction.BOTTOM: Axis.Y,
    Direction.TOP: Axis.Y,
    Direction.NORTH: Axis.Z,
    Direction.SOUTH: Axis.Z,
    Direction.INVALID: Axis.X,
}