"""A recycling pool of vertex buffer memory blocks."""

from __future__ import annotations

import threading
from dataclasses import dataclass

_REUSE_SLACK = 2048


@dataclass(eq=False)
class VBOBlock:
    """A chunk of vertex memory and its size in bytes."""

    memory: bytearray | None
    size: int


class VBOCache:
    """Hands out vertex memory, reusing freed blocks of a close enough size."""

    def __init__(self) -> None:
        self._freed: list[VBOBlock] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._freed)

    def alloc(self, size: int) -> VBOBlock:
        """A block of at least ``size`` bytes, reused if one wastes at most 2048 bytes."""
        with self._lock:
            for i, block in enumerate(self._freed):
                if size <= block.size and block.size - size <= _REUSE_SLACK:
                    del self._freed[i]
                    return block
        return VBOBlock(bytearray(size), size)

    def free(self, block: VBOBlock) -> None:
        """Return a block to the pool; empty blocks are ignored."""
        if block.size > 0 and block.memory is not None:
            with self._lock:
                self._freed.append(block)
                self._freed.sort(key=lambda b: b.size, reverse=True)

    def clear(self) -> None:
        """Drop every pooled block."""
        with self._lock:
            self._freed.clear()