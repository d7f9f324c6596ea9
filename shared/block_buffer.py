from __future__ import annotations

from typing import Optional

import numpy as np


class BlockBuffer:
    """
    Two-slot ring of preallocated byte buffers with an explicit slot index.

    The slot that is not current always holds the block read just before the
    current one, so it can be emitted retroactively without rereading the
    source. Slots are raw ``uint8`` arrays of `capacity` bytes.
    """

    SLOTS = 2

    def __init__(self, capacity: int) -> None:
        capacity = int(capacity)
        if capacity <= 0:
            raise ValueError("capacity must be positive")

        self._capacity = capacity
        self._data = np.zeros((self.SLOTS, capacity), dtype=np.uint8)
        self._lengths = [0] * self.SLOTS
        self._index = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def index(self) -> int:
        """Slot currently being filled or read."""
        return self._index

    def slot(self) -> np.ndarray:
        """Writable view of the current slot, for readers that fill in place."""
        return self._data[self._index]

    def commit(self, length: int) -> np.ndarray:
        """
        Record that `length` bytes of the current slot hold valid data.

        Returns a view of exactly those bytes.
        """
        if not 0 <= length <= self._capacity:
            raise ValueError("length out of range")
        self._lengths[self._index] = int(length)
        return self._data[self._index, :length]

    def current(self) -> np.ndarray:
        return self._data[self._index, : self._lengths[self._index]]

    def previous(self) -> Optional[np.ndarray]:
        """
        Return the block held in the other slot, or None before it was ever filled.
        """
        other = self._index ^ 1
        length = self._lengths[other]
        if length == 0:
            return None
        return self._data[other, :length]

    def swap(self) -> None:
        """Make the other slot current; the slot just filled becomes `previous()`."""
        self._index ^= 1

    def reset(self) -> None:
        self._lengths = [0] * self.SLOTS
        self._index = 0


__all__ = ["BlockBuffer"]
