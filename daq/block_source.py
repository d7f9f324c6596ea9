"""Block framing on top of a byte source, with one block of lookback."""

from __future__ import annotations

import logging
from typing import Optional

from shared.block_buffer import BlockBuffer
from shared.models import BYTES_PER_SAMPLE, Block
from .base_source import BaseSource

logger = logging.getLogger(__name__)


class DoubleBufferedBlockSource:
    """
    Produce fixed-size Blocks from a BaseSource.

    Every read fills the current slot of a two-slot BlockBuffer and then the
    slots are swapped on the following read. The block returned by the
    previous call therefore stays intact (and available as `previous`) for
    exactly one more cycle, which is what allows a pre-event padding block to
    be emitted after the fact.
    """

    def __init__(
        self,
        reader: BaseSource,
        block_size: int,
        *,
        channels: int = 1,
        max_blocks: int = 0,
    ) -> None:
        if block_size <= 0:
            raise ValueError("block_size must be positive")
        if channels < 1:
            raise ValueError("channels must be >= 1")
        if max_blocks < 0:
            raise ValueError("max_blocks must be non-negative")
        self._reader = reader
        self._block_size = int(block_size)
        self._channels = int(channels)
        self._max_blocks = int(max_blocks)
        self._sample_bytes = self._channels * BYTES_PER_SAMPLE
        self._buffer = BlockBuffer(self._block_size * self._sample_bytes)

        self._current: Optional[Block] = None
        self._previous: Optional[Block] = None
        self._blocks_read = 0
        self._position: Optional[int] = None
        self._exhausted = False

    @property
    def block_size(self) -> int:
        return self._block_size

    @property
    def channels(self) -> int:
        return self._channels

    @property
    def block_bytes(self) -> int:
        return self._buffer.capacity

    @property
    def blocks_read(self) -> int:
        return self._blocks_read

    @property
    def position(self) -> int:
        """Byte position of the next block, including the reader's start offset."""
        if self._position is None:
            return self._reader.start_offset
        return self._position

    @property
    def current(self) -> Optional[Block]:
        return self._current

    @property
    def previous(self) -> Optional[Block]:
        """The block read just before `current`, or None for the first block."""
        return self._previous

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def next_block(self) -> Optional[Block]:
        """Read the next block; None once the source or the block limit is exhausted."""
        if self._exhausted:
            return None
        if self._max_blocks and self._blocks_read >= self._max_blocks:
            logger.info("Block limit of %d reached", self._max_blocks)
            self._exhausted = True
            return None

        position = self.position
        if self._current is not None:
            self._buffer.swap()

        n = self._reader.readinto(self._buffer.slot())
        usable = n - (n % self._sample_bytes)
        if usable != n:
            logger.warning(
                "Discarding %d trailing bytes that do not form a whole sample",
                n - usable,
            )
        if usable == 0:
            self._exhausted = True
            return None

        data = self._buffer.commit(usable)
        block = Block(
            samples=data.reshape(-1, self._channels, BYTES_PER_SAMPLE),
            offset=position,
            seq=self._blocks_read,
        )
        self._previous = self._current
        self._current = block
        self._blocks_read += 1
        self._position = position + n
        return block


__all__ = ["DoubleBufferedBlockSource"]
