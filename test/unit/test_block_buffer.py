"""
Unit tests for the two-slot BlockBuffer and DoubleBufferedBlockSource.

The lookback guarantee is what makes pre-event padding possible without
rereading the input, so these tests check that:
1. The previous block survives exactly one more read, byte for byte
2. Block offsets include the reader's starting offset
3. Short final blocks keep only whole samples
4. The block limit stops reading
"""
from __future__ import annotations

import io

import numpy as np
import pytest

from daq.block_source import DoubleBufferedBlockSource
from daq.file_source import FileSource
from shared.block_buffer import BlockBuffer
from test.fixtures.memory_io import ShortReadStream


def open_source(data: bytes, *, offset: int = 0) -> FileSource:
    source = FileSource.from_stream(io.BytesIO(data), offset=offset)
    source.open()
    return source


class TestBlockBuffer:
    def test_previous_empty_before_first_swap(self):
        buf = BlockBuffer(8)
        buf.slot()[:4] = 1
        buf.commit(4)
        assert buf.previous() is None

    def test_swap_keeps_previous_slot(self):
        buf = BlockBuffer(4)
        buf.slot()[:] = [1, 2, 3, 4]
        buf.commit(4)
        buf.swap()
        buf.slot()[:2] = [9, 9]
        buf.commit(2)

        np.testing.assert_array_equal(buf.current(), [9, 9])
        np.testing.assert_array_equal(buf.previous(), [1, 2, 3, 4])

        buf.swap()
        assert buf.index == 0
        np.testing.assert_array_equal(buf.previous(), [9, 9])

    def test_commit_bounds(self):
        buf = BlockBuffer(4)
        with pytest.raises(ValueError):
            buf.commit(5)

    def test_reset(self):
        buf = BlockBuffer(4)
        buf.commit(4)
        buf.swap()
        buf.commit(4)
        buf.reset()
        assert buf.index == 0
        assert buf.current().size == 0
        assert buf.previous() is None

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            BlockBuffer(0)


class TestDoubleBufferedBlockSource:
    def test_blocks_and_offsets(self):
        data = bytes(range(24))
        blocks = DoubleBufferedBlockSource(open_source(data), 4)

        first = blocks.next_block()
        assert first.offset == 0 and first.seq == 0
        assert first.samples.shape == (4, 1, 2)
        assert first.samples.tobytes() == data[:8]

        second = blocks.next_block()
        assert second.offset == 8
        assert blocks.previous is first
        assert blocks.previous.samples.tobytes() == data[:8]

        third = blocks.next_block()
        assert third.offset == 16
        assert blocks.previous.samples.tobytes() == data[8:16]
        assert blocks.next_block() is None
        assert blocks.exhausted

    def test_block_is_read_only(self):
        blocks = DoubleBufferedBlockSource(open_source(bytes(8)), 4)
        block = blocks.next_block()
        with pytest.raises(ValueError):
            block.samples[0, 0, 0] = 1

    def test_offset_included_in_block_positions(self):
        data = bytes(range(40))
        blocks = DoubleBufferedBlockSource(open_source(data, offset=6), 4)
        first = blocks.next_block()
        assert first.offset == 6
        assert first.samples.tobytes() == data[6:14]
        assert blocks.next_block().offset == 14

    def test_short_final_block_keeps_whole_samples(self):
        data = bytes(range(13))  # one full block of 4 samples, then 2.5 samples
        blocks = DoubleBufferedBlockSource(open_source(data), 4)
        blocks.next_block()
        last = blocks.next_block()
        assert last.n_samples == 2
        assert last.samples.tobytes() == data[8:12]
        assert blocks.next_block() is None
        assert blocks.position == 13

    def test_multichannel_shape(self):
        data = bytes(range(48))
        blocks = DoubleBufferedBlockSource(open_source(data), 4, channels=3)
        block = blocks.next_block()
        assert block.samples.shape == (4, 3, 2)
        assert block.nbytes == 24
        assert block.end_offset == 24
        assert blocks.block_bytes == 24

    def test_block_limit(self):
        blocks = DoubleBufferedBlockSource(open_source(bytes(80)), 4, max_blocks=3)
        seen = 0
        while blocks.next_block() is not None:
            seen += 1
        assert seen == 3
        assert blocks.blocks_read == 3

    def test_pipe_short_reads_reassembled(self):
        data = bytes(range(64))
        stream = ShortReadStream(data, chunk=3)
        source = FileSource.from_stream(stream)
        source.open()
        blocks = DoubleBufferedBlockSource(source, 8)
        first = blocks.next_block()
        assert first.n_samples == 8
        assert first.samples.tobytes() == data[:16]
        assert stream.read_calls > 1

    def test_invalid_arguments(self):
        source = open_source(b"")
        with pytest.raises(ValueError):
            DoubleBufferedBlockSource(source, 0)
        with pytest.raises(ValueError):
            DoubleBufferedBlockSource(source, 4, channels=0)
        with pytest.raises(ValueError):
            DoubleBufferedBlockSource(source, 4, max_blocks=-1)
