"""
Integration tests for the ZeroMQ streaming source and sink.

All sockets share the process-wide context and talk over inproc:// endpoints,
so no network is involved. Covered here:
1. Misaligned frames are trimmed to whole multi-channel samples
2. Bytes that do not fill a block carry over to the next frame
3. The stop flag ends a read that is waiting for data, in bounded time
4. A full SUB -> squelch -> PUB pipeline emits one message per kept block
"""
from __future__ import annotations

import threading
import time
import uuid

import numpy as np
import pytest

zmq = pytest.importorskip("zmq")

from core.runtime import SquelchRuntime
from core.settings import SquelchSettings
from daq.zmq_source import ZmqSubscribeSource
from recording.sinks import ZmqPublishSink
from shared.errors import SinkWriteFailure
from test.fixtures.iq_generators import from_pattern, split_blocks


def endpoint(name: str) -> str:
    return f"inproc://{name}-{uuid.uuid4().hex}"


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestFrameHandling:
    def test_misaligned_tail_discarded(self):
        source = ZmqSubscribeSource(endpoint("trim"), channels=2)
        kept = source.accept_frame(bytes(range(10)))  # 4-byte samples: 2 trailing bytes
        assert kept == 8
        assert source.residue_size == 8
        stats = source.stats()
        assert stats["malformed_frames"] == 1
        assert stats["discarded_bytes"] == 2

    def test_residue_carried_across_frames(self):
        with ZmqSubscribeSource(endpoint("residue"), poll_timeout_ms=10) as source:
            source.accept_frame(bytes(range(6)))
            source.accept_frame(bytes(range(6, 12)))
            buf = np.zeros(8, dtype=np.uint8)
            assert source.readinto(buf) == 8
            assert buf.tobytes() == bytes(range(8))
            assert source.residue_size == 4

    def test_stop_ends_waiting_read(self):
        source = ZmqSubscribeSource(endpoint("idle"), poll_timeout_ms=20)
        result: list[int] = []

        def reader() -> None:
            with source:
                result.append(source.readinto(np.zeros(64, dtype=np.uint8)))

        thread = threading.Thread(target=reader, daemon=True)
        thread.start()
        time.sleep(0.1)
        source.stop()
        thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert result == [0]

    def test_write_to_closed_publisher(self):
        sink = ZmqPublishSink(endpoint("closed"))
        with pytest.raises(SinkWriteFailure):
            sink.write(b"\x80\x80")


class TestStreamingPipeline:
    def test_sub_squelch_pub(self):
        ctx = zmq.Context.instance()
        in_ep, out_ep = endpoint("in"), endpoint("out")

        upstream = ctx.socket(zmq.PUB)
        upstream.bind(in_ep)
        downstream = ctx.socket(zmq.SUB)
        downstream.setsockopt(zmq.SUBSCRIBE, b"")

        source = ZmqSubscribeSource(in_ep, poll_timeout_ms=20)
        sink = ZmqPublishSink(out_ep)
        runtime = SquelchRuntime(SquelchSettings(block_size=8), source, sink)
        thread = threading.Thread(target=runtime.run, daemon=True)
        thread.start()

        try:
            assert wait_for(lambda: sink.is_open)
            downstream.connect(out_ep)
            time.sleep(0.3)

            data = from_pattern("..#..", 8)
            blocks = split_blocks(data, 16)
            # Frame boundaries need not match block boundaries.
            for start in range(0, len(data), 12):
                upstream.send(data[start : start + 12])

            received = []
            poller = zmq.Poller()
            poller.register(downstream, zmq.POLLIN)
            deadline = time.monotonic() + 3.0
            while len(received) < 3 and time.monotonic() < deadline:
                if dict(poller.poll(50)).get(downstream):
                    received.append(downstream.recv())

            assert received == [blocks[1], blocks[2], blocks[3]]
        finally:
            runtime.stop()
            thread.join(timeout=3.0)
            upstream.close(linger=0)
            downstream.close(linger=0)

        assert not thread.is_alive()
        assert runtime.stats.events == 1
        assert runtime.stats.blocks_emitted == 3
