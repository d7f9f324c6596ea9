"""ZeroMQ subscriber that turns a stream of transport frames into IQ bytes."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

import numpy as np
import zmq

from shared.errors import SourceReadFailure, SourceUnavailable
from shared.models import BYTES_PER_SAMPLE
from .base_source import BaseSource

logger = logging.getLogger(__name__)


class ZmqSubscribeSource(BaseSource):
    """
    Unbounded source fed by a ZeroMQ SUB socket.

    Each frame may carry `channels` interleaved IQ streams. Trailing bytes that
    do not form a whole multi-channel sample are discarded, never passed on.
    Bytes that do not yet fill a caller's buffer are kept as residue and
    prefixed to the next frame's data.

    Receives are polled with `poll_timeout_ms` so the stop flag is observed in
    bounded time even when the publisher goes quiet.
    """

    @classmethod
    def source_class_name(cls) -> str:
        return "ZeroMQ Subscriber"

    def __init__(
        self,
        endpoint: str,
        *,
        channels: int = 1,
        topic: bytes = b"",
        poll_timeout_ms: int = 100,
        context: Optional[zmq.Context] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(stop_event=stop_event)
        if channels < 1:
            raise ValueError("channels must be >= 1")
        if poll_timeout_ms <= 0:
            raise ValueError("poll_timeout_ms must be positive")
        self._endpoint = endpoint
        self._channels = int(channels)
        self._topic = bytes(topic)
        self._poll_timeout_ms = int(poll_timeout_ms)
        self._context = context
        self._socket: Optional[zmq.Socket] = None
        self._poller: Optional[zmq.Poller] = None
        self._residue = bytearray()

        # Diagnostics
        self._frames: int = 0
        self._malformed_frames: int = 0
        self._discarded_bytes: int = 0

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def frame_alignment(self) -> int:
        return self._channels * BYTES_PER_SAMPLE

    @property
    def residue_size(self) -> int:
        return len(self._residue)

    def describe(self) -> str:
        return f"zmq-sub {self._endpoint}"

    # ---- Lifecycle ----

    def _open_impl(self) -> None:
        ctx = self._context or zmq.Context.instance()
        try:
            sock = ctx.socket(zmq.SUB)
            sock.setsockopt(zmq.SUBSCRIBE, self._topic)
            sock.connect(self._endpoint)
        except zmq.ZMQError as exc:
            raise SourceUnavailable(f"{self._endpoint}: {exc}") from exc

        poller = zmq.Poller()
        poller.register(sock, zmq.POLLIN)
        self._socket = sock
        self._poller = poller
        self._residue.clear()
        self._frames = 0
        self._malformed_frames = 0
        self._discarded_bytes = 0
        logger.info("Subscribed to %s (%d channel(s) per frame)", self._endpoint, self._channels)

    def _close_impl(self) -> None:
        if self._residue:
            logger.debug("Dropping %d residue bytes on close", len(self._residue))
            self._residue.clear()
        if self._socket is not None:
            try:
                self._socket.close(linger=0)
            except zmq.ZMQError as exc:
                logger.debug("Failed to close SUB socket: %s", exc)
        self._socket = None
        self._poller = None

    # ---- Reading ----

    def _readinto_impl(self, buffer: np.ndarray) -> int:
        wanted = len(buffer)
        while len(self._residue) < wanted:
            if self._stop_event.is_set():
                return 0
            payload = self._poll_frame()
            if payload is None:
                continue
            self.accept_frame(payload)

        buffer[:wanted] = np.frombuffer(self._residue, dtype=np.uint8, count=wanted)
        del self._residue[:wanted]
        return wanted

    def _poll_frame(self) -> Optional[bytes]:
        assert self._socket is not None and self._poller is not None
        try:
            events = dict(self._poller.poll(self._poll_timeout_ms))
            if self._socket not in events:
                return None
            parts = self._socket.recv_multipart(zmq.NOBLOCK)
        except zmq.Again:
            return None
        except zmq.ZMQError as exc:
            raise SourceReadFailure(f"{self._endpoint}: {exc}") from exc
        # Topic-prefixed publishers send [topic, payload]; the payload is last.
        return parts[-1] if parts else b""

    def accept_frame(self, payload: bytes) -> int:
        """
        Append one transport frame to the residue, trimming a misaligned tail.

        Returns the number of bytes kept.
        """
        self._frames += 1
        remainder = len(payload) % self.frame_alignment
        if remainder:
            self._malformed_frames += 1
            self._discarded_bytes += remainder
            logger.warning(
                "Frame of %d bytes is not a multiple of %d; discarding %d trailing bytes",
                len(payload),
                self.frame_alignment,
                remainder,
            )
            payload = payload[: len(payload) - remainder]
        self._residue += payload
        return len(payload)

    def stats(self) -> dict[str, Any]:
        info = super().stats()
        info.update(
            {
                "endpoint": self._endpoint,
                "frames": self._frames,
                "malformed_frames": self._malformed_frames,
                "discarded_bytes": self._discarded_bytes,
                "residue": len(self._residue),
            }
        )
        return info


__all__ = ["ZmqSubscribeSource"]
