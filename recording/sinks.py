"""Output sinks for kept IQ blocks: byte streams and ZeroMQ publishers."""
from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Optional

import zmq

from shared.errors import SinkWriteFailure

logger = logging.getLogger(__name__)

STDIO_NAME = "-"


class BaseSink(ABC):
    """
    Destination for emitted blocks. The squelch loop calls `write` exactly once
    per emitted block, so frame-oriented sinks see one frame per block.
    """

    def __init__(self) -> None:
        self._bytes_written: int = 0
        self._writes: int = 0
        self._opened = False

    @property
    def bytes_written(self) -> int:
        return self._bytes_written

    @property
    def writes(self) -> int:
        return self._writes

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> None:
        if self._opened:
            return
        self._open_impl()
        self._opened = True

    def write(self, data: bytes | memoryview) -> None:
        if not self._opened:
            raise SinkWriteFailure(f"{self.describe()} is not open")
        self._write_impl(data)
        self._bytes_written += len(data)
        self._writes += 1

    def close(self) -> None:
        if not self._opened:
            return
        self._opened = False
        self._close_impl()
        logger.debug("%s closed after %d writes (%d bytes)", self.describe(), self._writes, self._bytes_written)

    def __enter__(self) -> "BaseSink":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def describe(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    def _open_impl(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def _write_impl(self, data: bytes | memoryview) -> None:
        raise NotImplementedError

    @abstractmethod
    def _close_impl(self) -> None:
        raise NotImplementedError


class StreamSink(BaseSink):
    """Writes raw bytes to a file, or to stdout for ``"-"``."""

    def __init__(self, path: str | Path = STDIO_NAME) -> None:
        super().__init__()
        self._path = str(path)
        self._fh: Optional[BinaryIO] = None
        self._owns_handle = False

    @classmethod
    def from_stream(cls, stream: BinaryIO) -> "StreamSink":
        """Wrap an already-open binary stream; it is flushed but never closed."""
        sink = cls(getattr(stream, "name", "<stream>"))
        sink._fh = stream
        return sink

    @property
    def path(self) -> str:
        return self._path

    def describe(self) -> str:
        if self._path == STDIO_NAME:
            return "stdout"
        return self._path

    def _open_impl(self) -> None:
        if self._fh is not None:
            return
        if self._path == STDIO_NAME:
            self._fh = sys.stdout.buffer
            return
        try:
            self._fh = open(self._path, "wb")
        except OSError as exc:
            raise SinkWriteFailure(f"{self._path}: {exc.strerror or exc}") from exc
        self._owns_handle = True

    def _write_impl(self, data: bytes | memoryview) -> None:
        assert self._fh is not None
        try:
            self._fh.write(data)
        except OSError as exc:
            raise SinkWriteFailure(f"{self.describe()}: {exc}") from exc

    def _close_impl(self) -> None:
        if self._fh is None:
            return
        try:
            self._fh.flush()
            if self._owns_handle:
                self._fh.close()
        except OSError as exc:
            raise SinkWriteFailure(f"{self.describe()}: {exc}") from exc
        finally:
            if self._owns_handle:
                self._fh = None
            self._owns_handle = False


class ZmqPublishSink(BaseSink):
    """Publishes one ZeroMQ message per emitted block."""

    def __init__(
        self,
        endpoint: str,
        *,
        bind: bool = True,
        topic: bytes = b"",
        linger_ms: int = 1000,
        context: Optional[zmq.Context] = None,
    ) -> None:
        super().__init__()
        self._endpoint = endpoint
        self._bind = bind
        # Queued frames get this long to drain on close.
        self._linger_ms = int(linger_ms)
        self._topic = bytes(topic)
        self._context = context
        self._socket: Optional[zmq.Socket] = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def describe(self) -> str:
        return f"zmq-pub {self._endpoint}"

    def _open_impl(self) -> None:
        ctx = self._context or zmq.Context.instance()
        try:
            sock = ctx.socket(zmq.PUB)
            if self._bind:
                sock.bind(self._endpoint)
            else:
                sock.connect(self._endpoint)
        except zmq.ZMQError as exc:
            raise SinkWriteFailure(f"{self._endpoint}: {exc}") from exc
        self._socket = sock
        logger.info("Publishing kept blocks on %s", self._endpoint)

    def _write_impl(self, data: bytes | memoryview) -> None:
        assert self._socket is not None
        try:
            if self._topic:
                self._socket.send_multipart([self._topic, data])
            else:
                self._socket.send(data)
        except zmq.ZMQError as exc:
            raise SinkWriteFailure(f"{self._endpoint}: {exc}") from exc

    def _close_impl(self) -> None:
        if self._socket is not None:
            try:
                self._socket.close(linger=self._linger_ms)
            except zmq.ZMQError as exc:
                logger.debug("Failed to close PUB socket: %s", exc)
        self._socket = None


__all__ = ["BaseSink", "StreamSink", "ZmqPublishSink", "STDIO_NAME"]
