# daq/file_source.py
"""File-based IQ source for recorded captures, pipes and stdin."""

from __future__ import annotations

import io
import logging
import sys
import threading
from pathlib import Path
from typing import Any, BinaryIO, Optional

import numpy as np

from shared.errors import SourceReadFailure, SourceUnavailable
from .base_source import BaseSource

logger = logging.getLogger(__name__)

STDIO_NAME = "-"
_SKIP_CHUNK = 1 << 20


class FileSource(BaseSource):
    """
    Finite byte source backed by a file, a pipe or stdin.

    Features:
    - ``"-"`` reads from stdin
    - Honors a starting byte offset: seeks when the stream supports it,
      otherwise reads and discards the leading bytes
    - Keeps reading until a buffer is full or EOF, so pipe short reads
      never surface as short blocks
    """

    @classmethod
    def source_class_name(cls) -> str:
        return "File Source"

    def __init__(
        self,
        path: str | Path,
        *,
        offset: int = 0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(stop_event=stop_event)
        if offset < 0:
            raise ValueError("offset must be non-negative")
        self._path = str(path)
        self._offset = int(offset)
        self._fh: Optional[BinaryIO] = None
        self._owns_handle = False
        self._eof = False

    @classmethod
    def from_stream(
        cls,
        stream: BinaryIO,
        *,
        offset: int = 0,
        stop_event: Optional[threading.Event] = None,
    ) -> "FileSource":
        """Wrap an already-open binary stream; the caller keeps ownership of it."""
        source = cls(getattr(stream, "name", "<stream>"), offset=offset, stop_event=stop_event)
        source._fh = stream
        return source

    @property
    def path(self) -> str:
        return self._path

    @property
    def start_offset(self) -> int:
        return self._offset

    def describe(self) -> str:
        if self._path == STDIO_NAME:
            return "stdin"
        return self._path

    # ---- Lifecycle ----

    def _open_impl(self) -> None:
        if self._fh is None:
            if self._path == STDIO_NAME:
                self._fh = sys.stdin.buffer
                self._owns_handle = False
            else:
                try:
                    self._fh = open(self._path, "rb")
                except OSError as exc:
                    raise SourceUnavailable(f"{self._path}: {exc.strerror or exc}") from exc
                self._owns_handle = True

        self._eof = False
        if self._offset:
            self._skip_to_offset()

        logger.info("Opened IQ source %s (offset=%d)", self.describe(), self._offset)

    def _close_impl(self) -> None:
        if self._fh is not None and self._owns_handle:
            try:
                self._fh.close()
            except OSError as exc:
                logger.debug("Failed to close %s: %s", self._path, exc)
        self._fh = None
        self._owns_handle = False

    def _skip_to_offset(self) -> None:
        assert self._fh is not None
        seekable = False
        try:
            seekable = self._fh.seekable()
        except (AttributeError, OSError, ValueError):
            seekable = False

        if seekable:
            try:
                self._fh.seek(self._offset, io.SEEK_SET)
                return
            except OSError as exc:
                raise SourceReadFailure(f"{self.describe()}: seek to {self._offset} failed: {exc}") from exc

        # Pipes cannot seek; consume the leading bytes instead.
        remaining = self._offset
        while remaining > 0:
            try:
                chunk = self._fh.read(min(remaining, _SKIP_CHUNK))
            except OSError as exc:
                raise SourceReadFailure(f"{self.describe()}: {exc}") from exc
            if not chunk:
                logger.warning(
                    "%s ended %d bytes before the requested offset %d",
                    self.describe(),
                    remaining,
                    self._offset,
                )
                self._eof = True
                return
            remaining -= len(chunk)

    # ---- Reading ----

    def _readinto_impl(self, buffer: np.ndarray) -> int:
        if self._eof or self._fh is None:
            return 0

        view = memoryview(buffer)
        total = 0
        while total < len(view):
            try:
                n = self._fh.readinto(view[total:])
            except OSError as exc:
                raise SourceReadFailure(f"{self.describe()}: {exc}") from exc
            if not n:
                self._eof = True
                break
            total += n
        return total

    def stats(self) -> dict[str, Any]:
        info = super().stats()
        info["path"] = self._path
        info["eof"] = self._eof
        return info


__all__ = ["FileSource", "STDIO_NAME"]
