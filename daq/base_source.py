from __future__ import annotations

"""
Base class for byte-oriented IQ input sources.

Goals:
- Simple, stable contract for the squelch loop (fill a caller-owned buffer).
- Clean lifecycle: open → readinto ... → close.
- Cooperative stop through a shared threading.Event, so blocking reads on
  unbounded streams can be interrupted between polls.

Subclasses implement the *_impl() methods to integrate files, pipes or
transport sockets while relying on the shared utilities here.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Iterable, Literal, Optional

import numpy as np

State = Literal["closed", "open"]


class BaseSource(ABC):
    """
    Abstract base for all IQ byte sources.

    Typical flow:
        source = Driver(...)
        source.open()
        n = source.readinto(buffer)   # 0 => exhausted or stopped
        source.close()

    Sources also work as context managers.
    """

    @classmethod
    @abstractmethod
    def source_class_name(cls) -> str:
        """Return the human-friendly category name for this source type."""
        raise NotImplementedError

    def __init__(self, *, stop_event: Optional[threading.Event] = None) -> None:
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._state_lock = threading.RLock()
        self._state: State = "closed"

        # Diagnostics
        self._bytes_read: int = 0
        self._reads: int = 0

    # ----------
    # Lifecycle
    # ----------

    def open(self) -> None:
        with self._state_lock:
            self._assert_state(expected=("closed",))
            self._open_impl()
            self._bytes_read = 0
            self._reads = 0
            self._state = "open"

    @abstractmethod
    def _open_impl(self) -> None:
        """Source-specific resource acquisition."""
        raise NotImplementedError

    def close(self) -> None:
        with self._state_lock:
            if self._state == "closed":
                return
            self._close_impl()
            self._state = "closed"

    @abstractmethod
    def _close_impl(self) -> None:
        """Source-specific resource release."""
        raise NotImplementedError

    def stop(self) -> None:
        """Ask any blocking read to return as soon as it next checks the stop flag."""
        self._stop_event.set()

    def __enter__(self) -> "BaseSource":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ----------
    # Reading
    # ----------

    def readinto(self, buffer: np.ndarray) -> int:
        """
        Fill `buffer` (a 1D uint8 array) with the next bytes of the source.

        Returns the number of bytes written. A return shorter than the buffer
        only happens at end of data; 0 means the source is exhausted or was
        stopped.
        """
        self._assert_state(expected=("open",))
        if buffer.dtype != np.uint8 or buffer.ndim != 1:
            raise ValueError("buffer must be a 1D uint8 array")
        if self._stop_event.is_set():
            return 0
        n = self._readinto_impl(buffer)
        if n > 0:
            self._bytes_read += n
            self._reads += 1
        return n

    @abstractmethod
    def _readinto_impl(self, buffer: np.ndarray) -> int:
        raise NotImplementedError

    # --------------
    # Introspection
    # --------------

    @property
    def start_offset(self) -> int:
        """Logical byte position of the first byte this source returns."""
        return 0

    @property
    def state(self) -> State:
        with self._state_lock:
            return self._state

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def describe(self) -> str:
        return self.source_class_name()

    def stats(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "bytes_read": self._bytes_read,
            "reads": self._reads,
            "start_offset": self.start_offset,
        }

    # -------------
    # Base helpers
    # -------------

    def _assert_state(self, expected: Iterable[State]) -> None:
        expected = tuple(expected)
        if self._state not in expected:
            raise RuntimeError(f"Invalid state: {self._state}; expected one of {expected}.")


__all__ = ["BaseSource", "State"]
