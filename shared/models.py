from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

# Unsigned IQ byte that represents zero amplitude.
IQ_ZERO = 128
# Mid-scale byte used to fill suppressed blocks in null-substitution mode.
IQ_NULL = 127
BYTES_PER_SAMPLE = 2


def _readonly_view(array: np.ndarray, *, ndim: int | None = None) -> np.ndarray:
    """Return a read-only view of `array`, validating dimensions."""
    arr = np.asarray(array)
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    view = arr.view()
    view.setflags(write=False)
    return view


# ----------------------------
# Streaming data models
# ----------------------------

@dataclass(frozen=True)
class Block:
    """One decision unit of IQ data read from a source.

    `samples` is shaped (n_samples, n_channels, 2) and is a read-only view into
    a double-buffer slot, so it is only valid until the slot is refilled.
    """

    samples: np.ndarray
    offset: int
    seq: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("offset must be non-negative")
        if self.seq < 0:
            raise ValueError("seq must be non-negative")
        samples = _readonly_view(self.samples, ndim=3)
        if samples.dtype != np.uint8:
            raise ValueError("samples must be uint8")
        if samples.shape[2] != BYTES_PER_SAMPLE:
            raise ValueError("samples last axis must hold (I, Q) pairs")
        object.__setattr__(self, "samples", samples)

    @property
    def n_samples(self) -> int:
        return self.samples.shape[0]

    @property
    def n_channels(self) -> int:
        return self.samples.shape[1]

    @property
    def nbytes(self) -> int:
        return self.samples.size

    @property
    def end_offset(self) -> int:
        return self.offset + self.nbytes


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one block's reference channel."""

    magnitude_sum: int
    over_threshold_count: int
    n_samples: int

    def __post_init__(self) -> None:
        if self.n_samples < 0:
            raise ValueError("n_samples must be non-negative")
        if not 0 <= self.over_threshold_count <= self.n_samples:
            raise ValueError("over_threshold_count must be within [0, n_samples]")
        if self.magnitude_sum < 0:
            raise ValueError("magnitude_sum must be non-negative")

    @property
    def mean_magnitude(self) -> int:
        if self.n_samples == 0:
            return 0
        return self.magnitude_sum // self.n_samples


class EventState(enum.Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(frozen=True)
class Transition:
    """Output of one EventStateMachine step."""

    previous: EventState
    current: EventState
    signal: bool
    emit_previous: bool = False
    emit_current: bool = False

    @property
    def started(self) -> bool:
        return self.previous is EventState.IDLE and self.current is EventState.ACTIVE

    @property
    def ended(self) -> bool:
        return self.previous is EventState.ACTIVE and self.current is EventState.IDLE


@dataclass
class SquelchEvent:
    """Byte range of one contiguous run of signal blocks."""

    index: int
    start_offset: int
    end_offset: Optional[int] = field(default=None)

    @property
    def closed(self) -> bool:
        return self.end_offset is not None


class OutputLayout(enum.Enum):
    """Byte order used when a multi-channel block is flattened for output."""

    CHANNEL_MAJOR = "column"
    SAMPLE_MAJOR = "row"


__all__ = [
    "IQ_ZERO",
    "IQ_NULL",
    "BYTES_PER_SAMPLE",
    "Block",
    "ClassificationResult",
    "EventState",
    "Transition",
    "SquelchEvent",
    "OutputLayout",
]
