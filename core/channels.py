"""
De-interleaving of multi-channel IQ transport frames.

A frame carries N channel streams interleaved sample by sample:

    ch0(I,Q) ch1(I,Q) ... chN-1(I,Q) ch0(I,Q) ch1(I,Q) ...

`transpose` turns that row-major layout into an (N, n_samples, 2) channel-major
matrix and `reinterleave` undoes it exactly.
"""

from __future__ import annotations

import numpy as np

from shared.errors import MalformedFrame
from shared.models import BYTES_PER_SAMPLE, IQ_NULL, OutputLayout


def transpose(raw: np.ndarray | bytes, n_channels: int) -> np.ndarray:
    """Split interleaved bytes into an (n_channels, n_samples, 2) uint8 matrix."""
    if n_channels < 1:
        raise ValueError("n_channels must be >= 1")
    if isinstance(raw, (bytes, bytearray, memoryview)):
        arr = np.frombuffer(raw, dtype=np.uint8)
    else:
        arr = np.asarray(raw, dtype=np.uint8).reshape(-1)
    stride = n_channels * BYTES_PER_SAMPLE
    if arr.size % stride:
        raise MalformedFrame(
            f"{arr.size} bytes is not a whole number of {n_channels}-channel samples"
        )
    return np.ascontiguousarray(arr.reshape(-1, n_channels, BYTES_PER_SAMPLE).transpose(1, 0, 2))


def reinterleave(matrix: np.ndarray) -> np.ndarray:
    """Inverse of `transpose`: back to the original sample-interleaved 1D bytes."""
    arr = np.asarray(matrix, dtype=np.uint8)
    if arr.ndim != 3 or arr.shape[2] != BYTES_PER_SAMPLE:
        raise ValueError(f"matrix must be shaped (channels, n, 2), got {arr.shape}")
    return np.ascontiguousarray(arr.transpose(1, 0, 2)).reshape(-1)


class ChannelReshaper:
    """
    Per-block channel handling for the squelch loop.

    Blocks arrive shaped (n_samples, n_channels, 2). One reference channel feeds
    the classifier; the resulting decision applies to every channel of the block.
    """

    def __init__(self, n_channels: int, *, reference_channel: int = 0) -> None:
        if n_channels < 1:
            raise ValueError("n_channels must be >= 1")
        if not 0 <= reference_channel < n_channels:
            raise ValueError("reference_channel out of range")
        self._n_channels = int(n_channels)
        self._reference_channel = int(reference_channel)
        self._sentinel_cache: dict[int, bytes] = {}

    @property
    def n_channels(self) -> int:
        return self._n_channels

    @property
    def reference_channel(self) -> int:
        return self._reference_channel

    @property
    def active(self) -> bool:
        """True when the source multiplexes more than one channel."""
        return self._n_channels > 1

    def _check(self, samples: np.ndarray) -> np.ndarray:
        arr = np.asarray(samples)
        if arr.ndim != 3 or arr.shape[1] != self._n_channels or arr.shape[2] != BYTES_PER_SAMPLE:
            raise MalformedFrame(
                f"expected block shaped (n, {self._n_channels}, 2), got {arr.shape}"
            )
        return arr

    def transpose(self, raw: np.ndarray | bytes) -> np.ndarray:
        return transpose(raw, self._n_channels)

    def interleave(self, matrix: np.ndarray) -> np.ndarray:
        if np.asarray(matrix).shape[0] != self._n_channels:
            raise MalformedFrame(f"matrix must have {self._n_channels} rows")
        return reinterleave(matrix)

    def reference(self, samples: np.ndarray) -> np.ndarray:
        """The (n_samples, 2) IQ pairs of the reference channel."""
        return self._check(samples)[:, self._reference_channel, :]

    def flatten(self, samples: np.ndarray, layout: OutputLayout) -> bytes:
        """
        Serialize a block for output.

        CHANNEL_MAJOR writes all of channel 0, then channel 1, and so on.
        SAMPLE_MAJOR keeps the transport's interleaving. With a single channel
        both layouts are identical to the input bytes.
        """
        arr = self._check(samples)
        if layout is OutputLayout.SAMPLE_MAJOR or not self.active:
            return arr.tobytes()
        if layout is OutputLayout.CHANNEL_MAJOR:
            return np.ascontiguousarray(arr.transpose(1, 0, 2)).tobytes()
        raise ValueError(f"Unknown layout {layout!r}")

    def sentinel(self, n_samples: int) -> bytes:
        """Mid-scale filler for `n_samples` samples on every channel."""
        if n_samples < 0:
            raise ValueError("n_samples must be non-negative")
        cached = self._sentinel_cache.get(n_samples)
        if cached is None:
            cached = bytes([IQ_NULL]) * (n_samples * self._n_channels * BYTES_PER_SAMPLE)
            self._sentinel_cache[n_samples] = cached
        return cached


__all__ = ["ChannelReshaper", "reinterleave", "transpose"]
