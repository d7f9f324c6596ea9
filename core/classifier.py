from __future__ import annotations

from typing import Literal

import numpy as np

from shared.models import BYTES_PER_SAMPLE, IQ_ZERO, ClassificationResult

MagnitudeMode = Literal["saturate", "wrap"]
MAGNITUDE_MODES: tuple[MagnitudeMode, ...] = ("saturate", "wrap")


def _as_pairs(samples: np.ndarray) -> np.ndarray:
    arr = np.asarray(samples)
    if arr.ndim == 3:
        # (n_samples, n_channels, 2): classify the reference channel only.
        arr = arr[:, 0, :]
    if arr.ndim != 2 or arr.shape[1] != BYTES_PER_SAMPLE:
        raise ValueError(f"samples must be shaped (n, 2) or (n, channels, 2), got {arr.shape}")
    return arr


def sample_magnitudes(samples: np.ndarray, *, magnitude_mode: MagnitudeMode = "saturate") -> np.ndarray:
    """
    Fast magnitude proxy for unsigned 8-bit IQ pairs.

    Each sample's magnitude is ``|I - 128| + |Q - 128|``. The sum can reach 256,
    one past what a byte holds: "saturate" clamps it to 255, "wrap" keeps the
    low 8 bits the way an unsigned byte accumulator would.

    Returns a uint8 array with one entry per sample.
    """
    pairs = _as_pairs(samples)
    deviation = np.abs(pairs.astype(np.int16) - IQ_ZERO).sum(axis=1)
    if magnitude_mode == "saturate":
        return np.minimum(deviation, 255).astype(np.uint8)
    if magnitude_mode == "wrap":
        return (deviation & 0xFF).astype(np.uint8)
    raise ValueError(f"Unknown magnitude_mode {magnitude_mode!r}")


def classify(
    samples: np.ndarray,
    sample_threshold: int,
    *,
    magnitude_mode: MagnitudeMode = "saturate",
) -> ClassificationResult:
    """Count the samples whose magnitude is strictly above `sample_threshold`."""
    mags = sample_magnitudes(samples, magnitude_mode=magnitude_mode)
    return ClassificationResult(
        magnitude_sum=int(mags.sum(dtype=np.uint64)),
        over_threshold_count=int(np.count_nonzero(mags > sample_threshold)),
        n_samples=int(mags.shape[0]),
    )


__all__ = ["MAGNITUDE_MODES", "MagnitudeMode", "classify", "sample_magnitudes"]
