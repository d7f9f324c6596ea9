from __future__ import annotations


class NoiseEstimator:
    """
    Running background-noise level built from non-signal blocks.

    Each update weights the newest block mean and the prior average equally:
    ``avg = (avg + mean) // 2``. The estimate is advisory; nothing feeds it
    back into the sample threshold.
    """

    def __init__(self) -> None:
        self._average = 0
        self._updates = 0

    @property
    def average(self) -> int:
        return self._average

    @property
    def updates(self) -> int:
        return self._updates

    def update(self, mean_magnitude: int) -> int:
        if mean_magnitude < 0:
            raise ValueError("mean_magnitude must be non-negative")
        self._average = (self._average + int(mean_magnitude)) // 2
        self._updates += 1
        return self._average

    def reset(self) -> None:
        self._average = 0
        self._updates = 0


__all__ = ["NoiseEstimator"]
