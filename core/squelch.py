from __future__ import annotations

import logging
from typing import Optional

from shared.models import ClassificationResult, EventState, Transition
from .noise import NoiseEstimator

logger = logging.getLogger(__name__)


def block_threshold(n_samples: int, block_threshold_pct: int) -> int:
    """Number of over-threshold samples a block must exceed to count as signal."""
    return n_samples * block_threshold_pct // 100


class EventStateMachine:
    """
    Idle/Active squelch state machine.

    Output depends on both the state and the incoming block (a Mealy machine):

    ======  ========  =================================================
    from    block     emits
    ======  ========  =================================================
    IDLE    signal    previous block (if padding), then current block
    ACTIVE  signal    current block
    ACTIVE  noise     current block as trailing pad (if padding)
    IDLE    noise     nothing; block mean folded into the noise estimate
    ======  ========  =================================================
    """

    def __init__(
        self,
        block_threshold_pct: int,
        *,
        padding: bool = True,
        noise: Optional[NoiseEstimator] = None,
    ) -> None:
        if not 0 <= block_threshold_pct <= 100:
            raise ValueError("block_threshold_pct must be within [0, 100]")
        self._block_threshold_pct = int(block_threshold_pct)
        self._padding = bool(padding)
        self._noise = noise
        self._state = EventState.IDLE
        self._event_count = 0

    @property
    def state(self) -> EventState:
        return self._state

    @property
    def triggered(self) -> bool:
        return self._state is EventState.ACTIVE

    @property
    def event_count(self) -> int:
        """Number of IDLE -> ACTIVE edges seen so far."""
        return self._event_count

    @property
    def padding(self) -> bool:
        return self._padding

    @property
    def noise(self) -> Optional[NoiseEstimator]:
        return self._noise

    def is_signal(self, result: ClassificationResult) -> bool:
        # Strict: a block exactly at the threshold is noise.
        return result.over_threshold_count > block_threshold(result.n_samples, self._block_threshold_pct)

    def step(self, result: ClassificationResult) -> Transition:
        previous = self._state
        signal = self.is_signal(result)

        if signal:
            self._state = EventState.ACTIVE
            if previous is EventState.IDLE:
                self._event_count += 1
                return Transition(previous, self._state, True, emit_previous=self._padding, emit_current=True)
            return Transition(previous, self._state, True, emit_current=True)

        self._state = EventState.IDLE
        if previous is EventState.ACTIVE:
            return Transition(previous, self._state, False, emit_current=self._padding)

        if self._noise is not None:
            avg = self._noise.update(result.mean_magnitude)
            logger.debug("Noise average now %d", avg)
        return Transition(previous, self._state, False)

    def reset(self) -> None:
        self._state = EventState.IDLE
        self._event_count = 0
        if self._noise is not None:
            self._noise.reset()


__all__ = ["EventStateMachine", "block_threshold"]
