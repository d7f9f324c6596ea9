from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from daq.base_source import BaseSource
from daq.block_source import DoubleBufferedBlockSource
from recording.sinks import BaseSink
from shared.errors import SquelchError
from shared.models import Block, SquelchEvent, Transition

from .channels import ChannelReshaper
from .classifier import classify
from .noise import NoiseEstimator
from .settings import SquelchSettings
from .squelch import EventStateMachine

RECENT_EVENTS = 256


@dataclass
class RunStats:
    blocks_received: int = 0
    blocks_emitted: int = 0
    substituted_blocks: int = 0
    samples_received: int = 0
    samples_sent: int = 0
    bytes_sent: int = 0
    events: int = 0
    noise_average: Optional[int] = None
    recent_events: Deque[SquelchEvent] = field(default_factory=lambda: deque(maxlen=RECENT_EVENTS))

    def snapshot(self) -> Dict[str, object]:
        return {
            "blocks_received": self.blocks_received,
            "blocks_emitted": self.blocks_emitted,
            "substituted_blocks": self.substituted_blocks,
            "samples_received": self.samples_received,
            "samples_sent": self.samples_sent,
            "bytes_sent": self.bytes_sent,
            "events": self.events,
            "noise_average": self.noise_average,
        }


class SquelchRuntime:
    """
    Single-threaded squelch loop: read a block, classify its reference channel,
    step the event state machine and write whatever the transition emits.

    The source's stop event doubles as the cancellation token. It is checked
    once per block, and streaming sources poll it while waiting for data.
    """

    def __init__(
        self,
        settings: SquelchSettings,
        source: BaseSource,
        sink: BaseSink,
        *,
        logger: Optional[logging.Logger] = None,
        progress_interval: float = 5.0,
    ) -> None:
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self._source = source
        self._sink = sink
        self._stop_event: threading.Event = source.stop_event
        self._progress_interval = progress_interval
        self._last_progress = 0.0

        self._reshaper = ChannelReshaper(settings.channels)
        self._noise = NoiseEstimator() if settings.auto_mode else None
        self._machine = EventStateMachine(
            settings.block_threshold,
            padding=settings.padding,
            noise=self._noise,
        )
        self._layout = settings.layout
        self._current_event: Optional[SquelchEvent] = None
        self._end_position: Optional[int] = None
        self.stats = RunStats()

    @property
    def machine(self) -> EventStateMachine:
        return self._machine

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def stop(self) -> None:
        """Request a cooperative stop; observed at the next block boundary."""
        self._stop_event.set()

    def run(self) -> RunStats:
        """Process the source until it is exhausted or a stop is requested."""
        if self.settings.verbose:
            self._log_settings()
        self._source.open()
        try:
            self._sink.open()
            try:
                self._run_loop()
            except BaseException:
                # Keep the original failure; a close error here is secondary.
                self._close_sink_quietly()
                raise
            self._sink.close()
        finally:
            self._source.close()
            self._finish()
        return self.stats

    def _run_loop(self) -> None:
        blocks = DoubleBufferedBlockSource(
            self._source,
            self.settings.block_size,
            channels=self.settings.channels,
            max_blocks=self.settings.block_count,
        )
        self._last_progress = time.monotonic()
        try:
            while not self._stop_event.is_set():
                block = blocks.next_block()
                if block is None:
                    break
                self.process_block(block, blocks.previous)
        finally:
            self._end_position = blocks.position

    def _close_sink_quietly(self) -> None:
        try:
            self._sink.close()
        except SquelchError as exc:
            self.logger.warning("Failed to close %s: %s", self._sink.describe(), exc)

    def process_block(self, block: Block, previous: Optional[Block]) -> Transition:
        """Classify one block, advance the state machine and emit accordingly."""
        settings = self.settings
        self.stats.blocks_received += 1
        self.stats.samples_received += block.n_samples

        result = classify(
            self._reshaper.reference(block.samples),
            settings.sample_threshold,
            magnitude_mode=settings.magnitude_mode,
        )
        transition = self._machine.step(result)

        if transition.started:
            self._open_event(block)
            # In substitution mode the previous block already went out as filler.
            if transition.emit_previous and previous is not None and not settings.substitute_nulls:
                self._emit(previous)

        if transition.emit_current:
            self._emit(block)
        elif settings.substitute_nulls:
            self._emit_null(block)

        if transition.ended:
            self._close_event(block.offset)

        self._maybe_log_progress()
        return transition

    # Emission ---------------------------------------------------------------

    def _emit(self, block: Block) -> None:
        data = self._reshaper.flatten(block.samples, self._layout)
        self._sink.write(data)
        self.stats.blocks_emitted += 1
        self.stats.samples_sent += block.n_samples
        self.stats.bytes_sent += len(data)

    def _emit_null(self, block: Block) -> None:
        data = self._reshaper.sentinel(block.n_samples)
        self._sink.write(data)
        self.stats.substituted_blocks += 1
        self.stats.samples_sent += block.n_samples
        self.stats.bytes_sent += len(data)

    # Diagnostics ------------------------------------------------------------

    def _open_event(self, block: Block) -> None:
        event = SquelchEvent(index=self._machine.event_count, start_offset=block.offset)
        self._current_event = event
        self.stats.events = self._machine.event_count
        self.stats.recent_events.append(event)
        self.logger.info("Output triggered from byte offset %d", block.offset)

    def _close_event(self, offset: int) -> None:
        event = self._current_event
        if event is None:
            return
        event.end_offset = offset
        self._current_event = None
        self.logger.info(
            "Event %d: byte offset %d to %d",
            event.index,
            event.start_offset,
            offset,
        )

    def _maybe_log_progress(self) -> None:
        now = time.monotonic()
        if now - self._last_progress < self._progress_interval:
            return
        self._last_progress = now
        self.logger.info(
            "Received %d samples, sent %d samples",
            self.stats.samples_received,
            self.stats.samples_sent,
        )

    def _log_settings(self) -> None:
        s = self.settings
        self.logger.info("      Block Size: %d samples", s.block_size)
        if s.block_count:
            self.logger.info("     Block Count: %d blocks", s.block_count)
        self.logger.info("          Offset: %d", s.offset)
        self.logger.info("Sample Threshold: %d", s.sample_threshold)
        self.logger.info(" Block Threshold: %d%%", s.block_threshold)
        if s.channels > 1:
            self.logger.info("        Channels: %d (%s output)", s.channels, self._layout.value)
        self.logger.info("           Input: %s", self._source.describe())
        self.logger.info("          Output: %s", self._sink.describe())

    def _finish(self) -> None:
        if self._current_event is not None:
            # Input ended mid-event.
            end = self._end_position
            self._close_event(end if end is not None else self._current_event.start_offset)
        if self._noise is not None:
            self.stats.noise_average = self._noise.average
            self.logger.info("Noise average: %d", self._noise.average)
        self.stats.events = self._machine.event_count
        self.logger.info(
            "Received %d samples, sent %d samples",
            self.stats.samples_received,
            self.stats.samples_sent,
        )
        self.logger.info("%d events output", self.stats.events)


__all__ = ["RunStats", "SquelchRuntime", "RECENT_EVENTS"]
