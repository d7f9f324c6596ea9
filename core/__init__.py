"""Core squelch logic: classification, event state and the processing loop."""

from .channels import ChannelReshaper, reinterleave, transpose
from .classifier import classify, sample_magnitudes
from .noise import NoiseEstimator
from .runtime import RunStats, SquelchRuntime
from .settings import SquelchSettings, TransportSettings
from .squelch import EventStateMachine, block_threshold
from shared.models import Block, ClassificationResult, EventState, OutputLayout, SquelchEvent, Transition

__all__ = [
    "Block",
    "ClassificationResult",
    "EventState",
    "Transition",
    "SquelchEvent",
    "OutputLayout",
    "ChannelReshaper",
    "transpose",
    "reinterleave",
    "classify",
    "sample_magnitudes",
    "NoiseEstimator",
    "EventStateMachine",
    "block_threshold",
    "SquelchSettings",
    "TransportSettings",
    "SquelchRuntime",
    "RunStats",
]
