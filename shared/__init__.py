"""
Shared data structures used by sources, sinks and the squelch core.
"""

from .block_buffer import BlockBuffer
from .errors import (
    ConfigurationError,
    MalformedFrame,
    SinkWriteFailure,
    SourceReadFailure,
    SourceUnavailable,
    SquelchError,
)

__all__ = [
    "BlockBuffer",
    "SquelchError",
    "ConfigurationError",
    "SourceUnavailable",
    "SourceReadFailure",
    "MalformedFrame",
    "SinkWriteFailure",
]
