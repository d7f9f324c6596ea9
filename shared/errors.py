"""Error hierarchy shared by sources, sinks and the squelch runtime."""

from __future__ import annotations


class SquelchError(RuntimeError):
    """Base class for every error the squelch pipeline raises on purpose."""


class ConfigurationError(SquelchError, ValueError):
    """Invalid or inconsistent settings, detected before any processing starts."""


class SourceUnavailable(SquelchError):
    """The input could not be opened or connected."""


class SourceReadFailure(SquelchError):
    """An I/O error occurred while reading from an open source."""


class MalformedFrame(SquelchError, ValueError):
    """A transport unit whose length is not a whole number of multi-channel samples."""


class SinkWriteFailure(SquelchError):
    """The output could not be opened or written."""


__all__ = [
    "SquelchError",
    "ConfigurationError",
    "SourceUnavailable",
    "SourceReadFailure",
    "MalformedFrame",
    "SinkWriteFailure",
]
