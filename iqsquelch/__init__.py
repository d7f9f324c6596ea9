"""IQ squelch: keep the blocks of an 8-bit IQ stream that carry signal."""

__version__ = "0.1.0"
