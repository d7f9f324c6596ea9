from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from typing import Dict, Optional

from shared.errors import ConfigurationError
from shared.models import OutputLayout
from .classifier import MAGNITUDE_MODES

DEFAULT_BLOCK_SIZE = 1024
DEFAULT_BLOCK_THRESHOLD = 50
DEFAULT_SAMPLE_THRESHOLD = 10
DEFAULT_POLL_TIMEOUT_MS = 100


@dataclass(frozen=True)
class SquelchSettings:
    """Values the squelch loop consumes. Validated on construction."""

    auto_mode: bool = False
    block_size: int = DEFAULT_BLOCK_SIZE
    block_count: int = 0
    sample_threshold: int = DEFAULT_SAMPLE_THRESHOLD
    block_threshold: int = DEFAULT_BLOCK_THRESHOLD
    offset: int = 0
    padding: bool = True
    verbose: bool = False
    channels: int = 1
    substitute_nulls: bool = False
    magnitude_mode: str = "saturate"
    output_layout: Optional[OutputLayout] = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.block_size <= 0:
            raise ConfigurationError("block_size must be positive")
        if self.block_count < 0:
            raise ConfigurationError("block_count must be non-negative (0 = unlimited)")
        if not 0 <= self.sample_threshold <= 255:
            raise ConfigurationError("sample_threshold must be within [0, 255]")
        if not 0 <= self.block_threshold <= 100:
            raise ConfigurationError("block_threshold must be a percentage within [0, 100]")
        if self.offset < 0:
            raise ConfigurationError("offset must be non-negative")
        if self.channels < 1:
            raise ConfigurationError("channels must be >= 1")
        if self.magnitude_mode not in MAGNITUDE_MODES:
            raise ConfigurationError(
                f"magnitude_mode must be one of {', '.join(MAGNITUDE_MODES)}"
            )
        if self.output_layout is not None and not isinstance(self.output_layout, OutputLayout):
            raise ConfigurationError("output_layout must be an OutputLayout")

    @property
    def layout(self) -> OutputLayout:
        """Effective output layout: interleaved rows when substituting, columns otherwise."""
        if self.output_layout is not None:
            return self.output_layout
        if self.substitute_nulls:
            return OutputLayout.SAMPLE_MAJOR
        return OutputLayout.CHANNEL_MAJOR

    @property
    def block_bytes(self) -> int:
        return self.block_size * self.channels * 2

    def replace(self, **kwargs) -> "SquelchSettings":
        return replace(self, **kwargs)

    def to_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["output_layout"] = self.layout.value
        return data


@dataclass(frozen=True)
class TransportSettings:
    """Where samples come from and where kept blocks go."""

    input: Optional[str] = None
    output: str = "-"
    sub_endpoint: Optional[str] = None
    pub_endpoint: Optional[str] = None
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS

    def __post_init__(self) -> None:
        self.validate()

    @property
    def streaming(self) -> bool:
        return self.sub_endpoint is not None or self.pub_endpoint is not None

    def validate(self) -> None:
        if self.streaming:
            if not (self.sub_endpoint and self.pub_endpoint):
                raise ConfigurationError(
                    "streaming mode needs both a subscribe and a publish endpoint"
                )
            if self.input is not None:
                raise ConfigurationError("an input file cannot be combined with streaming mode")
        elif not self.input:
            raise ConfigurationError("an input file (or '-' for stdin) is required")
        if self.poll_timeout_ms <= 0:
            raise ConfigurationError("poll_timeout_ms must be positive")


__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "DEFAULT_BLOCK_THRESHOLD",
    "DEFAULT_SAMPLE_THRESHOLD",
    "DEFAULT_POLL_TIMEOUT_MS",
    "SquelchSettings",
    "TransportSettings",
]
