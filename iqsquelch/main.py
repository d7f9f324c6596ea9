"""Command-line entry point: suppress IQ samples below a certain threshold."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Optional, Sequence

from core.runtime import SquelchRuntime
from core.settings import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_BLOCK_THRESHOLD,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_SAMPLE_THRESHOLD,
    SquelchSettings,
    TransportSettings,
)
from daq.base_source import BaseSource
from daq.file_source import FileSource
from daq.zmq_source import ZmqSubscribeSource
from recording.sinks import BaseSink, StreamSink, ZmqPublishSink
from shared.errors import ConfigurationError, SquelchError
from shared.models import OutputLayout

logger = logging.getLogger("iqsquelch")

_LAYOUTS = {layout.value: layout for layout in OutputLayout}


def c_int(text: str) -> int:
    """Parse an unsigned integer the way strtoul(text, NULL, 0) does (0x.., 0..)."""
    value = text.strip()
    try:
        number = int(value, 0)
    except ValueError:
        # int(..., 0) rejects C-style octal such as "010".
        if len(value) > 1 and value.startswith("0") and value.isdigit():
            number = int(value, 8)
        else:
            raise argparse.ArgumentTypeError(f"invalid integer value: {text!r}") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"value must be non-negative: {text!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="iq-squelch",
        description="Suppress IQ samples below a certain threshold",
    )
    parser.add_argument(
        "input",
        nargs="?",
        metavar="FILE",
        help='Unsigned 8-bit IQ file to process ("-" for stdin)',
    )
    parser.add_argument("-a", dest="auto_mode", action="store_true",
                        help="Auto mode (track the average noise level)")
    parser.add_argument("-b", dest="block_size", type=c_int, default=DEFAULT_BLOCK_SIZE,
                        metavar="BLOCK_SIZE",
                        help=f"Number of samples to read at a time (default: {DEFAULT_BLOCK_SIZE})")
    parser.add_argument("-c", dest="block_count", type=c_int, default=0, metavar="BLOCK_COUNT",
                        help="Limit the total number of blocks to process")
    parser.add_argument("-m", dest="sample_threshold", type=c_int, default=DEFAULT_SAMPLE_THRESHOLD,
                        metavar="MAGNITUDE",
                        help=f"Sample magnitude threshold (0-255, default: {DEFAULT_SAMPLE_THRESHOLD})")
    parser.add_argument("-o", dest="output", default="-", metavar="OUTPUT_FILE",
                        help="Output file to write samples (default: stdout)")
    padding = parser.add_mutually_exclusive_group()
    padding.add_argument("-p", dest="padding", action="store_true", default=True,
                         help="Output the block before and after a signal (default)")
    padding.add_argument("-P", "--no-padding", dest="padding", action="store_false",
                         help="Only output blocks that are over the threshold")
    parser.add_argument("-s", dest="offset", type=c_int, default=0, metavar="OFFSET",
                        help="Starting byte offset within the input file")
    parser.add_argument("-t", dest="block_threshold", type=c_int, default=DEFAULT_BLOCK_THRESHOLD,
                        metavar="THRESHOLD",
                        help="Percentage of a block that must be over the threshold "
                             f"before that block is output (default: {DEFAULT_BLOCK_THRESHOLD}%%)")
    parser.add_argument("-v", dest="verbose", action="store_true", help="Verbose mode")

    multi = parser.add_argument_group("multi-channel and streaming")
    multi.add_argument("-n", "--channels", dest="channels", type=c_int, default=1, metavar="N",
                       help="Number of interleaved channels per sample (default: 1)")
    multi.add_argument("-z", "--substitute-nulls", dest="substitute_nulls", action="store_true",
                       help="Replace suppressed blocks with mid-scale samples instead of dropping them")
    multi.add_argument("--layout", choices=sorted(_LAYOUTS), default=None,
                       help="Multi-channel output order: column (channel-major) or row "
                            "(interleaved); defaults to row with -z, column otherwise")
    multi.add_argument("--magnitude-mode", choices=("saturate", "wrap"), default="saturate",
                       help="How magnitudes above 255 are stored (default: saturate)")
    multi.add_argument("--sub", dest="sub_endpoint", metavar="ENDPOINT",
                       help="ZeroMQ endpoint to subscribe to for input frames")
    multi.add_argument("--pub", dest="pub_endpoint", metavar="ENDPOINT",
                       help="ZeroMQ endpoint to bind and publish kept blocks on")
    multi.add_argument("--poll-timeout-ms", type=c_int, default=DEFAULT_POLL_TIMEOUT_MS,
                       metavar="MS", help="Receive poll interval for streaming input")
    return parser


def settings_from_args(args: argparse.Namespace) -> tuple[SquelchSettings, TransportSettings]:
    settings = SquelchSettings(
        auto_mode=args.auto_mode,
        block_size=args.block_size,
        block_count=args.block_count,
        sample_threshold=args.sample_threshold,
        block_threshold=args.block_threshold,
        offset=args.offset,
        padding=args.padding,
        verbose=args.verbose,
        channels=args.channels,
        substitute_nulls=args.substitute_nulls,
        magnitude_mode=args.magnitude_mode,
        output_layout=_LAYOUTS[args.layout] if args.layout else None,
    )
    transport = TransportSettings(
        input=args.input,
        output=args.output,
        sub_endpoint=args.sub_endpoint,
        pub_endpoint=args.pub_endpoint,
        poll_timeout_ms=args.poll_timeout_ms,
    )
    if transport.streaming and settings.offset:
        raise ConfigurationError("a starting offset only applies to file input")
    return settings, transport


def build_source(
    settings: SquelchSettings,
    transport: TransportSettings,
    stop_event: threading.Event,
) -> BaseSource:
    if transport.streaming:
        return ZmqSubscribeSource(
            transport.sub_endpoint,
            channels=settings.channels,
            poll_timeout_ms=transport.poll_timeout_ms,
            stop_event=stop_event,
        )
    return FileSource(transport.input, offset=settings.offset, stop_event=stop_event)


def build_sink(transport: TransportSettings) -> BaseSink:
    if transport.streaming:
        return ZmqPublishSink(transport.pub_endpoint)
    return StreamSink(transport.output)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s" if verbose else "%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )


class StopOnSignal:
    """Turn SIGINT/SIGTERM into a cooperative stop; a second signal uses the old handler."""

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self, stop_event: threading.Event) -> None:
        self._stop_event = stop_event
        self._previous: dict[int, object] = {}

    def install(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            return
        for signum in self.SIGNALS:
            self._previous[signum] = signal.signal(signum, self)

    def restore(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()

    def __call__(self, signum: int, frame) -> None:
        if self._stop_event.is_set():
            previous = self._previous.get(signum)
            if callable(previous):
                previous(signum, frame)
                return
            raise KeyboardInterrupt()
        logger.warning("%s received; stopping after the current block", signal.Signals(signum).name)
        self._stop_event.set()

    def __enter__(self) -> "StopOnSignal":
        self.install()
        return self

    def __exit__(self, *exc_info) -> None:
        self.restore()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings, transport = settings_from_args(args)
    except ConfigurationError as exc:
        parser.error(str(exc))

    stop_event = threading.Event()
    source = build_source(settings, transport, stop_event)
    sink = build_sink(transport)
    runtime = SquelchRuntime(settings, source, sink)

    try:
        with StopOnSignal(stop_event):
            runtime.run()
    except SquelchError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
