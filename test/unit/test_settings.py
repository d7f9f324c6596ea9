"""
Unit tests for settings validation.

Invalid configurations must be rejected with ConfigurationError before any
I/O happens, and derived values (effective layout, block byte size) must
follow the documented defaults.
"""
from __future__ import annotations

import pytest

from core.settings import SquelchSettings, TransportSettings
from shared.errors import ConfigurationError
from shared.models import OutputLayout


class TestSquelchSettings:
    def test_defaults(self):
        s = SquelchSettings()
        assert s.block_size == 1024
        assert s.sample_threshold == 10
        assert s.block_threshold == 50
        assert s.padding is True
        assert s.channels == 1
        assert s.magnitude_mode == "saturate"
        assert s.block_bytes == 2048

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"block_size": 0},
            {"block_count": -1},
            {"sample_threshold": 256},
            {"sample_threshold": -1},
            {"block_threshold": 101},
            {"offset": -2},
            {"channels": 0},
            {"magnitude_mode": "round"},
            {"output_layout": "row"},
        ],
    )
    def test_rejects_invalid(self, kwargs):
        with pytest.raises(ConfigurationError):
            SquelchSettings(**kwargs)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            SquelchSettings(block_size=0)

    def test_layout_defaults(self):
        assert SquelchSettings().layout is OutputLayout.CHANNEL_MAJOR
        assert SquelchSettings(substitute_nulls=True).layout is OutputLayout.SAMPLE_MAJOR
        explicit = SquelchSettings(substitute_nulls=True, output_layout=OutputLayout.CHANNEL_MAJOR)
        assert explicit.layout is OutputLayout.CHANNEL_MAJOR

    def test_replace_revalidates(self):
        s = SquelchSettings()
        assert s.replace(block_size=16).block_size == 16
        with pytest.raises(ConfigurationError):
            s.replace(block_size=-4)

    def test_to_dict(self):
        data = SquelchSettings(channels=2).to_dict()
        assert data["channels"] == 2
        assert data["output_layout"] == "column"


class TestTransportSettings:
    def test_file_mode(self):
        t = TransportSettings(input="capture.iq")
        assert not t.streaming
        assert t.output == "-"

    def test_input_required_without_streaming(self):
        with pytest.raises(ConfigurationError):
            TransportSettings()

    def test_streaming_needs_both_endpoints(self):
        with pytest.raises(ConfigurationError):
            TransportSettings(sub_endpoint="tcp://127.0.0.1:5555")
        with pytest.raises(ConfigurationError):
            TransportSettings(pub_endpoint="tcp://*:5556")

    def test_streaming_excludes_input_file(self):
        with pytest.raises(ConfigurationError):
            TransportSettings(input="x.iq", sub_endpoint="inproc://a", pub_endpoint="inproc://b")

    def test_streaming(self):
        t = TransportSettings(sub_endpoint="inproc://a", pub_endpoint="inproc://b")
        assert t.streaming

    def test_poll_timeout_positive(self):
        with pytest.raises(ConfigurationError):
            TransportSettings(input="-", poll_timeout_ms=0)
