"""Tests for relay wire messages."""

import json

import pytest

from webpair.pairing.messages import (
    DEFAULT_RELAY_ERROR,
    PhoneReady,
    RelayErrorMessage,
    UnknownRelayMessage,
    decode_inbound,
)


class TestPhoneReady:
    """Tests for the outbound announcement."""

    def test_encodes_wire_shape(self):
        """phone-ready carries ip, port and token."""
        encoded = json.loads(PhoneReady(ip="192.168.1.5", port=8080, token="t1").encode())

        assert encoded == {"type": "phone-ready", "ip": "192.168.1.5", "port": 8080, "token": "t1"}


class TestDecodeInbound:
    """Tests for inbound relay frames."""

    def test_error_message(self):
        """error frames carry the relay's text verbatim."""
        msg = decode_inbound('{"type": "error", "error": "session expired"}')
        assert msg == RelayErrorMessage(error="session expired")

    def test_error_falls_back_to_message_field(self):
        """The relay's own ``message`` key is used when ``error`` is absent."""
        msg = decode_inbound('{"type": "error", "message": "Invalid token"}')
        assert msg == RelayErrorMessage(error="Invalid token")

    @pytest.mark.parametrize(
        "frame", ['{"type": "error"}', '{"type": "error", "error": ""}', '{"type": "error", "error": 5}']
    )
    def test_error_without_text_uses_default(self, frame):
        """An error with no usable text still reports an error."""
        assert decode_inbound(frame) == RelayErrorMessage(error=DEFAULT_RELAY_ERROR)

    @pytest.mark.parametrize(
        "frame,expected_type",
        [
            ('{"type": "ack"}', "ack"),
            ('{"type": "phone-ready", "ip": "x"}', "phone-ready"),
            ('{"no_type": true}', None),
            ('{"type": 3}', None),
            ("[1, 2]", None),
            ("garbage", None),
        ],
    )
    def test_other_frames_are_unknown(self, frame, expected_type):
        """Anything but an error frame is ignorable, never an exception."""
        msg = decode_inbound(frame)

        assert isinstance(msg, UnknownRelayMessage)
        assert msg.type == expected_type
