"""
Unit Tests for the hub frame codec
==================================
Record-separator framing, handshake ack detection, malformed segment skipping.
"""

import pytest

from quizswarm.core.exceptions import FrameDecodeError
from quizswarm.infrastructure.hub import frame_codec
from quizswarm.infrastructure.hub.frame_codec import RECORD_SEPARATOR, MessageType


class TestEncode:

    def test_encode_terminates_with_record_separator(self):
        encoded = frame_codec.encode({"protocol": "json", "version": 1})
        assert encoded == '{"protocol":"json","version":1}' + RECORD_SEPARATOR

    def test_invocation_shape(self):
        message = frame_codec.invocation("PlayerJoined", ["game-1", "alice"])
        assert message == {"type": 1, "target": "PlayerJoined", "arguments": ["game-1", "alice"]}

    @pytest.mark.parametrize("value", [
        {"type": 1, "target": "ShowMedal", "arguments": [2]},
        {},
        [1, "two", None],
        "plain text with è accents",
    ])
    def test_decode_returns_encoded_value(self, value):
        assert frame_codec.decode(frame_codec.encode(value)) == [value]


class TestDecode:

    def test_multiple_records_in_one_message_keep_order(self):
        payload = frame_codec.encode({}) + frame_codec.encode({"type": 6}) + frame_codec.encode({"type": 1})
        assert frame_codec.decode(payload) == [{}, {"type": 6}, {"type": 1}]

    def test_bytes_payload(self):
        payload = frame_codec.encode({"type": 6}).encode("utf-8")
        assert frame_codec.decode(payload) == [{"type": 6}]

    def test_blank_segments_ignored(self):
        assert frame_codec.decode(RECORD_SEPARATOR + "  " + RECORD_SEPARATOR) == []

    def test_malformed_segment_skipped_and_logged(self, logger):
        payload = '{"type":6}' + RECORD_SEPARATOR + "{not json" + RECORD_SEPARATOR + "{}" + RECORD_SEPARATOR

        values = frame_codec.decode(payload, logger)

        assert values == [{"type": 6}, {}]
        logger.warning.assert_called_once()
        assert logger.warning.call_args.args[0] == "frame_codec.segment_skipped"

    def test_decode_segment_raises_typed_error(self):
        with pytest.raises(FrameDecodeError) as exc_info:
            frame_codec.decode_segment("{oops")
        assert exc_info.value.segment == "{oops"


class TestHandshakeAck:

    def test_empty_object_is_ack(self):
        assert frame_codec.is_handshake_ack({})

    @pytest.mark.parametrize("value", [{"type": 6}, [], "", None])
    def test_other_values_are_not_ack(self, value):
        assert not frame_codec.is_handshake_ack(value)

    def test_message_type_values(self):
        assert MessageType.INVOCATION == 1
        assert MessageType.PING == 6
        assert MessageType.CLOSE == 7
