"""
Hub Frame Codec
===============
SignalR JSON hub protocol framing: each record is a JSON value followed by the
record separator (0x1E). One WebSocket message may carry several records.
"""

import json
from enum import IntEnum
from typing import Any, List, Optional, Union

from ...core.exceptions import FrameDecodeError
from ...core.logger import StructuredLogger

RECORD_SEPARATOR = "\x1e"

HANDSHAKE_REQUEST = {"protocol": "json", "version": 1}


class MessageType(IntEnum):
    INVOCATION = 1
    STREAM_ITEM = 2
    COMPLETION = 3
    STREAM_INVOCATION = 4
    CANCEL_INVOCATION = 5
    PING = 6
    CLOSE = 7


def encode(value: Any) -> str:
    """Serialize one record; the result is sent as a text frame."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False) + RECORD_SEPARATOR


def invocation(target: str, arguments: List[Any]) -> dict:
    return {"type": int(MessageType.INVOCATION), "target": target, "arguments": list(arguments)}


def is_handshake_ack(value: Any) -> bool:
    """The empty object is the handshake acknowledgement, not a hub message."""
    return isinstance(value, dict) and not value


def decode_segment(segment: str) -> Any:
    try:
        return json.loads(segment)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(segment, str(e)) from e


def decode(payload: Union[str, bytes], logger: Optional[StructuredLogger] = None) -> List[Any]:
    """
    Split ``payload`` on the record separator and parse every record.

    Malformed records are logged and skipped; the rest of the payload is still
    returned in order.
    """
    if isinstance(payload, (bytes, bytearray)):
        payload = payload.decode("utf-8", errors="replace")

    values = []
    for segment in payload.split(RECORD_SEPARATOR):
        if not segment.strip():
            continue
        try:
            values.append(decode_segment(segment))
        except FrameDecodeError as e:
            if logger:
                logger.warning("frame_codec.segment_skipped", {
                    "reason": e.reason,
                    "segment_sample": segment[:200]
                })
    return values
