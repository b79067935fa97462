"""Raw notification payload to domain event translation."""

from __future__ import annotations

from bluewand.core.errors import MalformedMotionPayloadError
from bluewand.core.model import ButtonEvent, MotionEvent

_MOTION_PAYLOAD_BYTES = 8


def to_uint16(high: int, low: int) -> int:
    return high << 8 | low


def translate_button(payload: bytes) -> ButtonEvent:
    # Anything but 0x01 reads as released, including an empty payload.
    return ButtonEvent(pressed=len(payload) > 0 and payload[0] == 1)


def translate_motion(payload: bytes) -> MotionEvent:
    if len(payload) < _MOTION_PAYLOAD_BYTES:
        raise MalformedMotionPayloadError(
            f"Motion payload needs {_MOTION_PAYLOAD_BYTES} bytes, got {len(payload)}: {payload.hex()}"
        )
    w, x, y, z = (to_uint16(payload[i], payload[i + 1]) for i in range(0, _MOTION_PAYLOAD_BYTES, 2))
    return MotionEvent(w=w, x=x, y=y, z=z)
