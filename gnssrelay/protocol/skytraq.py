# gnssrelay/protocol/skytraq.py
from __future__ import annotations

import struct
from typing import Any, Dict, Optional

from .base import Message, StreamDecoder
from .crc import xor8

SYNC = b"\xa0\xa1"
TAIL = b"\x0d\x0a"
MAX_PAYLOAD = 4096

NAV_DATA = 0xA8
FIX_3D = 2
_NAV_DATA = struct.Struct(">BBBHIiii")  # id, fix mode, svs, week, tow, lat, lon (1e-7 deg), ellipsoid alt (cm)


def nav_data_position(payload: bytes) -> Optional[Dict[str, Any]]:
    """(lat, lon, h) of a navigation data message with a 3D fix, else None."""
    if len(payload) < _NAV_DATA.size:
        return None
    _id, fix_mode, _svs, _week, _tow, lat, lon, alt = _NAV_DATA.unpack_from(payload)
    if fix_mode < FIX_3D:
        return None
    return {"llh": (lat * 1e-7, lon * 1e-7, alt * 1e-2)}


class SkytraqDecoder(StreamDecoder):
    """SkyTraq binary: A0 A1 | length (BE16) | payload | xor checksum | 0D 0A."""

    name = "stq"
    sync = SYNC

    def _frame_length(self, buf: bytearray) -> Optional[int]:
        if len(buf) < 4:
            return None
        length = int.from_bytes(buf[2:4], "big")
        if length == 0 or length > MAX_PAYLOAD:
            return -1
        return 4 + length + 3

    def _check(self, frame: bytes) -> bool:
        return frame[-2:] == TAIL and xor8(frame[4:-3]) == frame[-3]

    def _build(self, frame: bytes) -> Message:
        payload = frame[4:-3]
        fields: Dict[str, Any] = {"id": payload[0]}
        if payload[0] == NAV_DATA:
            fields.update(nav_data_position(payload) or {})
        return Message(
            protocol=self.name,
            type=f"0x{payload[0]:02X}",
            payload=payload,
            frame=frame,
            fields=fields,
        )
