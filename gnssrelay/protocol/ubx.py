# gnssrelay/protocol/ubx.py
from __future__ import annotations

import struct
from typing import Any, Dict, Optional

from .base import Message, StreamDecoder
from .crc import fletcher8

SYNC = b"\xb5\x62"
HEADER_LEN = 6
MAX_PAYLOAD = 8192

# class id -> name used in message types, e.g. 'NAV-PVT' or 'RXM-0x15'
CLASSES = {
    0x01: "NAV",
    0x02: "RXM",
    0x04: "INF",
    0x05: "ACK",
    0x06: "CFG",
    0x0A: "MON",
    0x0D: "TIM",
    0x13: "MGA",
    0x21: "LOG",
}

NAMES = {
    (0x01, 0x07): "NAV-PVT",
    (0x01, 0x35): "NAV-SAT",
    (0x02, 0x13): "RXM-SFRBX",
    (0x02, 0x15): "RXM-RAWX",
    (0x05, 0x00): "ACK-NAK",
    (0x05, 0x01): "ACK-ACK",
    (0x0A, 0x04): "MON-VER",
    (0x0D, 0x01): "TIM-TP",
}


NAV_PVT = (0x01, 0x07)
NAV_PVT_LEN = 92
_PVT_FIX = struct.Struct("<BB")  # fixType, flags at offset 20
_PVT_POS = struct.Struct("<iii")  # lon, lat (1e-7 deg), height above ellipsoid (mm) at 24


def nav_pvt_position(payload: bytes) -> Optional[Dict[str, Any]]:
    """(lat, lon, h) of a NAV-PVT with a valid 3D fix, else None."""
    if len(payload) < NAV_PVT_LEN:
        return None
    fix_type, flags = _PVT_FIX.unpack_from(payload, 20)
    if fix_type not in (3, 4) or not flags & 0x01:
        return None
    lon, lat, height = _PVT_POS.unpack_from(payload, 24)
    return {"llh": (lat * 1e-7, lon * 1e-7, height * 1e-3)}


def message_name(cls_id: int, msg_id: int) -> str:
    name = NAMES.get((cls_id, msg_id))
    if name:
        return name
    cls_name = CLASSES.get(cls_id, f"0x{cls_id:02X}")
    return f"{cls_name}-0x{msg_id:02X}"


class UbxDecoder(StreamDecoder):
    """u-blox UBX: B5 62 | class | id | length (LE16) | payload | ck_a ck_b."""

    name = "ubx"
    sync = SYNC

    def _frame_length(self, buf: bytearray) -> Optional[int]:
        if len(buf) < HEADER_LEN:
            return None
        length = int.from_bytes(buf[4:6], "little")
        if length > MAX_PAYLOAD:
            return -1
        return HEADER_LEN + length + 2

    def _check(self, frame: bytes) -> bool:
        return fletcher8(frame[2:-2]) == (frame[-2], frame[-1])

    def _build(self, frame: bytes) -> Message:
        cls_id, msg_id = frame[2], frame[3]
        payload = frame[HEADER_LEN:-2]
        fields: Dict[str, Any] = {"class": cls_id, "id": msg_id}
        if (cls_id, msg_id) == NAV_PVT:
            fields.update(nav_pvt_position(payload) or {})
        return Message(
            protocol=self.name,
            type=message_name(cls_id, msg_id),
            payload=payload,
            frame=frame,
            fields=fields,
        )
