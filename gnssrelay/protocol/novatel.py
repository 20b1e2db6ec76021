# gnssrelay/protocol/novatel.py
from __future__ import annotations

import struct
from typing import Any, Dict, Optional

from .base import Message, StreamDecoder
from .crc import crc32_novatel

SYNC = b"\xaa\x44\x12"
MIN_HEADER = 28
MAX_LENGTH = 16384

NAMES = {
    42: "BESTPOS",
    43: "RANGE",
    140: "RANGECMP",
    7: "GPSEPHEM",
    723: "GLOEPHEMERIS",
    1121: "GALEPHEMERIS",
}

BESTPOS = 42
SOL_COMPUTED = 0
_BESTPOS = struct.Struct("<IIdddf")  # sol status, pos type, lat, lon, hgt (MSL), undulation


def bestpos_position(body: bytes) -> Optional[Dict[str, Any]]:
    """(lat, lon, ellipsoidal h) of a computed BESTPOS solution, else None."""
    if len(body) < _BESTPOS.size:
        return None
    status, _pos_type, lat, lon, hgt, undulation = _BESTPOS.unpack_from(body)
    if status != SOL_COMPUTED:
        return None
    return {"llh": (lat, lon, hgt + undulation)}


class NovatelDecoder(StreamDecoder):
    """
    NovAtel OEM4/OEM6 binary log:
      AA 44 12 | header length | message id (LE16) | ... | message length (LE16 at 8)
      | header | body | CRC32 (LE)
    Message types are the log names where known, otherwise the numeric id.
    """

    name = "nov"
    sync = SYNC

    def _frame_length(self, buf: bytearray) -> Optional[int]:
        if len(buf) < 10:
            return None
        hlen = buf[3]
        if hlen < MIN_HEADER:
            return -1
        body = int.from_bytes(buf[8:10], "little")
        total = hlen + body + 4
        if total > MAX_LENGTH:
            return -1
        return total

    def _check(self, frame: bytes) -> bool:
        return crc32_novatel(frame[:-4]) == int.from_bytes(frame[-4:], "little")

    def _build(self, frame: bytes) -> Message:
        msg_id = int.from_bytes(frame[4:6], "little")
        hlen = frame[3]
        body = frame[hlen:-4]
        fields: Dict[str, Any] = {"id": msg_id, "week": int.from_bytes(frame[14:16], "little")}
        if msg_id == BESTPOS:
            fields.update(bestpos_position(body) or {})
        return Message(
            protocol=self.name,
            type=NAMES.get(msg_id, str(msg_id)),
            payload=body,
            frame=frame,
            fields=fields,
        )
