# gnssrelay/protocol/rtcm3.py
"""
RTCM 3 framing and the station description messages.

Frame layout:
  0xD3 | 6 reserved bits (0) + 10-bit payload length | payload | CRC-24Q (3 bytes)

Only the station messages (1005/1006/1007/1008/1033) are decoded field by
field; every other type passes through as an opaque payload whose type and
reference station id are read from the first 24 bits.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from gnssrelay.common.geodesy import ecef_to_llh, llh_to_ecef

from .base import Message, MessageEncoder, StationOverrides, StreamDecoder
from .bits import getbits, getbitu, setbits, setbitu
from .crc import crc24q

PREAMBLE = 0xD3
HEADER_LEN = 3
CRC_LEN = 3
MAX_PAYLOAD = 1023
MAX_STRING = 31

STATION_TYPES = ("1005", "1006", "1007", "1008", "1033")


def frame(payload: bytes) -> bytes:
    """Wrap a payload into a complete RTCM3 frame."""
    if len(payload) > MAX_PAYLOAD:
        raise ValueError(f"rtcm3 payload too long: {len(payload)}")
    head = bytes((PREAMBLE, (len(payload) >> 8) & 0x03, len(payload) & 0xFF))
    body = head + payload
    return body + crc24q(body).to_bytes(3, "big")


def message_type(payload: bytes) -> int:
    return getbitu(payload, 0, 12)


def _has_station_id(mtype: int, payload: bytes) -> bool:
    # proprietary 4xxx messages carry no reference station id
    return 1001 <= mtype < 4000 and len(payload) >= 3


# ---------------------------------------------------------------------------
# Station message fields
# ---------------------------------------------------------------------------

def parse_station_fields(mtype: int, payload: bytes) -> Dict[str, Any]:
    """Decode the station messages; {} for anything else."""
    if mtype in (1005, 1006):
        need = 19 if mtype == 1005 else 21
        if len(payload) < need:
            raise ValueError(f"rtcm3 {mtype} too short: {len(payload)}")
        f: Dict[str, Any] = {
            "itrf": getbitu(payload, 24, 6),
            "indicators": getbitu(payload, 30, 4),
            "ecef": (
                getbits(payload, 34, 38) * 1e-4,
                getbits(payload, 74, 38) * 1e-4,
                getbits(payload, 114, 38) * 1e-4,
            ),
            "osc": getbitu(payload, 72, 1),
            "quarter_cycle": getbitu(payload, 112, 2),
        }
        f["llh"] = ecef_to_llh(*f["ecef"])
        if mtype == 1006:
            f["height"] = getbitu(payload, 152, 16) * 1e-4
        return f

    if mtype in (1007, 1008, 1033):
        pos = 24
        out: Dict[str, Any] = {}
        out["antenna_descriptor"], pos = _get_string(payload, pos)
        out["antenna_setup_id"] = getbitu(payload, pos, 8)
        pos += 8
        if mtype >= 1008:
            out["antenna_serial"], pos = _get_string(payload, pos)
        if mtype == 1033:
            out["receiver_type"], pos = _get_string(payload, pos)
            out["receiver_firmware"], pos = _get_string(payload, pos)
            out["receiver_serial"], pos = _get_string(payload, pos)
        if pos > len(payload) * 8:
            raise ValueError(f"rtcm3 {mtype} truncated")
        return out

    return {}


def _get_string(payload: bytes, pos: int) -> Tuple[str, int]:
    n = getbitu(payload, pos, 8)
    pos += 8
    start = pos // 8
    if start + n > len(payload):
        raise ValueError("rtcm3 string runs past payload")
    return bytes(payload[start:start + n]).decode("ascii", "replace"), pos + 8 * n


class _Bits:
    """Sequential big-endian bit writer."""

    def __init__(self) -> None:
        self.buf = bytearray()
        self.pos = 0

    def u(self, length: int, value: int) -> "_Bits":
        self._grow(length)
        setbitu(self.buf, self.pos, length, value)
        self.pos += length
        return self

    def s(self, length: int, value: int) -> "_Bits":
        self._grow(length)
        setbits(self.buf, self.pos, length, value)
        self.pos += length
        return self

    def string(self, text: str) -> "_Bits":
        raw = text.encode("ascii", "replace")[:MAX_STRING]
        self.u(8, len(raw))
        for b in raw:
            self.u(8, b)
        return self

    def _grow(self, length: int) -> None:
        need = (self.pos + length + 7) // 8
        if need > len(self.buf):
            self.buf.extend(b"\x00" * (need - len(self.buf)))

    def payload(self) -> bytes:
        return bytes(self.buf)


def build_position(
    mtype: int,
    station_id: int,
    ecef: Tuple[float, float, float],
    *,
    height: float = 0.0,
    itrf: int = 0,
    indicators: int = 0b1100,
    osc: int = 0,
    quarter_cycle: int = 0,
) -> bytes:
    """Payload of a 1005 (or 1006 with antenna height)."""
    if mtype not in (1005, 1006):
        raise ValueError(f"not a position message: {mtype}")
    w = _Bits().u(12, mtype).u(12, station_id).u(6, itrf).u(4, indicators)
    w.s(38, round(ecef[0] * 1e4)).u(1, osc).u(1, 0)
    w.s(38, round(ecef[1] * 1e4)).u(2, quarter_cycle)
    w.s(38, round(ecef[2] * 1e4))
    if mtype == 1006:
        w.u(16, max(0, round(height * 1e4)))
    return w.payload()


def build_descriptor(mtype: int, station_id: int, values: Dict[str, Any]) -> bytes:
    """Payload of a 1007, 1008 or 1033 from descriptor values."""
    if mtype not in (1007, 1008, 1033):
        raise ValueError(f"not a descriptor message: {mtype}")
    w = _Bits().u(12, mtype).u(12, station_id)
    w.string(values.get("antenna_descriptor") or "")
    w.u(8, values.get("antenna_setup_id") or 0)
    if mtype >= 1008:
        w.string(values.get("antenna_serial") or "")
    if mtype == 1033:
        w.string(values.get("receiver_type") or "")
        w.string(values.get("receiver_firmware") or "")
        w.string(values.get("receiver_serial") or "")
    return w.payload()


# ---------------------------------------------------------------------------
# Decoder / encoder
# ---------------------------------------------------------------------------

class Rtcm3Decoder(StreamDecoder):
    name = "rtcm3"
    sync = bytes((PREAMBLE,))

    def _frame_length(self, buf: bytearray) -> Optional[int]:
        if len(buf) < HEADER_LEN:
            return None
        if buf[1] & 0xFC:
            return -1  # reserved bits must be zero
        length = ((buf[1] & 0x03) << 8) | buf[2]
        return HEADER_LEN + length + CRC_LEN

    def _check(self, frame: bytes) -> bool:
        return crc24q(frame[:-CRC_LEN]) == int.from_bytes(frame[-CRC_LEN:], "big")

    def _build(self, frame: bytes) -> Message:
        payload = frame[HEADER_LEN:-CRC_LEN]
        if len(payload) < 2:
            raise ValueError("rtcm3 payload shorter than a message type")
        mtype = message_type(payload)
        staid = getbitu(payload, 12, 12) if _has_station_id(mtype, payload) else None
        return Message(
            protocol=self.name,
            type=str(mtype),
            payload=payload,
            frame=frame,
            station_id=staid,
            fields=parse_station_fields(mtype, payload),
        )


class Rtcm3Encoder(MessageEncoder):
    """
    Emits RTCM3 frames. RTCM3 input is passed through, rewritten only where
    a station override applies. From other protocols only receiver position
    solutions carry over, as 1005 station coordinates; the rest is dropped.
    """

    name = "rtcm3"

    def output_type(self, msg: Message) -> Optional[str]:
        if msg.protocol == self.name:
            return msg.type
        return "1005" if "llh" in msg.fields else None

    def encode(self, msg: Message, overrides: StationOverrides) -> Optional[bytes]:
        if msg.protocol != self.name:
            if "llh" not in msg.fields:
                return None
            llh = overrides.position_llh or msg.fields["llh"]
            return frame(self._position(1005, overrides.station_id or 0, llh, overrides, {}))

        mtype = int(msg.type)
        staid = overrides.station_id if overrides.station_id is not None else msg.station_id

        if mtype in (1005, 1006) and overrides.position_llh is not None:
            return frame(self._position(mtype, staid or 0, overrides.position_llh, overrides, msg.fields))
        if mtype in (1007, 1008, 1033) and (overrides.has_antenna or overrides.has_receiver):
            return frame(build_descriptor(mtype, staid or 0, self._descriptor(overrides, msg.fields)))

        if overrides.station_id is not None and msg.station_id is not None and msg.station_id != staid:
            payload = bytearray(msg.payload)
            setbitu(payload, 12, 12, overrides.station_id)
            return frame(bytes(payload))
        return msg.frame

    def station_types(self) -> Tuple[str, ...]:
        return STATION_TYPES

    def station_message(self, mtype: str, overrides: StationOverrides) -> Optional[bytes]:
        staid = overrides.station_id or 0
        if mtype in ("1005", "1006"):
            if overrides.position_llh is None:
                return None
            return frame(self._position(int(mtype), staid, overrides.position_llh, overrides, {}))
        if mtype in ("1007", "1008"):
            if not overrides.has_antenna:
                return None
            return frame(build_descriptor(int(mtype), staid, self._descriptor(overrides, {})))
        if mtype == "1033":
            if not (overrides.has_antenna or overrides.has_receiver):
                return None
            return frame(build_descriptor(1033, staid, self._descriptor(overrides, {})))
        return None

    @staticmethod
    def _position(
        mtype: int, staid: int, llh: Tuple[float, float, float], ov: StationOverrides, native: Dict[str, Any]
    ) -> bytes:
        height = native.get("height", 0.0)
        if ov.antenna_offset_enu is not None:
            height = ov.antenna_offset_enu[2]
        return build_position(
            mtype,
            staid,
            llh_to_ecef(*llh),
            height=height,
            itrf=native.get("itrf", 0),
            indicators=native.get("indicators", 0b1100),
            osc=native.get("osc", 0),
            quarter_cycle=native.get("quarter_cycle", 0),
        )

    @staticmethod
    def _descriptor(ov: StationOverrides, native: Dict[str, Any]) -> Dict[str, Any]:
        values = dict(native)
        for key in (
            "antenna_descriptor",
            "antenna_setup_id",
            "antenna_serial",
            "receiver_type",
            "receiver_firmware",
            "receiver_serial",
        ):
            value = getattr(ov, key)
            if value is not None:
                values[key] = value
        return values
