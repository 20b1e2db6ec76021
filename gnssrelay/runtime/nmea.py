# gnssrelay/runtime/nmea.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Tuple

from gnssrelay.protocol.crc import xor8


def _dm(value: float, width: int) -> str:
    deg = int(abs(value))
    minutes = (abs(value) - deg) * 60.0
    return f"{deg:0{width}d}{minutes:07.4f}"


def gga_sentence(llh: Tuple[float, float, float], t: Optional[datetime] = None) -> bytes:
    """
    $GPGGA for a fixed station position, sent to NTRIP casters that need the
    rover position (VRS). The height goes out as ellipsoidal, geoid separation 0.
    """
    lat, lon, hgt = llh
    t = (t or datetime.now(timezone.utc)).astimezone(timezone.utc)
    body = ",".join(
        [
            "GPGGA",
            f"{t.hour:02d}{t.minute:02d}{t.second:02d}.{t.microsecond // 10000:02d}",
            _dm(lat, 2),
            "N" if lat >= 0 else "S",
            _dm(lon, 3),
            "E" if lon >= 0 else "W",
            "1",
            "08",
            "1.0",
            f"{hgt:.3f}",
            "M",
            "0.000",
            "M",
            "",
            "",
        ]
    )
    return f"${body}*{xor8(body.encode('ascii')):02X}\r\n".encode("ascii")
