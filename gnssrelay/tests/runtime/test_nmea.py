from __future__ import annotations

from datetime import datetime, timezone

from gnssrelay.protocol.crc import xor8
from gnssrelay.runtime.nmea import gga_sentence

T = datetime(2024, 1, 2, 3, 4, 5, 670000, tzinfo=timezone.utc)


def test_gga_northern_eastern():
    s = gga_sentence((35.5, 139.25, 50.0), T)
    assert s.startswith(b"$GPGGA,030405.67,3530.0000,N,13915.0000,E,1,08,1.0,50.000,M,0.000,M,,*")
    assert s.endswith(b"\r\n")


def test_gga_southern_western():
    s = gga_sentence((-33.25, -70.5, 520.0), T).decode()
    assert ",3315.0000,S,07030.0000,W," in s


def test_gga_checksum():
    s = gga_sentence((35.5, 139.25, 50.0), T)
    body, cs = s[1:].rstrip(b"\r\n").split(b"*")
    assert int(cs, 16) == xor8(body)
