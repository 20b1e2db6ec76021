from __future__ import annotations

import struct

import pytest

from gnssrelay.protocol.crc import crc32_novatel, fletcher8, xor8
from gnssrelay.protocol.novatel import NovatelDecoder
from gnssrelay.protocol.skytraq import SkytraqDecoder
from gnssrelay.protocol.ubx import UbxDecoder


def ubx(cls_id: int, msg_id: int, payload: bytes) -> bytes:
    body = bytes([cls_id, msg_id]) + len(payload).to_bytes(2, "little") + payload
    a, b = fletcher8(body)
    return b"\xb5\x62" + body + bytes([a, b])


def oem4(msg_id: int, body: bytes, week: int = 2300) -> bytes:
    hdr = bytearray(28)
    hdr[0:4] = b"\xaa\x44\x12\x1c"
    hdr[4:6] = msg_id.to_bytes(2, "little")
    hdr[8:10] = len(body).to_bytes(2, "little")
    hdr[14:16] = week.to_bytes(2, "little")
    data = bytes(hdr) + body
    return data + crc32_novatel(data).to_bytes(4, "little")


def skytraq(payload: bytes) -> bytes:
    return b"\xa0\xa1" + len(payload).to_bytes(2, "big") + payload + bytes([xor8(payload)]) + b"\r\n"


def test_checksum_helpers():
    assert fletcher8(b"\x01\x02") == (3, 4)
    assert xor8(b"\x01\x02\x04") == 7


def test_ubx_names_and_payload():
    data = ubx(0x01, 0x07, bytes(92)) + ubx(0x02, 0x99, b"\x01") + ubx(0x55, 0x01, b"")
    msgs = list(UbxDecoder().decode(data))

    assert [m.type for m in msgs] == ["NAV-PVT", "RXM-0x99", "0x55-0x01"]
    assert msgs[0].payload == bytes(92)
    assert msgs[1].fields == {"class": 0x02, "id": 0x99}


def test_ubx_nav_pvt_position_needs_a_3d_fix():
    payload = bytearray(92)
    payload[20:22] = bytes([3, 0x01])
    struct.pack_into("<iii", payload, 24, 1_390_000_000, 350_000_000, 50_000)
    no_fix = bytearray(payload)
    no_fix[20] = 1
    msgs = list(UbxDecoder().decode(ubx(0x01, 0x07, bytes(payload)) + ubx(0x01, 0x07, bytes(no_fix))))

    assert msgs[0].fields["llh"] == pytest.approx((35.0, 139.0, 50.0))
    assert "llh" not in msgs[1].fields


def test_ubx_bad_checksum_resyncs():
    good = ubx(0x02, 0x15, b"\x10\x20\x30")
    bad = good[:-1] + bytes([good[-1] ^ 0xFF])
    dec = UbxDecoder()
    msgs = list(dec.decode(b"\x00\x11" + bad + good))

    assert [m.type for m in msgs] == ["RXM-RAWX"]
    assert dec.discarded == 2 + len(bad)


def test_ubx_split_across_feeds():
    f = ubx(0x01, 0x07, bytes(92))
    dec = UbxDecoder()
    assert list(dec.decode(f[:10])) == []
    (msg,) = list(dec.decode(f[10:]))
    assert msg.frame == f


def test_novatel_log():
    body = bytes(range(40))
    dec = NovatelDecoder()
    (msg,) = list(dec.decode(b"\x01\x02" + oem4(42, body)))

    assert msg.type == "BESTPOS"
    assert msg.payload == body
    assert msg.fields == {"id": 42, "week": 2300}


def test_novatel_bestpos_position():
    body = struct.pack("<IIdddf", 0, 50, 35.0, 139.0, 40.0, 10.0) + bytes(36)
    (msg,) = list(NovatelDecoder().decode(oem4(42, body)))
    assert msg.fields["llh"] == (35.0, 139.0, 50.0)

    unsolved = struct.pack("<IIdddf", 1, 0, 35.0, 139.0, 40.0, 10.0)
    (msg,) = list(NovatelDecoder().decode(oem4(42, unsolved)))
    assert "llh" not in msg.fields


def test_novatel_unknown_id_and_bad_crc():
    good = oem4(9999, b"\x00" * 8)
    bad = good[:-4] + b"\x00\x00\x00\x00"
    msgs = list(NovatelDecoder().decode(bad + good))
    assert [m.type for m in msgs] == ["9999"]


def test_skytraq_message():
    msgs = list(SkytraqDecoder().decode(skytraq(bytes([0xDC, 0x01, 0x02])) + skytraq(bytes([0xE0, 0x05]))))
    assert [m.type for m in msgs] == ["0xDC", "0xE0"]
    assert msgs[1].payload == bytes([0xE0, 0x05])


def test_skytraq_missing_tail_is_dropped():
    good = skytraq(bytes([0xDD, 0x00]))
    bad = good[:-2] + b"\x00\x00"
    assert [m.type for m in SkytraqDecoder().decode(bad + good)] == ["0xDD"]


def test_skytraq_navigation_data_position():
    payload = struct.pack(">BBBHIiii", 0xA8, 2, 9, 2300, 0, 350_000_000, 1_390_000_000, 5000) + bytes(30)
    (msg,) = list(SkytraqDecoder().decode(skytraq(payload)))

    assert msg.type == "0xA8"
    assert msg.fields["llh"] == pytest.approx((35.0, 139.0, 50.0))
