# gnssrelay/protocol/crc.py
from __future__ import annotations

from typing import List, Tuple


def _crc24q_table() -> List[int]:
    table = []
    for i in range(256):
        crc = i << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= 0x1864CFB
        table.append(crc & 0xFFFFFF)
    return table


def _crc32_table() -> List[int]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = (crc >> 1) ^ 0xEDB88320 if crc & 1 else crc >> 1
        table.append(crc)
    return table


_CRC24Q = _crc24q_table()
_CRC32 = _crc32_table()


def crc24q(buf: bytes) -> int:
    """CRC-24Q (Qualcomm) as used by RTCM3 frames."""
    crc = 0
    for b in buf:
        crc = ((crc << 8) & 0xFFFFFF) ^ _CRC24Q[((crc >> 16) ^ b) & 0xFF]
    return crc


def crc32_novatel(buf: bytes) -> int:
    """NovAtel OEM4 block CRC32 (reflected, zero seed, no final xor)."""
    crc = 0
    for b in buf:
        crc = _CRC32[(crc ^ b) & 0xFF] ^ (crc >> 8)
    return crc


def fletcher8(buf: bytes) -> Tuple[int, int]:
    """UBX 8-bit Fletcher checksum (ck_a, ck_b)."""
    a = b = 0
    for x in buf:
        a = (a + x) & 0xFF
        b = (b + a) & 0xFF
    return a, b


def xor8(buf: bytes) -> int:
    out = 0
    for x in buf:
        out ^= x
    return out
