# gnssrelay/protocol/bits.py
"""Big-endian bit field access used by the RTCM3 codec."""
from __future__ import annotations


def getbitu(buf: bytes, pos: int, length: int) -> int:
    value = 0
    for i in range(pos, pos + length):
        value = (value << 1) | ((buf[i >> 3] >> (7 - (i & 7))) & 1)
    return value


def getbits(buf: bytes, pos: int, length: int) -> int:
    value = getbitu(buf, pos, length)
    if length <= 0 or not (value >> (length - 1)) & 1:
        return value
    return value - (1 << length)


def setbitu(buf: bytearray, pos: int, length: int, value: int) -> None:
    if length <= 0:
        return
    value &= (1 << length) - 1
    for i in range(pos, pos + length):
        bit = (value >> (pos + length - 1 - i)) & 1
        mask = 1 << (7 - (i & 7))
        if bit:
            buf[i >> 3] |= mask
        else:
            buf[i >> 3] &= ~mask & 0xFF


def setbits(buf: bytearray, pos: int, length: int, value: int) -> None:
    if value < 0:
        value += 1 << length
    setbitu(buf, pos, length, value)
