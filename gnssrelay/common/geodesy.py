# gnssrelay/common/geodesy.py
"""WGS84 conversions used for station position overrides and NMEA requests."""
from __future__ import annotations

import math
from typing import Tuple

WGS84_A = 6378137.0
WGS84_F = 1.0 / 298.257223563
WGS84_E2 = WGS84_F * (2.0 - WGS84_F)


def llh_to_ecef(lat_deg: float, lon_deg: float, height_m: float) -> Tuple[float, float, float]:
    lat = math.radians(lat_deg)
    lon = math.radians(lon_deg)
    sinp = math.sin(lat)
    cosp = math.cos(lat)
    v = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sinp * sinp)
    return (
        (v + height_m) * cosp * math.cos(lon),
        (v + height_m) * cosp * math.sin(lon),
        (v * (1.0 - WGS84_E2) + height_m) * sinp,
    )


def ecef_to_llh(x: float, y: float, z: float) -> Tuple[float, float, float]:
    r2 = x * x + y * y
    zk = 0.0
    zz = z
    v = WGS84_A
    while abs(zz - zk) >= 1e-4:
        zk = zz
        sinp = zz / math.sqrt(r2 + zz * zz)
        v = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sinp * sinp)
        zz = z + v * WGS84_E2 * sinp

    if r2 > 1e-12:
        lat = math.atan(zz / math.sqrt(r2))
        lon = math.atan2(y, x)
    else:
        lat = math.pi / 2.0 if z > 0.0 else -math.pi / 2.0
        lon = 0.0
    height = math.sqrt(r2 + zz * zz) - v
    return math.degrees(lat), math.degrees(lon), height
