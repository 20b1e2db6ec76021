from __future__ import annotations

import pytest

from gnssrelay.common.geodesy import WGS84_A, ecef_to_llh, llh_to_ecef


def test_equator_prime_meridian():
    assert llh_to_ecef(0.0, 0.0, 0.0) == pytest.approx((WGS84_A, 0.0, 0.0))


def test_pole():
    x, y, z = llh_to_ecef(90.0, 0.0, 0.0)
    assert x == pytest.approx(0.0, abs=1e-6)
    assert z == pytest.approx(6356752.314, abs=1e-3)
    lat, _, h = ecef_to_llh(0.0, 0.0, z)
    assert lat == pytest.approx(90.0)
    assert h == pytest.approx(0.0, abs=1e-3)


@pytest.mark.parametrize("llh", [(35.68, 139.77, 40.0), (-33.9, -70.6, 520.0), (60.0, 10.0, -20.0)])
def test_llh_ecef_round_trip(llh):
    lat, lon, h = ecef_to_llh(*llh_to_ecef(*llh))
    assert lat == pytest.approx(llh[0], abs=1e-8)
    assert lon == pytest.approx(llh[1], abs=1e-8)
    assert h == pytest.approx(llh[2], abs=1e-3)
