from __future__ import annotations

from datetime import datetime, timezone

import pytest

from gnssrelay.transport.base import StreamState
from gnssrelay.transport.file import TAG_HEADER_SIZE, TAG_RECORD, FileTransport, expand_path


class FakeClock:
    def __init__(self, t: float = 0.0):
        self.t = t

    def __call__(self) -> float:
        return self.t


def test_expand_path_keywords():
    t = datetime(2024, 3, 5, 7, 8, 9, tzinfo=timezone.utc)
    assert expand_path("rov_%Y%m%d_%h%M%S_%y_%n.ubx", t) == "rov_20240305_070809_24_065.ubx"
    assert expand_path("%H", t) == "h"
    assert expand_path("plain.ubx", t) == "plain.ubx"


def test_expand_path_gps_week_and_day():
    t = datetime(1980, 1, 13, 0, 0, 0, tzinfo=timezone.utc)
    assert expand_path("%W_%D", t) == "0001_0"


def test_write_then_read_plain(tmp_path):
    path = tmp_path / "out.bin"
    w = FileTransport(str(path), "w")
    assert w.open() == StreamState.ACTIVE
    assert w.write(b"abc") == 3
    assert w.write(b"def") == 3
    w.close()

    r = FileTransport(str(path), "r")
    assert r.open() == StreamState.ACTIVE
    assert r.read(4) == b"abcd"
    assert r.at_eof is False
    assert r.read(100) == b"ef"
    assert r.read(100) == b""
    assert r.at_eof is True
    r.close()


def test_missing_input_file_is_error(tmp_path):
    r = FileTransport(str(tmp_path / "nope.bin"), "r")
    assert r.open() == StreamState.ERROR
    assert "could not open file" in r.last_error


def test_relative_path_resolves_against_local_dir(tmp_path):
    w = FileTransport("sub/out.bin", "w", local_dir=str(tmp_path))
    w.open()
    w.write(b"x")
    w.close()
    assert (tmp_path / "sub" / "out.bin").read_bytes() == b"x"


def _record(tmp_path, clock):
    path = tmp_path / "tagged.bin"
    w = FileTransport(str(path), "w", time_tag=True, clock=clock)
    clock.t = 0.0
    w.open()
    clock.t = 0.5
    w.write(b"aaa")
    clock.t = 1.5
    w.write(b"bbb")
    w.close()
    return path


def test_time_tag_playback_paces_reads(tmp_path):
    clock = FakeClock()
    path = _record(tmp_path, clock)
    assert (tmp_path / "tagged.bin.tag").exists()

    r = FileTransport(str(path), "r", time_tag=True, clock=clock)
    clock.t = 100.0
    r.open()

    assert r.read(100) == b""
    assert r.at_eof is False
    clock.t = 100.6
    assert r.read(100) == b"aaa"
    clock.t = 101.0
    assert r.read(100) == b""
    clock.t = 101.6
    assert r.read(100) == b"bbb"
    clock.t = 102.0
    assert r.read(100) == b""
    assert r.at_eof is True


def test_time_tag_playback_speed_and_start_offset(tmp_path):
    clock = FakeClock()
    path = _record(tmp_path, clock)

    fast = FileTransport(str(path), "r", time_tag=True, speed=2.0, clock=clock)
    clock.t = 50.0
    fast.open()
    clock.t = 50.3
    assert fast.read(100) == b"aaa"
    fast.close()

    skip = FileTransport(str(path), "r", time_tag=True, start_offset_s=1.0, clock=clock)
    clock.t = 200.0
    skip.open()
    assert skip.read(100) == b""
    clock.t = 200.6
    assert skip.read(100) == b"bbb"


def test_swap_opens_next_file_before_boundary(tmp_path):
    base = 1_700_002_800.0  # exact hour boundary, 23:00 UTC
    wall = FakeClock(base + 10)
    w = FileTransport(
        str(tmp_path / "log_%h.bin"),
        "w",
        swap_interval_h=1.0,
        swap_margin_s=30.0,
        wallclock=wall,
    )
    w.open()
    w.write(b"a")
    wall.t = base + 3560
    w.write(b"b")
    wall.t = base + 3580
    w.write(b"c")
    w.close()

    assert (tmp_path / "log_23.bin").read_bytes() == b"ab"
    assert (tmp_path / "log_00.bin").read_bytes() == b"c"


def test_swap_after_long_write_gap_happens_once(tmp_path):
    base = 1_700_002_800.0  # 23:00 UTC
    wall = FakeClock(base + 10)
    w = FileTransport(
        str(tmp_path / "log_%h.bin"),
        "w",
        time_tag=True,
        swap_interval_h=1.0,
        swap_margin_s=30.0,
        wallclock=wall,
        clock=FakeClock(),
    )
    w.open()
    w.write(b"a")
    wall.t = base + 3 * 3600 + 10
    w.write(b"b")
    wall.t = base + 3 * 3600 + 11
    w.write(b"c")
    w.close()

    assert (tmp_path / "log_23.bin").read_bytes() == b"a"
    assert (tmp_path / "log_02.bin").read_bytes() == b"bc"
    tag = (tmp_path / "log_02.bin.tag").read_bytes()
    assert len(tag) == TAG_HEADER_SIZE + 2 * TAG_RECORD.size


def test_mode_is_validated():
    with pytest.raises(ValueError):
        FileTransport("x.bin", "a")
