from __future__ import annotations

import pytest

from gnssrelay.core.errors import ConfigError
from gnssrelay.model.msg_filter import MessageFilter


def test_parse_types_and_intervals():
    f = MessageFilter.parse("1004,1019(10),1005(0.5)")

    assert f.types() == ("1004", "1019", "1005")
    assert f.allows("1004") and f.allows("1019")
    assert not f.allows("1012")
    assert f.interval("1004") == 0.0
    assert f.interval("1019") == 10.0
    assert f.interval("1012") is None
    assert len(f) == 3


def test_render_parse_round_trip():
    f = MessageFilter.parse(" 1004 , 1019( 10 ) ")
    assert f.render() == "1004,1019(10)"
    assert MessageFilter.parse(f.render()) == f


def test_tiny_interval_survives_render():
    f = MessageFilter({"1004": 0.00001})
    assert f.render() == "1004(1e-05)"
    assert MessageFilter.parse(f.render()) == f


def test_empty_filter_suppresses_everything():
    f = MessageFilter.parse("")
    assert len(f) == 0
    assert not f.allows("1004")


@pytest.mark.parametrize("text", ["1004(", "1004(abc)", "10 04", "1004(1)(2)"])
def test_bad_entries_raise(text):
    with pytest.raises(ConfigError):
        MessageFilter.parse(text)


def test_negative_interval_rejected():
    with pytest.raises(ConfigError):
        MessageFilter({"1004": -1.0})
