from __future__ import annotations

import logging

import pytest

import gnssrelay.cli.main as main_mod
from gnssrelay.cli.args import config_from_args, parse_args
from gnssrelay.core.errors import ConfigError


def test_args_to_config():
    cfg = config_from_args(
        parse_args(
            [
                "-in", "serial://ttyUSB0:115200#ubx",
                "-out", "tcpsvr://:2102#rtcm3",
                "-out", "file://x.bin",
                "-p", "35", "139", "50",
                "-sta", "12",
                "-n", "1",
                "-t", "2",
            ]
        )
    )
    assert cfg.input == "serial://ttyUSB0:115200#ubx"
    assert cfg.outputs == ("tcpsvr://:2102#rtcm3", "file://x.bin")
    assert cfg.station_position == (35.0, 139.0, 50.0)
    assert cfg.station_id == 12
    assert cfg.options().nmea_cycle_ms == 60000
    assert cfg.trace_level == 2
    assert cfg.msg_filter == "1004,1019"


def test_cli_overrides_config_file(tmp_path):
    p = tmp_path / "relay.yml"
    p.write_text("input: serial://ttyUSB0\noutputs: [tcpsvr://:2102]\nmsg_filter: '1004'\n", encoding="utf-8")

    cfg = config_from_args(parse_args(["--config", str(p), "-msg", "1077,1087", "-r", "2000"]))
    assert cfg.input == "serial://ttyUSB0"
    assert cfg.msg_filter == "1077,1087"
    assert cfg.reconnect_ms == 2000


def test_input_is_required():
    with pytest.raises(ConfigError):
        config_from_args(parse_args(["-out", "tcpsvr://:2102"]))


def test_trace_levels():
    assert main_mod.trace_level_to_logging(0) == logging.WARNING
    assert main_mod.trace_level_to_logging(2) == logging.INFO
    assert main_mod.trace_level_to_logging(5) == logging.DEBUG


def test_main_reports_config_errors(capsys):
    rc = main_mod.main(["-in", "bogus://x", "-out", "tcpsvr://:2102"])
    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR: Unknown stream type 'bogus'" in out
    assert "Hint:" in out


def test_main_relays_file_until_eof(tmp_path, monkeypatch):
    monkeypatch.setattr(main_mod.signal, "signal", lambda *a, **k: None)
    src = tmp_path / "in.bin"
    src.write_bytes(bytes(range(256)) * 4)
    dst = tmp_path / "out.bin"

    rc = main_mod.main(["-in", str(src), "-out", str(dst), "--stop-on-eof", "--display-ms", "100"])

    assert rc == 0
    assert dst.read_bytes() == src.read_bytes()
