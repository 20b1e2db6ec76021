# gnssrelay/cli/args.py
from __future__ import annotations

import argparse
from dataclasses import replace
from typing import Any, Dict, Optional

from gnssrelay.app.config import RelayConfig
from gnssrelay.core.errors import ConfigError

# argparse dest -> RelayConfig field
_FIELDS = {
    "input": "input",
    "outputs": "outputs",
    "msg": "msg_filter",
    "sta": "station_id",
    "opt": "receiver_options",
    "timeout": "timeout_ms",
    "reconnect": "reconnect_ms",
    "nmea": "nmea_cycle_min",
    "margin": "swap_margin_s",
    "cmdfile": "command_file",
    "pos": "station_position",
    "antinfo": "antenna_info",
    "rcvinfo": "receiver_info",
    "offset": "antenna_offset",
    "local": "local_dir",
    "proxy": "proxy",
    "trace": "trace_level",
    "display": "display_interval_ms",
    "stop_on_eof": "stop_on_eof",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gnssrelay",
        allow_abbrev=False,
        description="Relay one GNSS data stream to up to four output streams.",
        epilog=(
            "stream path: serial://port[:brate[:bsize[:parity[:stopb[:fctr]]]]] | "
            "tcpsvr://:port | tcpcli://addr[:port] | "
            "ntrip://[user[:passwd]@]addr[:port][/mntpnt] | "
            "ntrips://[:passwd@]addr[:port][/mntpnt[:str]] (output only) | "
            "file://path[::T][::+start][::xspeed][::S=swap], each optionally followed by #format"
        ),
    )
    parser.add_argument("--config", help="YAML config file; command-line options override its values.")
    parser.add_argument("-in", dest="input", metavar="stream[#format]", help="Input stream path.")
    parser.add_argument(
        "-out",
        dest="outputs",
        action="append",
        metavar="stream[#format]",
        help="Output stream path (repeat for up to 4 outputs).",
    )
    parser.add_argument("-msg", dest="msg", metavar="type[(tint)],...", help="RTCM message types and intervals [1004,1019].")
    parser.add_argument("-sta", dest="sta", type=int, metavar="sta", help="Station id.")
    parser.add_argument("-opt", dest="opt", metavar="opt", help="Receiver dependent options.")
    parser.add_argument("-s", dest="timeout", type=int, metavar="msec", help="Timeout time (ms) [10000].")
    parser.add_argument("-r", dest="reconnect", type=int, metavar="msec", help="Reconnect interval (ms) [10000].")
    parser.add_argument("-n", dest="nmea", type=float, metavar="min", help="NMEA request cycle (min) [0].")
    parser.add_argument("-f", dest="margin", type=float, metavar="sec", help="File swap margin (s) [30].")
    parser.add_argument("-c", dest="cmdfile", metavar="file", help="Receiver commands file.")
    parser.add_argument("-p", dest="pos", type=float, nargs=3, metavar=("lat", "lon", "hgt"), help="Station position (deg, m).")
    parser.add_argument("-a", dest="antinfo", metavar="antinfo", help="Antenna info (descriptor,setup id,serial).")
    parser.add_argument("-i", dest="rcvinfo", metavar="rcvinfo", help="Receiver info (type,firmware,serial).")
    parser.add_argument("-o", dest="offset", type=float, nargs=3, metavar=("e", "n", "u"), help="Antenna offset (m).")
    parser.add_argument("-l", dest="local", metavar="dir", help="Local directory for file streams.")
    parser.add_argument("-x", dest="proxy", metavar="addr", help="HTTP proxy address for NTRIP.")
    parser.add_argument("-t", dest="trace", type=int, metavar="level", help="Trace level (0-5) [0].")
    parser.add_argument("--display-ms", dest="display", type=int, metavar="msec", help="Status display interval (ms) [5000].")
    parser.add_argument(
        "--stop-on-eof",
        dest="stop_on_eof",
        action="store_true",
        default=None,
        help="Stop when a file input is exhausted.",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def config_from_args(args: argparse.Namespace) -> RelayConfig:
    """Merge command-line options over the optional --config file."""
    given: Dict[str, Any] = {}
    for dest, field_name in _FIELDS.items():
        value = getattr(args, dest, None)
        if value is None:
            continue
        if field_name in ("outputs", "station_position", "antenna_offset"):
            value = tuple(value)
        given[field_name] = value

    if args.config:
        cfg = replace(RelayConfig.load(args.config), **given)
        cfg.validate()
        return cfg

    if "input" not in given:
        raise ConfigError("No input stream given.", hint="Use -in stream[#format] or --config file.yml")
    return RelayConfig.from_dict(given)
