# gnssrelay/app/config.py
from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from gnssrelay.core.errors import ConfigError
from gnssrelay.model.endpoint import parse_path
from gnssrelay.model.msg_filter import MessageFilter
from gnssrelay.protocol.base import StationOverrides
from gnssrelay.runtime.relay_server import MAX_OUTPUTS, RelayOptions
from gnssrelay.transport.factory import TransportOptions

Vec3 = Tuple[float, float, float]


@dataclass(frozen=True)
class RelayConfig:
    """
    Everything needed to build one relay server.

    YAML files use the field names as flat keys, e.g.:

        input: ntrip://user:pw@caster.example.com:2101/MNT#rtcm3
        outputs:
          - tcpsvr://:2102
          - file:///data/%Y%m%d_%h.rtcm3::S=1
        msg_filter: "1004,1019,1005(10)"
        station_position: [35.68, 139.77, 40.0]
    """

    input: str
    outputs: Tuple[str, ...]
    msg_filter: str = "1004,1019"
    station_id: Optional[int] = None
    receiver_options: str = ""
    timeout_ms: int = 10000
    reconnect_ms: int = 10000
    nmea_cycle_min: float = 0.0
    swap_margin_s: float = 30.0
    commands: str = ""
    command_file: str = ""
    station_position: Optional[Vec3] = None
    antenna_info: str = ""
    receiver_info: str = ""
    antenna_offset: Optional[Vec3] = None
    local_dir: str = ""
    proxy: str = ""
    trace_level: int = 0
    display_interval_ms: int = 5000
    bitrate_window_ms: int = 2000
    buffer_size: int = 32768
    cycle_ms: int = 10
    stop_on_eof: bool = False

    # ---------------- loading ----------------
    @classmethod
    def load(cls, path: str | Path) -> "RelayConfig":
        p = Path(path)
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Could not read config file '{p}': {e.strerror}", details={"path": str(p)}) from None
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file '{p}'.", hint=str(e), details={"path": str(p)}) from None
        if not isinstance(data, dict):
            raise ConfigError(f"Config file '{p}' must contain a mapping.", details={"path": str(p)})
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelayConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                f"Unknown config key(s): {', '.join(unknown)}",
                hint=f"Valid keys: {', '.join(sorted(known))}",
            )
        if "input" not in data:
            raise ConfigError("Config is missing the 'input' stream path.")

        values = dict(data)
        outputs = values.get("outputs") or ()
        if isinstance(outputs, str):
            outputs = (outputs,)
        values["outputs"] = tuple(str(o) for o in outputs)
        for key in ("station_position", "antenna_offset"):
            if values.get(key) is not None:
                values[key] = _vec3(values[key], key)

        cfg = cls(**values)
        cfg.validate()
        return cfg

    # ---------------- validation ----------------
    def validate(self) -> None:
        parse_path(self.input)
        if not self.outputs:
            raise ConfigError("No output stream configured.", hint="Give at least one output path.")
        if len(self.outputs) > MAX_OUTPUTS:
            raise ConfigError(f"Too many output streams: {len(self.outputs)} (max {MAX_OUTPUTS}).")
        for out in self.outputs:
            parse_path(out)

        self.message_filter()
        self.overrides()

        for name in (
            "timeout_ms",
            "reconnect_ms",
            "nmea_cycle_min",
            "swap_margin_s",
            "display_interval_ms",
            "bitrate_window_ms",
            "cycle_ms",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"'{name}' must not be negative.", details={name: getattr(self, name)})
        if self.buffer_size <= 0:
            raise ConfigError("'buffer_size' must be positive.")
        if self.bitrate_window_ms == 0:
            raise ConfigError("'bitrate_window_ms' must be positive.")
        if self.station_id is not None and not 0 <= self.station_id <= 4095:
            raise ConfigError(f"Station id out of range: {self.station_id} (0..4095).")
        if not 0 <= self.trace_level <= 5:
            raise ConfigError(f"Trace level out of range: {self.trace_level} (0..5).")
        if self.station_position is not None:
            lat, lon, _ = self.station_position
            if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 360.0):
                raise ConfigError(
                    f"Invalid station position {self.station_position}.",
                    hint="Latitude/longitude in degrees, height in metres.",
                )

    # ---------------- derived settings ----------------
    def message_filter(self) -> MessageFilter:
        return MessageFilter.parse(self.msg_filter)

    def overrides(self) -> StationOverrides:
        try:
            return StationOverrides.from_info(
                station_id=self.station_id,
                position_llh=self.station_position,
                antenna_offset_enu=self.antenna_offset,
                antenna_info=self.antenna_info,
                receiver_info=self.receiver_info,
            )
        except ValueError as e:
            raise ConfigError(str(e), details={"antenna_info": self.antenna_info}) from None

    def options(self) -> RelayOptions:
        return RelayOptions(
            timeout_ms=self.timeout_ms,
            reconnect_ms=self.reconnect_ms,
            bitrate_window_ms=self.bitrate_window_ms,
            buffer_size=self.buffer_size,
            cycle_ms=self.cycle_ms,
            nmea_cycle_ms=int(round(self.nmea_cycle_min * 60000)),
            swap_margin_s=self.swap_margin_s,
            stop_on_eof=self.stop_on_eof,
        )

    def transport_options(self) -> TransportOptions:
        return TransportOptions(
            timeout_ms=self.timeout_ms,
            swap_margin_s=self.swap_margin_s,
            bitrate_window_ms=self.bitrate_window_ms,
            local_dir=self.local_dir,
            proxy=self.proxy,
        )


def _vec3(value: Any, key: str) -> Vec3:
    try:
        x, y, z = (float(v) for v in value)
    except (TypeError, ValueError):
        raise ConfigError(f"'{key}' must be three numbers.", details={key: value}) from None
    return x, y, z
