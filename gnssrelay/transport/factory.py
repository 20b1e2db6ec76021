# gnssrelay/transport/factory.py
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from gnssrelay.core.errors import EndpointError
from gnssrelay.model.endpoint import (
    ROLE_KINDS,
    Endpoint,
    HostAddress,
    StreamKind,
    StreamRole,
    parse_file_address,
    parse_host_address,
    parse_ntrip_address,
    parse_serial_address,
)

from .base import Transport
from .errors import TransportError
from .registry import TransportRegistry


@dataclass(frozen=True)
class TransportOptions:
    """Settings shared by every transport of one relay server."""

    timeout_ms: int = 10000
    swap_margin_s: float = 30.0
    bitrate_window_ms: int = 2000
    local_dir: str = ""
    proxy: str = ""
    clock: Callable[[], float] = field(default=time.monotonic, compare=False)


class TransportFactory:
    """
    Constructs a transport from an Endpoint + role.
    Note: does NOT open the transport.
    """

    def __init__(self, options: Optional[TransportOptions] = None, registry: Optional[TransportRegistry] = None):
        self.options = options or TransportOptions()
        self._registry = registry or TransportRegistry.default()

    def params_for(self, endpoint: Endpoint, role: StreamRole) -> Dict[str, Any]:
        """Resolve constructor kwargs for the endpoint's transport class."""
        if endpoint.kind not in ROLE_KINDS[role]:
            raise EndpointError(
                f"Stream type '{endpoint.kind.value}' cannot be used as {role.value}.",
                hint="ntrips:// is output only; ntrip:// is input only.",
                details={"path": endpoint.render(), "role": role.value},
            )

        opts = self.options
        common: Dict[str, Any] = {
            "path": endpoint.render(),
            "bitrate_window_s": opts.bitrate_window_ms / 1000.0,
            "clock": opts.clock,
        }
        kind = endpoint.kind
        addr = endpoint.address

        if kind == StreamKind.FILE:
            fa = parse_file_address(addr)
            return {
                **common,
                "path_template": fa.path,
                "mode": "r" if role == StreamRole.INPUT else "w",
                "time_tag": fa.time_tag,
                "start_offset_s": fa.start_offset_s,
                "speed": fa.speed,
                "swap_interval_h": fa.swap_interval_h,
                "swap_margin_s": opts.swap_margin_s,
                "local_dir": opts.local_dir,
            }

        if kind == StreamKind.SERIAL:
            sa = parse_serial_address(addr)
            return {
                **common,
                "port": sa.port,
                "baudrate": sa.baudrate,
                "bytesize": sa.bytesize,
                "parity": sa.parity,
                "stopbits": sa.stopbits,
                "flow_control": sa.flow_control,
            }

        connect_timeout = opts.timeout_ms / 1000.0

        if kind == StreamKind.TCP_SERVER:
            ha = parse_host_address(addr)
            return {**common, "port": ha.port, "host": ha.host}

        if kind == StreamKind.TCP_CLIENT:
            ha = parse_host_address(addr)
            if not ha.host:
                raise EndpointError(f"Missing host in '{addr}'.", details={"path": endpoint.render()})
            return {**common, "host": ha.host, "port": ha.port, "connect_timeout": connect_timeout}

        na = parse_ntrip_address(addr)
        if kind == StreamKind.NTRIP_CLIENT:
            return {
                **common,
                "host": na.host,
                "port": na.port,
                "mountpoint": na.mountpoint,
                "user": na.user,
                "password": na.password,
                "proxy": self._proxy(),
                "connect_timeout": connect_timeout,
            }

        return {
            **common,
            "host": na.host,
            "port": na.port,
            "mountpoint": na.mountpoint,
            "password": na.password,
            "str_info": na.str_info,
            "connect_timeout": connect_timeout,
        }

    def create(self, endpoint: Endpoint, role: StreamRole) -> Transport:
        params = self.params_for(endpoint, role)
        try:
            return self._registry.create(endpoint.kind, **params)
        except (TransportError, TypeError) as e:
            # unknown kind or constructor mismatch
            raise EndpointError(
                f"Failed to construct transport for '{endpoint.render()}'.",
                hint=str(e),
                details={"kind": endpoint.kind.value, "role": role.value},
            ) from None

    def _proxy(self) -> Optional[HostAddress]:
        if not self.options.proxy:
            return None
        proxy = self.options.proxy
        if "://" in proxy:
            proxy = proxy.split("://", 1)[1]
        return parse_host_address(proxy.rstrip("/"), default_port=8080)
