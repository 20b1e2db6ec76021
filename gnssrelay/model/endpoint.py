# gnssrelay/model/endpoint.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from gnssrelay.core.errors import EndpointError


class StreamKind(str, Enum):
    """Transport kind selected by the scheme of a stream path."""

    SERIAL = "serial"
    TCP_SERVER = "tcpsvr"
    TCP_CLIENT = "tcpcli"
    NTRIP_CLIENT = "ntrip"
    NTRIP_SERVER = "ntrips"
    FILE = "file"


_SCHEMES = {k.value: k for k in StreamKind}

DEFAULT_NTRIP_PORT = 2101


@dataclass(frozen=True)
class Endpoint:
    """
    Static description of one stream: kind + kind-specific address + optional
    protocol tag. Contains no runtime state.
    """

    kind: StreamKind
    address: str
    format: Optional[str] = None

    def render(self) -> str:
        """Canonical path string; parse_path(render()) yields an equal Endpoint."""
        path = f"{self.kind.value}://{self.address}"
        if self.format:
            path += f"#{self.format}"
        return path

    def __str__(self) -> str:
        return self.render()


def parse_path(path: str) -> Endpoint:
    """
    Decode 'kind://address[#format]'. A path without '://' is a file path.
    """
    if not isinstance(path, str) or not path.strip():
        raise EndpointError("Empty stream path.", hint="Use kind://address[#format].")

    body = path.strip()
    fmt: Optional[str] = None

    # only an alphanumeric suffix is a format tag; '#' may appear in passwords
    idx = body.rfind("#")
    if idx >= 0:
        tag = body[idx + 1:].strip()
        if not tag:
            raise EndpointError(
                f"Empty format tag in stream path '{path}'.",
                hint="Remove the trailing '#' or name a format, e.g. '#rtcm3'.",
                details={"path": path},
            )
        if tag.isalnum():
            fmt = tag.lower()
            body = body[:idx]

    sep = body.find("://")
    if sep < 0:
        kind = StreamKind.FILE
        address = body
    else:
        scheme = body[:sep].lower()
        kind = _SCHEMES.get(scheme)  # type: ignore[assignment]
        if kind is None:
            raise EndpointError(
                f"Unknown stream type '{scheme}' in path '{path}'.",
                hint=f"Valid types: {', '.join(sorted(_SCHEMES))}",
                details={"path": path, "scheme": scheme},
            )
        address = body[sep + 3:]

    if not address:
        raise EndpointError(
            f"Missing address in stream path '{path}'.",
            details={"path": path, "kind": kind.value},
        )

    return Endpoint(kind=kind, address=address, format=fmt)


# ---------------------------------------------------------------------------
# Kind-specific address decoding
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SerialAddress:
    port: str
    baudrate: int = 9600
    bytesize: int = 8
    parity: str = "N"
    stopbits: int = 1
    flow_control: str = "off"


@dataclass(frozen=True)
class HostAddress:
    host: str
    port: int


@dataclass(frozen=True)
class NtripAddress:
    host: str
    port: int
    user: str = ""
    password: str = ""
    mountpoint: str = ""
    str_info: str = ""


@dataclass(frozen=True)
class FileAddress:
    path: str
    time_tag: bool = False
    start_offset_s: float = 0.0
    speed: float = 1.0
    swap_interval_h: float = 0.0


def _parse_port(text: str, *, address: str) -> int:
    try:
        port = int(text)
    except ValueError:
        raise EndpointError(
            f"Invalid port '{text}' in address '{address}'.",
            details={"address": address},
        ) from None
    if not 0 < port < 65536:
        raise EndpointError(
            f"Port out of range '{port}' in address '{address}'.",
            details={"address": address},
        )
    return port


def parse_serial_address(address: str) -> SerialAddress:
    parts = address.split(":")
    port = parts[0]
    if not port:
        raise EndpointError(f"Missing serial port in '{address}'.", details={"address": address})
    if not (port.startswith("/") or port.upper().startswith("COM")):
        port = "/dev/" + port

    try:
        baudrate = int(parts[1]) if len(parts) > 1 and parts[1] else 9600
        bytesize = int(parts[2]) if len(parts) > 2 and parts[2] else 8
        parity = parts[3].upper()[:1] if len(parts) > 3 and parts[3] else "N"
        stopbits = int(parts[4]) if len(parts) > 4 and parts[4] else 1
    except ValueError:
        raise EndpointError(
            f"Invalid serial parameters in '{address}'.",
            hint="serial://port[:brate[:bsize[:parity[:stopb[:fctr]]]]]",
            details={"address": address},
        ) from None
    fctr = parts[5].lower() if len(parts) > 5 and parts[5] else "off"

    if parity not in ("N", "E", "O"):
        raise EndpointError(f"Invalid serial parity '{parity}' in '{address}'.", details={"address": address})
    if fctr not in ("off", "rts", "xon"):
        raise EndpointError(f"Invalid flow control '{fctr}' in '{address}'.", details={"address": address})

    return SerialAddress(
        port=port,
        baudrate=baudrate,
        bytesize=bytesize,
        parity=parity,
        stopbits=stopbits,
        flow_control=fctr,
    )


def parse_host_address(address: str, *, default_port: Optional[int] = None) -> HostAddress:
    """Decode 'addr[:port]'; addr may be empty for a listening server."""
    host, sep, port_s = address.rpartition(":")
    if not sep:
        host, port_s = address, ""

    if port_s:
        port = _parse_port(port_s, address=address)
    elif default_port is not None:
        port = default_port
    else:
        raise EndpointError(f"Missing port in address '{address}'.", details={"address": address})

    return HostAddress(host=host, port=port)


def parse_ntrip_address(address: str) -> NtripAddress:
    """Decode '[user[:passwd]@]addr[:port][/mntpnt[:str]]'."""
    user = password = ""
    rest = address
    at = rest.rfind("@")
    if at >= 0:
        cred, rest = rest[:at], rest[at + 1:]
        user, _, password = cred.partition(":")

    mount = str_info = ""
    slash = rest.find("/")
    if slash >= 0:
        rest, mount = rest[:slash], rest[slash + 1:]
        mount, _, str_info = mount.partition(":")

    hp = parse_host_address(rest, default_port=DEFAULT_NTRIP_PORT)
    if not hp.host:
        raise EndpointError(f"Missing caster address in '{address}'.", details={"address": address})

    return NtripAddress(
        host=hp.host,
        port=hp.port,
        user=user,
        password=password,
        mountpoint=mount,
        str_info=str_info,
    )


def parse_file_address(address: str) -> FileAddress:
    """Decode 'path[::T][::+start][::xspeed][::S=swap]'."""
    parts = address.split("::")
    path = parts[0]
    if not path:
        raise EndpointError(f"Missing file path in '{address}'.", details={"address": address})

    time_tag = False
    start = 0.0
    speed = 1.0
    swap = 0.0
    try:
        for opt in parts[1:]:
            if opt == "T":
                time_tag = True
            elif opt.startswith("+"):
                start = float(opt[1:])
            elif opt.startswith("x"):
                speed = float(opt[1:])
            elif opt.startswith("S="):
                swap = float(opt[2:])
            elif opt.startswith("P="):
                continue  # permission option, not used
            else:
                raise EndpointError(
                    f"Unknown file option '::{opt}' in '{address}'.",
                    hint="Valid options: ::T ::+start ::xspeed ::S=swap",
                    details={"address": address},
                )
    except ValueError:
        raise EndpointError(f"Invalid numeric file option in '{address}'.", details={"address": address}) from None

    if speed <= 0:
        raise EndpointError(f"Playback speed must be positive in '{address}'.", details={"address": address})

    return FileAddress(
        path=path,
        time_tag=time_tag,
        start_offset_s=start,
        speed=speed,
        swap_interval_h=swap,
    )


class StreamRole(str, Enum):
    INPUT = "input"
    OUTPUT = "output"


# kinds usable for each role
ROLE_KINDS = {
    StreamRole.INPUT: frozenset({
        StreamKind.SERIAL,
        StreamKind.TCP_SERVER,
        StreamKind.TCP_CLIENT,
        StreamKind.NTRIP_CLIENT,
        StreamKind.FILE,
    }),
    StreamRole.OUTPUT: frozenset({
        StreamKind.SERIAL,
        StreamKind.TCP_SERVER,
        StreamKind.TCP_CLIENT,
        StreamKind.NTRIP_SERVER,
        StreamKind.FILE,
    }),
}
