# gnssrelay/transport/registry.py
from __future__ import annotations

from typing import Any, Dict, Type

from gnssrelay.model.endpoint import StreamKind

from .base import Transport
from .errors import TransportError
from .file import FileTransport
from .ntrip import NtripClientTransport, NtripServerTransport
from .serial_port import SerialTransport
from .tcp import TcpClientTransport, TcpServerTransport


class TransportRegistry:
    """
    Maps stream kinds -> concrete transport classes.

    The relay engine only depends on the Transport interface; adding a kind
    means registering one more class here.
    """

    def __init__(self, drivers: Dict[str, Type[Transport]]):
        # normalize keys to be case-insensitive
        self._drivers: Dict[str, Type[Transport]] = {str(k).lower(): v for k, v in drivers.items()}

    @classmethod
    def default(cls) -> "TransportRegistry":
        return cls(
            drivers={
                StreamKind.FILE.value: FileTransport,
                StreamKind.SERIAL.value: SerialTransport,
                StreamKind.TCP_SERVER.value: TcpServerTransport,
                StreamKind.TCP_CLIENT.value: TcpClientTransport,
                StreamKind.NTRIP_CLIENT.value: NtripClientTransport,
                StreamKind.NTRIP_SERVER.value: NtripServerTransport,
            }
        )

    def has(self, kind: str) -> bool:
        return _key(kind) in self._drivers

    def get_class(self, kind: str) -> Type[Transport]:
        key = _key(kind)
        if key not in self._drivers:
            raise TransportError(f"Transport kind '{key}' not registered")
        return self._drivers[key]

    def register(self, kind: str, transport_cls: Type[Transport]) -> None:
        self._drivers[_key(kind)] = transport_cls

    def create(self, kind: str, **params: Any) -> Transport:
        """Instantiate a transport by kind (does NOT open it)."""
        transport_cls = self.get_class(kind)
        return transport_cls(**params)


def _key(kind: Any) -> str:
    return (kind.value if isinstance(kind, StreamKind) else str(kind)).lower()
