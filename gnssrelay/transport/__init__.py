from .base import StreamState, Transport, TransportStat
from .errors import TransportError, TransportIOError, TransportOpenError
from .factory import TransportFactory, TransportOptions
from .registry import TransportRegistry

__all__ = [
    "StreamState",
    "Transport",
    "TransportStat",
    "TransportError",
    "TransportIOError",
    "TransportOpenError",
    "TransportFactory",
    "TransportOptions",
    "TransportRegistry",
]
