from .base import Message, MessageEncoder, StationOverrides, StreamDecoder
from .registry import FormatRegistry, FormatSpec

__all__ = [
    "FormatRegistry",
    "FormatSpec",
    "Message",
    "MessageEncoder",
    "StationOverrides",
    "StreamDecoder",
]
