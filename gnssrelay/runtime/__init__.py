from .commands import CommandInjector, CommandScript
from .relay_server import MAX_OUTPUTS, RelayOptions, RelayServer
from .state import ServerStatus, StreamStatus

__all__ = [
    "CommandInjector",
    "CommandScript",
    "MAX_OUTPUTS",
    "RelayOptions",
    "RelayServer",
    "ServerStatus",
    "StreamStatus",
]
