from .config import RelayConfig
from .runner import build_server, read_command_file

__all__ = ["RelayConfig", "build_server", "read_command_file"]
