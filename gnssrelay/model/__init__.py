from .endpoint import Endpoint, StreamKind, StreamRole, parse_path
from .msg_filter import MessageFilter

__all__ = ["Endpoint", "StreamKind", "StreamRole", "parse_path", "MessageFilter"]
