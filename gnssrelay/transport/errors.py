# gnssrelay/transport/errors.py
from __future__ import annotations


class TransportError(Exception):
    """Stream transport fault; the transport moves to ERROR and is reopened later."""


class TransportOpenError(TransportError):
    """Port, socket, file or caster could not be opened."""


class TransportIOError(TransportError):
    """Read/write failed on an open stream (peer closed, disk full, line lost)."""


class HandshakeError(TransportOpenError):
    """NTRIP/HTTP handshake rejected or malformed."""
