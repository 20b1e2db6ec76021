# gnssrelay/core/errors.py
from __future__ import annotations


class RelayError(Exception):
    """
    Base class for all expected operational errors in gnssrelay.
    """

    #: Stable machine-readable identifier (for CLI exit mapping, logs, etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (nothing opened yet)
# ---------------------------------------------------------------------------

class ConfigError(RelayError):
    """
    Relay configuration is invalid or inconsistent.

    Examples:
      - no output stream, or more than the supported maximum
      - malformed message filter string
      - invalid station position / antenna offset
    """
    code = "config_error"


class EndpointError(ConfigError):
    """
    A stream path could not be decoded.

    Examples:
      - unknown scheme in 'kind://address'
      - missing port for a TCP server
      - NTRIP server used as input
    """
    code = "endpoint_error"


class FormatError(ConfigError):
    """
    A '#format' tag is unknown or cannot be used where it was configured.

    Examples:
      - '#foo' is not a registered format
      - input-only format configured on an output
      - conversion requested for a format without a built-in decoder
    """
    code = "format_error"


# ---------------------------------------------------------------------------
# Server lifecycle errors
# ---------------------------------------------------------------------------

class ServerStateError(RelayError):
    """
    Relay server operation is not valid in its current lifecycle state.

    Examples:
      - start() on a running server
      - send_commands() before start()
    """
    code = "server_state_error"
