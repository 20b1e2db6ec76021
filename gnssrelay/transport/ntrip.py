# gnssrelay/transport/ntrip.py
from __future__ import annotations

import base64
import socket
from typing import Any, Optional, Tuple

from gnssrelay import __version__
from gnssrelay.model.endpoint import HostAddress, StreamKind

from .base import StreamState
from .errors import HandshakeError, TransportIOError, TransportOpenError
from .tcp import TcpClientTransport

AGENT = f"NTRIP gnssrelay/{__version__}"
MAX_RESPONSE = 4096


def basic_auth(user: str, password: str) -> str:
    return base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")


class _NtripTransport(TcpClientTransport):
    """
    TCP client that performs an NTRIP request/response exchange after the
    socket connects. The stream stays CONNECTING until the caster answers.
    """

    def __init__(self, host: str, port: int, mountpoint: str = "", **kwargs: Any):
        super().__init__(host, port, **kwargs)
        self.mountpoint = mountpoint
        self._response = bytearray()
        self._handshaken = False
        self._pending = b""

    # ---------------- protocol specific ----------------
    def _request(self) -> bytes:
        raise NotImplementedError

    def _accept(self, status: str, buf: bytes, eol: int) -> Optional[bytes]:
        """
        Judge the caster response. Return the bytes following the header once
        accepted, None to wait for more, or raise HandshakeError.
        """
        raise NotImplementedError

    # ---------------- handshake ----------------
    def _on_connected(self) -> None:
        self._connected = True
        assert self.sock is not None
        try:
            self.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass
        self._response.clear()
        self._handshaken = False
        self._pending = b""

        request = self._request()
        try:
            self.sock.settimeout(self.connect_timeout)
            self.sock.sendall(request)
        except OSError as e:
            raise TransportOpenError(f"could not send NTRIP request: {e}") from None
        finally:
            if self.sock is not None:
                self.sock.setblocking(False)
        self._log.debug("NTRIP_REQUEST_SENT host=%s port=%s mnt=%s", self.host, self.port, self.mountpoint)

    def _poll_handshake(self) -> bool:
        if self._handshaken:
            return True
        if not self._poll_connect():
            return False

        self._response += self._recv(MAX_RESPONSE)

        buf = bytes(self._response)
        eol = buf.find(b"\r\n")
        rest: Optional[bytes] = None
        if eol >= 0:
            status = buf[:eol].decode("ascii", "replace").strip()
            rest = self._accept(status, buf, eol)
        elif len(buf) > MAX_RESPONSE:
            raise HandshakeError("NTRIP response header too long")

        if rest is None:
            if self._clock() - self._connect_started > self.connect_timeout:
                raise HandshakeError(f"no NTRIP response from {self.host}:{self.port}")
            return False

        self._response.clear()
        self._pending = rest
        self._handshaken = True
        self._set_state(StreamState.ACTIVE)
        self._log.info("NTRIP_CONNECTED kind=%s host=%s port=%s mnt=%s", self.kind.value, self.host, self.port, self.mountpoint)
        return True

    def _close(self) -> None:
        self._handshaken = False
        self._pending = b""
        self._response.clear()
        super()._close()

    def _take_pending(self, n: int) -> bytes:
        data, self._pending = self._pending[:n], self._pending[n:]
        return data

    def _read(self, n: int) -> bytes:
        if not self._poll_handshake():
            return b""
        if self._pending:
            return self._take_pending(n)
        return self._recv(n)

    def _write(self, data: bytes) -> int:
        if not self._poll_handshake():
            return 0
        return self._send(data)

    def _poll(self) -> None:
        self._poll_handshake()


class NtripClientTransport(_NtripTransport):
    """
    NTRIP client (rover side): requests a mount point and relays its data.

    With an empty mount point the caster source table is requested and
    delivered as data; the stream closes once the table ends.
    """

    kind = StreamKind.NTRIP_CLIENT
    accepts_commands = True
    supports_inactivity_timeout = True

    def __init__(
        self,
        host: str,
        port: int,
        mountpoint: str = "",
        user: str = "",
        password: str = "",
        proxy: Optional[HostAddress] = None,
        **kwargs: Any,
    ):
        super().__init__(host, port, mountpoint, **kwargs)
        self.user = user
        self.password = password
        self.proxy = proxy
        self._table_mode = False
        self._table_done = False
        self._skip_prefix = b""

    def _target(self) -> Tuple[str, int]:
        if self.proxy is not None:
            return self.proxy.host, self.proxy.port
        return self.host, self.port

    def _request(self) -> bytes:
        self._table_mode = False
        self._table_done = False
        self._skip_prefix = b""
        url = f"/{self.mountpoint}"
        if self.proxy is not None:
            url = f"http://{self.host}:{self.port}{url}"

        lines = [f"GET {url} HTTP/1.0", f"User-Agent: {AGENT}"]
        if self.user:
            lines.append(f"Authorization: Basic {basic_auth(self.user, self.password)}")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("ascii")

    def _accept(self, status: str, buf: bytes, eol: int) -> Optional[bytes]:
        if status.startswith("ICY 200"):
            rest = buf[eol + 2:]
            if b"\r\n".startswith(rest):
                # blank line after the status may arrive with the first data
                self._skip_prefix = b"\r\n"[len(rest):]
                return b""
            if rest.startswith(b"\r\n"):
                rest = rest[2:]
            return rest

        if status.startswith("HTTP/") and " 200" in status:
            end = buf.find(b"\r\n\r\n")
            return None if end < 0 else buf[end + 4:]

        if status.startswith("SOURCETABLE 200"):
            if self.mountpoint:
                raise HandshakeError(f"mount point '{self.mountpoint}' not found on {self.host}:{self.port}")
            self._table_mode = True
            return buf[eol + 2:]

        raise HandshakeError(f"caster rejected request: {status}")

    def _read(self, n: int) -> bytes:
        if self._table_done:
            self._finish_table()
            return b""
        if not self._table_mode or not self._handshaken:
            data = super()._read(n)
            if data and self._skip_prefix:
                if data.startswith(self._skip_prefix):
                    data = data[len(self._skip_prefix):]
                self._skip_prefix = b""
            return data

        try:
            data = self._take_pending(n) if self._pending else self._recv(n)
        except TransportIOError:
            # caster closes the connection after the table
            self._finish_table()
            return b""
        if b"ENDSOURCETABLE" in data:
            self._table_done = True
        return data

    def _finish_table(self) -> None:
        self._log.info("NTRIP_SOURCETABLE_DONE host=%s port=%s", self.host, self.port)
        self._close()
        self._set_state(StreamState.CLOSED)


class NtripServerTransport(_NtripTransport):
    """
    NTRIP server (base side, NTRIP 1.0 SOURCE): pushes data to a caster
    mount point. Output only.
    """

    kind = StreamKind.NTRIP_SERVER

    def __init__(
        self,
        host: str,
        port: int,
        mountpoint: str = "",
        password: str = "",
        str_info: str = "",
        **kwargs: Any,
    ):
        super().__init__(host, port, mountpoint, **kwargs)
        self.password = password
        self.str_info = str_info

    def _request(self) -> bytes:
        lines = [f"SOURCE {self.password} /{self.mountpoint}", f"Source-Agent: {AGENT}"]
        if self.str_info:
            lines.append(f"STR: {self.str_info}")
        return ("\r\n".join(lines) + "\r\n\r\n").encode("ascii")

    def _accept(self, status: str, buf: bytes, eol: int) -> Optional[bytes]:
        if status.startswith("ICY 200") or (status.startswith("HTTP/") and " 200" in status):
            return b""
        raise HandshakeError(f"caster rejected source: {status}")

    def _poll(self) -> None:
        if not self._poll_handshake():
            return
        # drain anything the caster sends so a closed peer is noticed
        self._recv(MAX_RESPONSE)
