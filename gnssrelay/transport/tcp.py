# gnssrelay/transport/tcp.py
from __future__ import annotations

import errno
import select
import socket
from typing import Any, List, Optional, Tuple

from gnssrelay.model.endpoint import StreamKind

from .base import StreamState, Transport
from .errors import TransportIOError, TransportOpenError

_IN_PROGRESS = {errno.EINPROGRESS, errno.EWOULDBLOCK, errno.EALREADY, 10035}  # 10035: WSAEWOULDBLOCK

MAX_CLIENTS = 32


def _nodelay(sock: socket.socket) -> None:
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except OSError:
        pass


class TcpClientTransport(Transport):
    """
    TCP client with a non-blocking connect.

    open() returns CONNECTING; the connection completes on a later
    read/write/poll once the socket turns writable, or fails after
    connect_timeout seconds.
    """

    kind = StreamKind.TCP_CLIENT
    accepts_commands = True
    supports_inactivity_timeout = True

    def __init__(self, host: str, port: int, connect_timeout: float = 10.0, **kwargs: Any):
        super().__init__(**kwargs)
        self.host = host
        self.port = int(port)
        self.connect_timeout = float(connect_timeout)
        self.sock: Optional[socket.socket] = None
        self._connected = False
        self._connect_started = 0.0

    # target may differ from host/port when a proxy is configured
    def _target(self) -> Tuple[str, int]:
        return self.host, self.port

    def _open(self) -> StreamState:
        target = self._target()
        self._connected = False
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise TransportOpenError(f"socket() failed: {e}") from None

        sock.setblocking(False)
        try:
            err = sock.connect_ex(target)
        except OSError as e:  # name resolution
            sock.close()
            raise TransportOpenError(f"could not connect to {target[0]}:{target[1]}: {e}") from None

        self.sock = sock
        self._connect_started = self._clock()
        if err == 0:
            self._on_connected()
            return self.state
        if err in _IN_PROGRESS:
            return StreamState.CONNECTING

        self._close()
        raise TransportOpenError(f"could not connect to {target[0]}:{target[1]}: {errno.errorcode.get(err, err)}")

    def _close(self) -> None:
        self._connected = False
        if self.sock is not None:
            try:
                self.sock.close()
            finally:
                self.sock = None

    def _poll_connect(self) -> bool:
        """Complete a pending connect; True once connected."""
        if self._connected:
            return True
        if self.sock is None:
            raise TransportIOError("socket not open")

        _, writable, failed = select.select([], [self.sock], [self.sock], 0)
        if not writable and not failed:
            if self._clock() - self._connect_started > self.connect_timeout:
                raise TransportOpenError(f"connect timeout {self.host}:{self.port}")
            return False

        err = self.sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        if err:
            raise TransportOpenError(f"could not connect to {self.host}:{self.port}: {errno.errorcode.get(err, err)}")

        self._on_connected()
        return True

    def _on_connected(self) -> None:
        self._connected = True
        assert self.sock is not None
        _nodelay(self.sock)
        self._set_state(StreamState.ACTIVE)

    def _recv(self, n: int) -> bytes:
        assert self.sock is not None
        try:
            data = self.sock.recv(n)
        except (BlockingIOError, InterruptedError):
            return b""
        except OSError as e:
            raise TransportIOError(f"recv failed: {e}") from None
        if not data:
            raise TransportIOError("connection closed by peer")
        return data

    def _send(self, data: bytes) -> int:
        assert self.sock is not None
        try:
            return self.sock.send(data)
        except (BlockingIOError, InterruptedError):
            return 0
        except OSError as e:
            raise TransportIOError(f"send failed: {e}") from None

    def _read(self, n: int) -> bytes:
        if not self._poll_connect():
            return b""
        return self._recv(n)

    def _write(self, data: bytes) -> int:
        if not self._poll_connect():
            return 0
        return self._send(data)

    def _poll(self) -> None:
        self._poll_connect()


class TcpServerTransport(Transport):
    """
    Listening TCP server broadcasting writes to every connected client.

    WAITING while no client is connected, ACTIVE with at least one. A client
    that disconnects or errors is dropped without failing the server.
    """

    kind = StreamKind.TCP_SERVER
    accepts_commands = True
    supports_inactivity_timeout = True

    def __init__(self, port: int, host: str = "", max_clients: int = MAX_CLIENTS, **kwargs: Any):
        super().__init__(**kwargs)
        self.host = host
        self.port = int(port)
        self.max_clients = int(max_clients)
        self.sock: Optional[socket.socket] = None
        self.clients: List[Tuple[socket.socket, Tuple[str, int]]] = []

    @property
    def bound_port(self) -> Optional[int]:
        if self.sock is None:
            return None
        return self.sock.getsockname()[1]

    def _open(self) -> StreamState:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(5)
            sock.setblocking(False)
        except OSError as e:
            raise TransportOpenError(f"could not listen on port {self.port}: {e}") from None
        self.sock = sock
        self._update_info()
        return StreamState.WAITING

    def _close(self) -> None:
        for c, _ in self.clients:
            try:
                c.close()
            except OSError:
                pass
        self.clients = []
        if self.sock is not None:
            try:
                self.sock.close()
            finally:
                self.sock = None

    def _accept_pending(self) -> None:
        if self.sock is None:
            raise TransportIOError("server socket not open")
        while True:
            try:
                conn, addr = self.sock.accept()
            except (BlockingIOError, InterruptedError):
                break
            except OSError as e:
                raise TransportIOError(f"accept failed: {e}") from None

            if len(self.clients) >= self.max_clients:
                self._log.warning("TCPSVR_CLIENT_REJECTED port=%s addr=%s:%s", self.port, *addr)
                conn.close()
                continue

            conn.setblocking(False)
            _nodelay(conn)
            self.clients.append((conn, addr))
            self._log.info("TCPSVR_CLIENT_CONNECTED port=%s addr=%s:%s", self.port, *addr)

        self._update_state()

    def _drop(self, conn: socket.socket, reason: str) -> None:
        for i, (c, addr) in enumerate(self.clients):
            if c is conn:
                self._log.info("TCPSVR_CLIENT_DROPPED port=%s addr=%s:%s reason=%s", self.port, addr[0], addr[1], reason)
                del self.clients[i]
                break
        try:
            conn.close()
        except OSError:
            pass
        self._update_state()

    def _update_state(self) -> None:
        self._set_state(StreamState.ACTIVE if self.clients else StreamState.WAITING)
        self._update_info()

    def _update_info(self) -> None:
        self._set_info(f"{len(self.clients)} client(s)")

    def _read(self, n: int) -> bytes:
        self._accept_pending()
        buf = b""
        for conn, _ in list(self.clients):
            if len(buf) >= n:
                break
            try:
                data = conn.recv(n - len(buf))
            except (BlockingIOError, InterruptedError):
                continue
            except OSError as e:
                self._drop(conn, str(e))
                continue
            if not data:
                self._drop(conn, "closed by peer")
                continue
            buf += data
        return buf

    def _write(self, data: bytes) -> int:
        self._accept_pending()
        sent = 0
        for conn, _ in list(self.clients):
            try:
                sent = max(sent, conn.send(data))
            except (BlockingIOError, InterruptedError):
                # slow client: this chunk is lost for it only
                continue
            except OSError as e:
                self._drop(conn, str(e))
        return sent

    def _poll(self) -> None:
        self._accept_pending()
