# gnssrelay/transport/base.py
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, ClassVar, Optional

from gnssrelay.common.rate import BitrateMeter
from gnssrelay.model.endpoint import StreamKind

from .errors import TransportError


class StreamState(IntEnum):
    """Connection lifecycle of one stream."""

    ERROR = -1
    CLOSED = 0
    WAITING = 1
    CONNECTING = 2
    ACTIVE = 3

    @property
    def code(self) -> str:
        return _STATE_CODES[self]


_STATE_CODES = {
    StreamState.ERROR: "E",
    StreamState.CLOSED: "-",
    StreamState.WAITING: "W",
    StreamState.CONNECTING: "C",
    StreamState.ACTIVE: "C",
}

_LIVE_STATES = (StreamState.WAITING, StreamState.CONNECTING, StreamState.ACTIVE)


@dataclass(frozen=True)
class TransportStat:
    """Consistent snapshot of one transport's counters, safe to share across threads."""

    state: StreamState
    input_bytes: int
    output_bytes: int
    input_bps: float
    output_bps: float
    last_error: Optional[str] = None
    info: str = ""

    @property
    def bytes(self) -> int:
        return max(self.input_bytes, self.output_bytes)

    @property
    def bitrate(self) -> float:
        return max(self.input_bps, self.output_bps)


class Transport(ABC):
    """
    Abstract stream transport (file, serial, TCP, NTRIP).

    Contract:
      - open() never raises for runtime faults: the outcome is the returned
        state (ERROR on failure, with last_error set).
      - read(n) is non-blocking and returns 0..n bytes, b"" when nothing is
        available. An unrecoverable fault moves the transport to ERROR.
      - write(data) returns the number of bytes accepted (0 while waiting for
        a peer). Faults move the transport to ERROR.
      - state / stat() only read lock-protected fields and may be called from
        any thread.

    Subclasses implement _open/_read/_write/_close and raise TransportError
    (or subclasses) on faults; the template methods here do the state and
    counter bookkeeping.
    """

    kind: ClassVar[StreamKind]
    accepts_commands: ClassVar[bool] = False
    supports_inactivity_timeout: ClassVar[bool] = False

    def __init__(
        self,
        *,
        path: str = "",
        bitrate_window_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = path
        self._clock = clock
        self._log = logger or logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._state = StreamState.CLOSED
        self._in_bytes = 0
        self._out_bytes = 0
        self._in_meter = BitrateMeter(bitrate_window_s, clock=clock)
        self._out_meter = BitrateMeter(bitrate_window_s, clock=clock)
        self._last_activity = clock()
        self._last_error: Optional[str] = None
        self._info = ""

    # ---------------- subclass hooks ----------------
    @abstractmethod
    def _open(self) -> StreamState:
        """Acquire resources; return WAITING, CONNECTING or ACTIVE."""

    @abstractmethod
    def _read(self, n: int) -> bytes: ...

    @abstractmethod
    def _write(self, data: bytes) -> int: ...

    @abstractmethod
    def _close(self) -> None: ...

    def _poll(self) -> None:
        """Advance accept/connect/handshake work when there is nothing to transfer."""

    # ---------------- lifecycle ----------------
    def open(self) -> StreamState:
        with self._lock:
            if self._state in _LIVE_STATES:
                return self._state
            if self._state == StreamState.ERROR:
                # reconnect after an error starts a fresh accounting period
                self._in_bytes = 0
                self._out_bytes = 0
                self._in_meter.reset()
                self._out_meter.reset()
            self._state = StreamState.CONNECTING
            self._last_error = None

        try:
            new_state = self._open()
        except TransportError as e:
            self.fail(str(e))
            return StreamState.ERROR
        except OSError as e:
            self.fail(f"open failed: {e}")
            return StreamState.ERROR

        with self._lock:
            # _open may already have failed or closed the stream through a hook
            if self._state == StreamState.CONNECTING:
                self._state = new_state
            self._last_activity = self._clock()
            state = self._state
        self._log.info("STREAM_OPEN kind=%s path=%s state=%s", self.kind.value, self.path, state.name)
        return state

    def close(self) -> None:
        try:
            self._close()
        except (TransportError, OSError):
            self._log.exception("STREAM_CLOSE_FAILED kind=%s path=%s", self.kind.value, self.path)
        finally:
            with self._lock:
                self._state = StreamState.CLOSED

    def fail(self, reason: str) -> None:
        """Move to ERROR and release resources; the engine reopens later."""
        self._log.warning("STREAM_ERROR kind=%s path=%s err=%s", self.kind.value, self.path, reason)
        try:
            self._close()
        except (TransportError, OSError):
            self._log.debug("STREAM_CLOSE_AFTER_ERROR_FAILED path=%s", self.path, exc_info=True)
        with self._lock:
            self._state = StreamState.ERROR
            self._last_error = reason

    # ---------------- data path ----------------
    def poll(self) -> None:
        if self.state not in _LIVE_STATES:
            return
        try:
            self._poll()
        except TransportError as e:
            self.fail(str(e))
        except OSError as e:
            self.fail(f"poll failed: {e}")

    def read(self, n: int) -> bytes:
        if self.state not in _LIVE_STATES:
            return b""
        try:
            data = self._read(n)
        except TransportError as e:
            self.fail(str(e))
            return b""
        except OSError as e:
            self.fail(f"read failed: {e}")
            return b""

        if data:
            now = self._clock()
            with self._lock:
                self._in_bytes += len(data)
                self._in_meter.add(len(data), now)
                self._last_activity = now
        return data

    def write(self, data: bytes) -> int:
        if not data or self.state not in _LIVE_STATES:
            return 0
        try:
            n = self._write(data)
        except TransportError as e:
            self.fail(str(e))
            return 0
        except OSError as e:
            self.fail(f"write failed: {e}")
            return 0

        if n:
            now = self._clock()
            with self._lock:
                self._out_bytes += n
                self._out_meter.add(n, now)
                self._last_activity = now
        return n

    # ---------------- queries ----------------
    @property
    def state(self) -> StreamState:
        with self._lock:
            return self._state

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    @property
    def at_eof(self) -> bool:
        """True once a finite source is exhausted (files only)."""
        return False

    def idle_for(self, now: Optional[float] = None) -> float:
        t = self._clock() if now is None else now
        with self._lock:
            return t - self._last_activity

    def stat(self) -> TransportStat:
        now = self._clock()
        with self._lock:
            return TransportStat(
                state=self._state,
                input_bytes=self._in_bytes,
                output_bytes=self._out_bytes,
                input_bps=self._in_meter.bitrate(now),
                output_bps=self._out_meter.bitrate(now),
                last_error=self._last_error,
                info=self._info,
            )

    # ---------------- helpers for subclasses ----------------
    def _set_state(self, state: StreamState) -> None:
        with self._lock:
            if self._state == state:
                return
            self._log.info(
                "STREAM_STATE kind=%s path=%s %s->%s",
                self.kind.value,
                self.path,
                self._state.name,
                state.name,
            )
            self._state = state
            # entering ACTIVE counts as activity; staying ACTIVE does not
            if state == StreamState.ACTIVE:
                self._last_activity = self._clock()

    def _set_info(self, info: str) -> None:
        with self._lock:
            self._info = info

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(path={self.path!r}, state={self.state.name})"
