# gnssrelay/protocol/base.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, Optional, Tuple

# Undecodable bytes are dropped once the buffer grows past this without a frame.
MAX_BUFFER = 65536


@dataclass(frozen=True)
class Message:
    """
    One decoded protocol message.

    type is the message type as used in message filters ("1004", "NAV-PVT").
    frame holds the complete wire frame, payload the body without framing.
    """

    protocol: str
    type: str
    payload: bytes
    frame: bytes
    station_id: Optional[int] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.frame)


@dataclass(frozen=True)
class StationOverrides:
    """
    Station metadata that replaces the values carried by decoded messages.
    Unset (None) fields leave native values untouched.
    """

    station_id: Optional[int] = None
    position_llh: Optional[Tuple[float, float, float]] = None
    antenna_offset_enu: Optional[Tuple[float, float, float]] = None
    antenna_descriptor: Optional[str] = None
    antenna_setup_id: Optional[int] = None
    antenna_serial: Optional[str] = None
    receiver_type: Optional[str] = None
    receiver_firmware: Optional[str] = None
    receiver_serial: Optional[str] = None

    @property
    def has_antenna(self) -> bool:
        return self.antenna_descriptor is not None

    @property
    def has_receiver(self) -> bool:
        return self.receiver_type is not None

    @classmethod
    def from_info(
        cls,
        *,
        station_id: Optional[int] = None,
        position_llh: Optional[Tuple[float, float, float]] = None,
        antenna_offset_enu: Optional[Tuple[float, float, float]] = None,
        antenna_info: str = "",
        receiver_info: str = "",
    ) -> "StationOverrides":
        """
        Build from comma separated descriptor strings:
          antenna_info  'descriptor[,setup_id[,serial]]'
          receiver_info 'type[,firmware[,serial]]'
        """
        ant = [s.strip() for s in antenna_info.split(",")] if antenna_info else []
        rcv = [s.strip() for s in receiver_info.split(",")] if receiver_info else []

        setup_id: Optional[int] = None
        if len(ant) > 1 and ant[1]:
            try:
                setup_id = int(ant[1])
            except ValueError:
                raise ValueError(f"antenna setup id must be an integer: {ant[1]!r}") from None

        return cls(
            station_id=station_id,
            position_llh=position_llh,
            antenna_offset_enu=antenna_offset_enu,
            antenna_descriptor=ant[0] if ant else None,
            antenna_setup_id=setup_id,
            antenna_serial=ant[2] if len(ant) > 2 else None,
            receiver_type=rcv[0] if rcv else None,
            receiver_firmware=rcv[1] if len(rcv) > 1 else None,
            receiver_serial=rcv[2] if len(rcv) > 2 else None,
        )


class StreamDecoder(ABC):
    """
    Incremental decoder: bytes may arrive in any chunking; state survives
    between feed() calls. Malformed input never raises: the offending bytes
    are dropped and decoding resumes at the next candidate sync pattern.
    """

    name: ClassVar[str]
    sync: ClassVar[bytes]

    def __init__(self, options: str = "", logger: Optional[logging.Logger] = None):
        self.options = options
        self.buffer = bytearray()
        self._log = logger or logging.getLogger(__name__)
        self.decoded = 0
        self.discarded = 0

    # ---------------- Public API ----------------
    def feed(self, data: bytes) -> None:
        """Feed raw bytes into the decoder buffer."""
        self.buffer.extend(data)
        if len(self.buffer) > MAX_BUFFER:
            drop = len(self.buffer) - MAX_BUFFER
            del self.buffer[:drop]
            self.discarded += drop

    def messages(self) -> Iterator[Message]:
        """Lazily yield every complete message currently buffered."""
        while True:
            msg = self.get_message()
            if msg is None:
                return
            yield msg

    def decode(self, data: bytes) -> Iterator[Message]:
        self.feed(data)
        return self.messages()

    def get_message(self) -> Optional[Message]:
        """Parse and return the next complete message, if available."""
        while True:
            if not self._sync():
                return None

            length = self._frame_length(self.buffer)
            if length is None:
                return None  # wait for more header bytes
            if length < 0:
                self._skip(1, "bad header")
                continue
            if len(self.buffer) < length:
                return None  # wait for more bytes

            frame = bytes(self.buffer[:length])
            if not self._check(frame):
                self._skip(1, "checksum mismatch")
                continue

            del self.buffer[:length]
            try:
                msg = self._build(frame)
            except (ValueError, IndexError) as e:
                self._log.debug("DECODE_BUILD_FAILED proto=%s len=%d err=%s", self.name, length, e)
                self.discarded += length
                continue

            self.decoded += 1
            return msg

    # ---------------- Protocol hooks ----------------
    @abstractmethod
    def _frame_length(self, buf: bytearray) -> Optional[int]:
        """Total frame length from the header, None if incomplete, -1 if invalid."""

    @abstractmethod
    def _check(self, frame: bytes) -> bool: ...

    @abstractmethod
    def _build(self, frame: bytes) -> Message: ...

    # ---------------- Helpers ----------------
    def _sync(self) -> bool:
        """Locate the first sync pattern in the buffer and discard preceding bytes."""
        idx = self.buffer.find(self.sync)
        if idx < 0:
            # keep a possible partial sync pattern at the tail
            keep = len(self.sync) - 1
            drop = len(self.buffer) - keep if keep else len(self.buffer)
            if drop > 0:
                del self.buffer[:drop]
                self.discarded += drop
            return False
        if idx > 0:
            del self.buffer[:idx]
            self.discarded += idx
        return True

    def _skip(self, n: int, reason: str) -> None:
        self._log.debug("DECODE_RESYNC proto=%s reason=%s", self.name, reason)
        del self.buffer[:n]
        self.discarded += n


class MessageEncoder(ABC):
    """Re-encodes decoded messages into a target protocol."""

    name: ClassVar[str]

    def __init__(self, options: str = "", logger: Optional[logging.Logger] = None):
        self.options = options
        self._log = logger or logging.getLogger(__name__)

    @abstractmethod
    def encode(self, msg: Message, overrides: StationOverrides) -> Optional[bytes]:
        """Return the encoded frame, or None if msg cannot be represented."""

    def output_type(self, msg: Message) -> Optional[str]:
        """Type msg is emitted as (what filters and rate limits see), None if not representable."""
        return msg.type

    def station_types(self) -> Tuple[str, ...]:
        """Message types this encoder can synthesize from station overrides."""
        return ()

    def station_message(self, mtype: str, overrides: StationOverrides) -> Optional[bytes]:
        return None

    def flush(self) -> bytes:
        """Emit anything held back; called once when the converter closes."""
        return b""
