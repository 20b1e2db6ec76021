# gnssrelay/transport/serial_port.py
from __future__ import annotations

from typing import Any, Optional

import serial
from serial import SerialException

from gnssrelay.model.endpoint import StreamKind

from .base import StreamState, Transport
from .errors import TransportIOError, TransportOpenError

_PARITY = {
    "N": serial.PARITY_NONE,
    "E": serial.PARITY_EVEN,
    "O": serial.PARITY_ODD,
}


class SerialTransport(Transport):
    """
    Serial line transport implemented via pyserial.

    Reads never block: only what is already in the driver buffer is returned.
    Writes are bounded by write_timeout so a stalled line cannot hold up the
    relay loop.
    """

    kind = StreamKind.SERIAL
    accepts_commands = True
    supports_inactivity_timeout = True

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        bytesize: int = 8,
        parity: str = "N",
        stopbits: int = 1,
        flow_control: str = "off",
        write_timeout: float = 0.1,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.flow_control = flow_control
        self.write_timeout = write_timeout
        self.ser: Optional[serial.Serial] = None

    def _open(self) -> StreamState:
        try:
            self.ser = serial.Serial(
                self.port,
                baudrate=self.baudrate,
                bytesize=self.bytesize,
                parity=_PARITY.get(self.parity, serial.PARITY_NONE),
                stopbits=self.stopbits,
                timeout=0,
                write_timeout=self.write_timeout,
                rtscts=self.flow_control == "rts",
                xonxoff=self.flow_control == "xon",
            )
            self.ser.reset_input_buffer()
        except SerialException as e:
            self.ser = None
            raise TransportOpenError(f"could not open serial port {self.port!r}: {e}") from None
        return StreamState.ACTIVE

    def _close(self) -> None:
        if self.ser is not None:
            try:
                self.ser.close()
            finally:
                self.ser = None

    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    def _read(self, n: int) -> bytes:
        if self.ser is None:
            raise TransportIOError("read while transport not open")

        try:
            waiting = self.ser.in_waiting
            if not waiting:
                return b""
            return self.ser.read(min(n, waiting))
        except SerialException as e:
            self.ser = None
            raise TransportIOError(f"serial read failed: {e}") from None

    def _write(self, data: bytes) -> int:
        if self.ser is None:
            raise TransportIOError("write while transport not open")

        try:
            return self.ser.write(data) or 0
        except serial.SerialTimeoutException:
            # line is congested; drop this chunk rather than stall the relay
            self._log.debug("SERIAL_WRITE_TIMEOUT port=%s len=%d", self.port, len(data))
            return 0
        except SerialException as e:
            self.ser = None
            raise TransportIOError(f"serial write failed: {e}") from None
