from __future__ import annotations

import gnssrelay.transport.serial_port as serial_mod
from gnssrelay.transport.base import StreamState


class FakeSerial:
    def __init__(self, port, **kwargs):
        self.port = port
        self.kwargs = kwargs
        self.is_open = True

        self._read_chunks = []
        self._raise_on_read = None
        self._raise_on_write = None
        self.written = []

        self.reset_in_called = 0
        self.close_called = 0

    @property
    def in_waiting(self) -> int:
        if self._raise_on_read is not None:
            raise self._raise_on_read
        return len(self._read_chunks[0]) if self._read_chunks else 0

    def reset_input_buffer(self):
        self.reset_in_called += 1

    def read(self, n: int) -> bytes:
        chunk = self._read_chunks.pop(0)
        return chunk[:n]

    def write(self, data: bytes) -> int:
        if self._raise_on_write is not None:
            raise self._raise_on_write
        self.written.append(bytes(data))
        return len(data)

    def close(self) -> None:
        self.close_called += 1
        self.is_open = False


def _patch(monkeypatch):
    created = {}

    def fake_serial_ctor(port, **kwargs):
        s = FakeSerial(port, **kwargs)
        created["ser"] = s
        return s

    monkeypatch.setattr(serial_mod.serial, "Serial", fake_serial_ctor)
    return created


def test_open_is_non_blocking_and_active(monkeypatch):
    created = _patch(monkeypatch)

    t = serial_mod.SerialTransport("/dev/ttyUSB0", baudrate=115200, flow_control="rts")
    assert t.open() == StreamState.ACTIVE

    ser = created["ser"]
    assert t.ser is ser
    assert t.is_open() is True
    assert ser.kwargs["timeout"] == 0
    assert ser.kwargs["baudrate"] == 115200
    assert ser.kwargs["rtscts"] is True
    assert ser.kwargs["xonxoff"] is False
    assert ser.reset_in_called == 1


def test_open_failure_moves_to_error(monkeypatch):
    def fake_serial_ctor(*a, **k):
        raise serial_mod.SerialException("no such port")

    monkeypatch.setattr(serial_mod.serial, "Serial", fake_serial_ctor)

    t = serial_mod.SerialTransport("/dev/ttyS9")
    assert t.open() == StreamState.ERROR
    assert t.state == StreamState.ERROR
    assert "could not open serial port" in t.last_error


def test_read_returns_buffered_bytes_and_counts(monkeypatch):
    created = _patch(monkeypatch)
    t = serial_mod.SerialTransport("/dev/ttyUSB0")
    t.open()
    created["ser"]._read_chunks = [b"\xd3\x00\x13"]

    assert t.read(1024) == b"\xd3\x00\x13"
    assert t.read(1024) == b""
    assert t.stat().input_bytes == 3


def test_read_error_moves_to_error(monkeypatch):
    created = _patch(monkeypatch)
    t = serial_mod.SerialTransport("/dev/ttyUSB0")
    t.open()
    created["ser"]._raise_on_read = serial_mod.SerialException("device unplugged")

    assert t.read(10) == b""
    assert t.state == StreamState.ERROR
    assert "serial read failed" in t.last_error


def test_write_timeout_drops_chunk_but_stays_active(monkeypatch):
    created = _patch(monkeypatch)
    t = serial_mod.SerialTransport("/dev/ttyUSB0")
    t.open()
    created["ser"]._raise_on_write = serial_mod.serial.SerialTimeoutException("write timeout")

    assert t.write(b"abc") == 0
    assert t.state == StreamState.ACTIVE


def test_write_error_moves_to_error(monkeypatch):
    created = _patch(monkeypatch)
    t = serial_mod.SerialTransport("/dev/ttyUSB0")
    t.open()
    assert t.write(b"ok") == 2
    assert created["ser"].written == [b"ok"]

    created["ser"]._raise_on_write = serial_mod.SerialException("io error")
    assert t.write(b"abc") == 0
    assert t.state == StreamState.ERROR
    assert t.stat().output_bytes == 2


def test_close_releases_port(monkeypatch):
    created = _patch(monkeypatch)
    t = serial_mod.SerialTransport("/dev/ttyUSB0")
    t.open()
    t.close()

    assert created["ser"].close_called == 1
    assert t.ser is None
    assert t.state == StreamState.CLOSED
