from __future__ import annotations

import threading
from typing import List

from gnssrelay.model.endpoint import StreamKind, StreamRole
from gnssrelay.runtime.commands import PHASE_START, PHASE_STOP, CommandInjector, CommandScript
from gnssrelay.transport.base import StreamState, Transport


class Receiver(Transport):
    kind = StreamKind.SERIAL
    accepts_commands = True

    def __init__(self, **kwargs):
        super().__init__(path="serial://ttyUSB0", **kwargs)
        self.lines: List[bytes] = []

    def _open(self) -> StreamState:
        return StreamState.ACTIVE

    def _read(self, n: int) -> bytes:
        return b""

    def _write(self, data: bytes) -> int:
        self.lines.append(data)
        return len(data)

    def _close(self) -> None:
        pass


class Sink(Receiver):
    kind = StreamKind.FILE
    accepts_commands = False


def test_parse_sections():
    script = CommandScript.parse(
        "unlogall\nlog bestposb ontime 1\n@\nunlogall\n@output\nhello\n@stop\nbye\n@input\n@stop\nsaveconfig\n"
    )
    assert script.text(StreamRole.INPUT, PHASE_START) == "unlogall\nlog bestposb ontime 1"
    assert script.text(StreamRole.INPUT, PHASE_STOP) == "unlogall\nsaveconfig"
    assert script.text(StreamRole.OUTPUT, PHASE_START) == "hello"
    assert script.text(StreamRole.OUTPUT, PHASE_STOP) == "bye"


def test_empty_script_is_falsy():
    assert not CommandScript.parse("")
    assert not CommandScript.parse("@\n\n@output\n")
    assert CommandScript.parse("x")


def test_injector_skips_comments_and_waits():
    rx = Receiver()
    rx.open()
    cancel = threading.Event()
    cancel.set()  # waits return immediately
    sent = CommandInjector(cancel).send(rx, "# reset first\nFRESET\n\n!WAIT 5000\n  SAVECONFIG  \n!WAIT x\n")

    assert sent == 2
    assert rx.lines == [b"FRESET\r\n", b"SAVECONFIG\r\n"]


def test_injector_ignores_streams_without_commands():
    sink = Sink()
    sink.open()
    assert CommandInjector().send(sink, "FRESET") == 0
    assert sink.lines == []


def test_injector_skips_closed_streams():
    rx = Receiver()
    assert rx.state == StreamState.CLOSED
    assert CommandInjector().send(rx, "FRESET") == 0
    assert rx.lines == []
