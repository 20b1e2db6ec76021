# gnssrelay/runtime/relay_server.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from gnssrelay.convert.converter import FormatConverter, converter_for
from gnssrelay.core.errors import ConfigError, FormatError, ServerStateError
from gnssrelay.model.endpoint import Endpoint, StreamKind, StreamRole, parse_path
from gnssrelay.model.msg_filter import MessageFilter
from gnssrelay.protocol.base import StationOverrides
from gnssrelay.protocol.registry import FormatRegistry
from gnssrelay.runtime.commands import PHASE_START, PHASE_STOP, CommandInjector, CommandScript
from gnssrelay.runtime.nmea import gga_sentence
from gnssrelay.runtime.relay_worker import RelayWorker
from gnssrelay.runtime.state import ServerStatus, StreamStatus
from gnssrelay.transport.base import StreamState, Transport
from gnssrelay.transport.factory import TransportFactory, TransportOptions

MAX_OUTPUTS = 4

# input kinds that take a GGA position request
_NMEA_KINDS = (StreamKind.SERIAL, StreamKind.TCP_CLIENT, StreamKind.NTRIP_CLIENT)


@dataclass(frozen=True)
class RelayOptions:
    """Timing and sizing shared by the whole relay."""

    timeout_ms: int = 10000
    reconnect_ms: int = 10000
    bitrate_window_ms: int = 2000
    buffer_size: int = 32768
    cycle_ms: int = 10
    nmea_cycle_ms: int = 0
    swap_margin_s: float = 30.0
    stop_on_eof: bool = False


@dataclass
class _Output:
    index: int
    endpoint: Endpoint
    transport: Optional[Transport] = None
    converter: Optional[FormatConverter] = None


class RelayServer:
    """
    One input stream fanned out to 1..MAX_OUTPUTS output streams.

    All transport I/O happens on the thread running the loop (the
    RelayWorker, or the caller of run()/step()); that thread is the only
    reader of the input. snapshot() and send_commands() are safe from other
    threads.

    Per output, a failure moves only that output to ERROR; it is reopened
    after the reconnect interval while the others keep flowing.
    """

    def __init__(
        self,
        input_endpoint: Union[str, Endpoint],
        output_endpoints: Sequence[Union[str, Endpoint]],
        *,
        options: Optional[RelayOptions] = None,
        msg_filter: Optional[MessageFilter] = None,
        overrides: Optional[StationOverrides] = None,
        commands: Union[CommandScript, str, None] = None,
        receiver_options: str = "",
        transport_factory: Optional[TransportFactory] = None,
        formats: Optional[FormatRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.options = options or RelayOptions()
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock

        self.input_endpoint = _endpoint(input_endpoint)
        outs = [_endpoint(p) for p in output_endpoints]
        if not outs:
            raise ConfigError("No output stream configured.", hint="Give at least one output path.")
        if len(outs) > MAX_OUTPUTS:
            raise ConfigError(
                f"Too many output streams: {len(outs)} (max {MAX_OUTPUTS}).",
                details={"outputs": [o.render() for o in outs]},
            )

        self.msg_filter = msg_filter if msg_filter is not None else MessageFilter.parse("1004,1019")
        self.overrides = overrides or StationOverrides()
        self.commands = commands if isinstance(commands, CommandScript) else CommandScript.parse(commands or "")
        self.receiver_options = receiver_options
        self._formats = formats or FormatRegistry.default()
        self._factory = transport_factory or TransportFactory(
            TransportOptions(
                timeout_ms=self.options.timeout_ms,
                swap_margin_s=self.options.swap_margin_s,
                bitrate_window_ms=self.options.bitrate_window_ms,
                clock=clock,
            )
        )

        self._check_formats(outs)

        # output indices are fixed here: 1..N, input is 0
        self._outputs: Dict[int, _Output] = {i: _Output(i, ep) for i, ep in enumerate(outs, start=1)}
        self._input: Optional[Transport] = None

        self._cancel = threading.Event()
        self._state_lock = threading.Lock()
        self._io_lock = threading.RLock()
        self._injector = CommandInjector(self._cancel, logger=self._log)
        # stop commands run after cancellation, so their waits need their own event
        self._stop_injector = CommandInjector(logger=self._log)
        self._worker: Optional[RelayWorker] = None
        self._running = False
        self._started_at: Optional[float] = None

        self._error_since: Dict[int, float] = {}
        self._pending_start: Dict[int, str] = {}
        self._last_nmea: Optional[float] = None

    # ---------------- validation ----------------
    def _check_formats(self, outs: List[Endpoint]) -> None:
        in_fmt = self.input_endpoint.format
        if in_fmt:
            self._formats.get(in_fmt)
        for ep in outs:
            if not ep.format:
                continue
            self._formats.check_output(ep.format)
            if not in_fmt:
                raise FormatError(
                    f"Output '{ep.render()}' requests conversion but the input has no format.",
                    hint="Tag the input path too, e.g. serial://ttyUSB0:115200#ubx",
                    details={"output": ep.render()},
                )
            if self._formats.get(in_fmt).decoder is None:
                raise FormatError(
                    f"Format '{in_fmt}' cannot be converted; it can only be relayed raw.",
                    hint="Remove the '#format' tag from the outputs.",
                    details={"input_format": in_fmt, "output": ep.render()},
                )

    # ---------------- properties ----------------
    @property
    def running(self) -> bool:
        with self._state_lock:
            return self._running

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    @property
    def output_indices(self) -> Tuple[int, ...]:
        return tuple(self._outputs)

    @property
    def input_transport(self) -> Optional[Transport]:
        return self._input

    def output_transport(self, index: int) -> Optional[Transport]:
        return self._output(index).transport

    def converter(self, index: int) -> Optional[FormatConverter]:
        return self._output(index).converter

    # ---------------- lifecycle ----------------
    def start(self, background: bool = True) -> None:
        """
        Build and open every stream, then send the start commands.
        With background=True the loop runs on a RelayWorker thread;
        otherwise the caller drives it with run() or step().
        """
        with self._state_lock:
            if self._running:
                raise ServerStateError("Relay server already running.")

        # everything is constructed before anything is opened
        self._input = self._factory.create(self.input_endpoint, StreamRole.INPUT)
        for out in self._outputs.values():
            out.transport = self._factory.create(out.endpoint, StreamRole.OUTPUT)
            out.converter = converter_for(
                self.input_endpoint.format,
                out.endpoint.format,
                self.msg_filter,
                self.overrides,
                receiver_options=self.receiver_options,
                registry=self._formats,
                clock=self._clock,
                logger=self._log,
            )

        self._cancel.clear()
        self._error_since.clear()
        self._pending_start.clear()
        self._last_nmea = None
        self._started_at = self._clock()

        self._log.info(
            "SERVER_START input=%s outputs=%s filter=%s",
            self.input_endpoint.render(),
            [o.endpoint.render() for o in self._outputs.values()],
            self.msg_filter.render(),
        )
        with self._io_lock:
            self._open(0, self._input)
            for index, out in self._outputs.items():
                assert out.transport is not None
                self._open(index, out.transport)

            text = self.commands.text(StreamRole.INPUT, PHASE_START)
            if text:
                self._pending_start[0] = text
            text = self.commands.text(StreamRole.OUTPUT, PHASE_START)
            if text:
                for index in self._outputs:
                    self._pending_start[index] = text
            self._flush_start_commands()

        with self._state_lock:
            self._running = True

        if background:
            self._worker = RelayWorker(self)
            self._worker.start()

    def stop(self) -> None:
        """Stop the loop, send stop commands, close outputs in index order, then the input."""
        with self._state_lock:
            if not self._running:
                return
            self._running = False

        self._cancel.set()
        worker, self._worker = self._worker, None
        if worker is not None and worker is not threading.current_thread():
            worker.join()

        with self._io_lock:
            assert self._input is not None
            self._stop_injector.send(self._input, self.commands.text(StreamRole.INPUT, PHASE_STOP))
            out_stop = self.commands.text(StreamRole.OUTPUT, PHASE_STOP)
            for out in self._outputs.values():
                if out.transport is not None:
                    self._stop_injector.send(out.transport, out_stop)

            for out in self._outputs.values():
                if out.converter is not None:
                    tail = out.converter.close()
                    if tail and out.transport is not None:
                        out.transport.write(tail)

            for index, out in self._outputs.items():
                if out.transport is not None:
                    out.transport.close()
                    self._log.info("STREAM_CLOSED index=%d path=%s", index, out.endpoint.render())
            self._input.close()
            self._log.info("STREAM_CLOSED index=0 path=%s", self.input_endpoint.render())

        self._log.info("SERVER_STOP elapsed_s=%.1f", self.snapshot().elapsed_s)

    def run(self) -> None:
        """Loop until the cancel event is set (or the file input ends with stop_on_eof)."""
        if self._input is None:
            raise ServerStateError("Relay server not started.")
        cycle_s = self.options.cycle_ms / 1000.0
        while not self._cancel.is_set():
            try:
                n = self.step()
            except Exception:
                self._log.exception("RELAY_STEP_EXCEPTION")
                self._cancel.wait(cycle_s)
                continue

            if self.options.stop_on_eof and self._input is not None and self._input.at_eof:
                self._log.info("INPUT_EOF path=%s", self.input_endpoint.render())
                self._cancel.set()
                break
            if not n:
                self._cancel.wait(cycle_s)

    def step(self) -> int:
        """One loop iteration; returns the number of input bytes relayed."""
        if self._input is None:
            raise ServerStateError("Relay server not started.")

        with self._io_lock:
            data = self._input.read(self.options.buffer_size)
            if data:
                for out in self._outputs.values():
                    self._deliver(out, data)
            else:
                self._input.poll()

            for out in self._outputs.values():
                assert out.transport is not None
                out.transport.poll()

            now = self._clock()
            self._reconnect(now)
            self._check_timeouts(now)
            self._flush_start_commands()
            self._request_nmea(now)
        return len(data)

    # ---------------- commands / status ----------------
    def send_commands(self, text: str, index: int = 0) -> int:
        """Send command lines to stream `index` (0 = input). Returns lines sent."""
        with self._state_lock:
            if not self._running:
                raise ServerStateError("Relay server not running.")
        transport = self._input if index == 0 else self._output(index).transport
        assert transport is not None
        with self._io_lock:
            return self._injector.send(transport, text)

    def snapshot(self) -> ServerStatus:
        running = self.running
        elapsed = self._clock() - self._started_at if self._started_at is not None else 0.0
        streams = [self._stream_status(0, StreamRole.INPUT, self.input_endpoint, self._input, None)]
        for index, out in self._outputs.items():
            streams.append(self._stream_status(index, StreamRole.OUTPUT, out.endpoint, out.transport, out.converter))
        return ServerStatus(running=running, elapsed_s=elapsed, streams=streams)

    @staticmethod
    def _stream_status(
        index: int,
        role: StreamRole,
        endpoint: Endpoint,
        transport: Optional[Transport],
        converter: Optional[FormatConverter],
    ) -> StreamStatus:
        if transport is None:
            return StreamStatus(index=index, role=role, path=endpoint.render(), state=StreamState.CLOSED)
        st = transport.stat()
        return StreamStatus(
            index=index,
            role=role,
            path=endpoint.render(),
            state=st.state,
            bytes=st.bytes,
            bitrate_bps=st.bitrate,
            message=converter.status_message if converter is not None else "",
            last_error=st.last_error,
        )

    # ---------------- internals ----------------
    def _output(self, index: int) -> _Output:
        try:
            return self._outputs[index]
        except KeyError:
            raise ConfigError(
                f"No output stream with index {index}.",
                details={"indices": list(self._outputs)},
            ) from None

    def _transports(self) -> List[Tuple[int, Transport]]:
        assert self._input is not None
        items: List[Tuple[int, Transport]] = [(0, self._input)]
        for index, out in self._outputs.items():
            assert out.transport is not None
            items.append((index, out.transport))
        return items

    def _open(self, index: int, transport: Transport) -> None:
        state = transport.open()
        if state == StreamState.ERROR:
            self._error_since[index] = self._clock()
            self._log.warning(
                "STREAM_OPEN_FAILED index=%d path=%s err=%s",
                index,
                transport.path,
                transport.last_error,
            )

    def _deliver(self, out: _Output, data: bytes) -> None:
        transport = out.transport
        assert transport is not None
        if out.converter is None:
            chunks = [data]
        else:
            try:
                chunks = out.converter.feed(data)
            except ValueError as e:
                self._log.warning("CONVERT_FAILED index=%d err=%s", out.index, e)
                return
        for chunk in chunks:
            transport.write(chunk)
            if transport.state == StreamState.ERROR:
                break

    def _reconnect(self, now: float) -> None:
        interval = self.options.reconnect_ms / 1000.0
        for index, transport in self._transports():
            if transport.state != StreamState.ERROR:
                self._error_since.pop(index, None)
                continue
            since = self._error_since.setdefault(index, now)
            if now - since < interval:
                continue
            self._log.info("STREAM_RECONNECT index=%d path=%s", index, transport.path)
            self._error_since.pop(index, None)
            self._open(index, transport)
            if index == 0:
                text = self.commands.text(StreamRole.INPUT, PHASE_START)
            else:
                text = self.commands.text(StreamRole.OUTPUT, PHASE_START)
            if text:
                self._pending_start[index] = text

    def _check_timeouts(self, now: float) -> None:
        if self.options.timeout_ms <= 0:
            return
        timeout = self.options.timeout_ms / 1000.0
        assert self._input is not None
        input_idle = self._input.idle_for(now)

        for index, transport in self._transports():
            if not transport.supports_inactivity_timeout or transport.state != StreamState.ACTIVE:
                continue
            idle = transport.idle_for(now)
            # an output is only stale if the input produced data after its last activity
            if index != 0 and input_idle >= idle:
                continue
            if idle > timeout:
                self._log.warning("STREAM_TIMEOUT index=%d path=%s idle_ms=%d", index, transport.path, idle * 1000)
                transport.fail(f"no activity for {idle * 1000:.0f} ms")
                self._error_since[index] = now

    def _flush_start_commands(self) -> None:
        for index, transport in self._transports():
            text = self._pending_start.get(index)
            if text is None:
                continue
            if transport.state not in (StreamState.ACTIVE, StreamState.WAITING):
                continue
            del self._pending_start[index]
            self._injector.send(transport, text)

    def _request_nmea(self, now: float) -> None:
        llh = self.overrides.position_llh
        cycle = self.options.nmea_cycle_ms / 1000.0
        if cycle <= 0 or llh is None or self._input is None:
            return
        if self._input.kind not in _NMEA_KINDS or self._input.state != StreamState.ACTIVE:
            return
        if self._last_nmea is not None and now - self._last_nmea < cycle:
            return
        self._last_nmea = now
        n = self._input.write(gga_sentence(llh))
        self._log.debug("NMEA_REQUEST_SENT path=%s bytes=%d", self._input.path, n)

    def __enter__(self) -> "RelayServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


def _endpoint(p: Union[str, Endpoint]) -> Endpoint:
    return p if isinstance(p, Endpoint) else parse_path(p)
