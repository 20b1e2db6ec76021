# gnssrelay/convert/converter.py
from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional

from gnssrelay.core.errors import FormatError
from gnssrelay.model.msg_filter import MessageFilter
from gnssrelay.protocol.base import Message, StationOverrides
from gnssrelay.protocol.registry import FormatRegistry

# repeat interval for synthesized station messages listed without an interval
STATION_DEFAULT_INTERVAL_S = 10.0


class FormatConverter:
    """
    Per-output protocol conversion: decode -> filter -> override -> encode.

    feed() accepts raw input bytes in any chunking and returns the encoded
    frames ready to write. Rate limiting is per message type and measured on
    the injected clock: a message is emitted when at least the filter
    interval has passed since the last emitted message of the same type.
    """

    def __init__(
        self,
        input_format: str,
        output_format: str,
        msg_filter: MessageFilter,
        overrides: Optional[StationOverrides] = None,
        *,
        receiver_options: str = "",
        registry: Optional[FormatRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        reg = registry or FormatRegistry.default()
        self._log = logger or logging.getLogger(__name__)
        self.input_format = reg.get(input_format).name
        self.output_format = reg.check_output(output_format).name
        self.decoder = reg.create_decoder(input_format, options=receiver_options, logger=self._log)
        self.encoder = reg.create_encoder(output_format, logger=self._log)
        self.msg_filter = msg_filter
        self.overrides = overrides or StationOverrides()
        self._clock = clock

        self._last_emit: Dict[str, float] = {}
        self._status = ""
        self._closed = False
        self.emitted = 0
        self.dropped = 0

    @property
    def status_message(self) -> str:
        """Latest emitted message as 'type(size)', '' before the first one."""
        return self._status

    @property
    def closed(self) -> bool:
        return self._closed

    def feed(self, raw: bytes) -> List[bytes]:
        if self._closed:
            raise RuntimeError("feed() on a closed converter")

        now = self._clock()
        out: List[bytes] = []
        for msg in self.decoder.decode(raw):
            data = self._convert(msg, now)
            if data is not None:
                out.append(data)
        out.extend(self._station_messages(now))
        return out

    def close(self) -> bytes:
        """Flush buffered partial output; further feed() calls are an error."""
        if self._closed:
            return b""
        self._closed = True
        tail = self.encoder.flush()
        self._log.debug(
            "CONVERTER_CLOSE in=%s out=%s emitted=%d dropped=%d discarded_bytes=%d",
            self.input_format,
            self.output_format,
            self.emitted,
            self.dropped,
            self.decoder.discarded,
        )
        return tail

    # ---------------- internals ----------------
    def _convert(self, msg: Message, now: float) -> Optional[bytes]:
        # filters and rate limits apply to the type as emitted
        mtype = self.encoder.output_type(msg)
        if mtype is None or not self.msg_filter.allows(mtype) or not self._due(mtype, now):
            self.dropped += 1
            return None

        data = self.encoder.encode(msg, self.overrides)
        if data is None:
            # not representable in the output protocol
            self.dropped += 1
            return None

        self._emitted(mtype, data, now)
        return data

    def _station_messages(self, now: float) -> List[bytes]:
        out: List[bytes] = []
        for mtype in self.encoder.station_types():
            interval = self.msg_filter.interval(mtype)
            if interval is None:
                continue
            if not self._due(mtype, now, interval or STATION_DEFAULT_INTERVAL_S):
                continue
            data = self.encoder.station_message(mtype, self.overrides)
            if data is not None:
                self._emitted(mtype, data, now)
                out.append(data)
        return out

    def _due(self, mtype: str, now: float, interval: Optional[float] = None) -> bool:
        if interval is None:
            interval = self.msg_filter.interval(mtype) or 0.0
        last = self._last_emit.get(mtype)
        return last is None or interval <= 0 or now - last >= interval

    def _emitted(self, mtype: str, data: bytes, now: float) -> None:
        self._last_emit[mtype] = now
        self._status = f"{mtype}({len(data)})"
        self.emitted += 1


def converter_for(
    input_format: Optional[str],
    output_format: Optional[str],
    msg_filter: MessageFilter,
    overrides: Optional[StationOverrides] = None,
    **kwargs,
) -> Optional[FormatConverter]:
    """
    Converter for one output, or None when the output is relayed raw.

    An output format requires an input format to convert from.
    """
    if not output_format:
        return None
    if not input_format:
        raise FormatError(
            f"Output format '#{output_format}' requires a format on the input stream.",
            hint="Tag the input path too, e.g. serial://ttyUSB0:115200#ubx",
            details={"output_format": output_format},
        )
    return FormatConverter(input_format, output_format, msg_filter, overrides, **kwargs)
