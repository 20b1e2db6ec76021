# gnssrelay/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from gnssrelay.model.endpoint import StreamRole
from gnssrelay.transport.base import StreamState


@dataclass(frozen=True)
class StreamStatus:
    """
    Runtime status of one stream (input index 0, outputs 1..N).
    """
    index: int
    role: StreamRole
    path: str
    state: StreamState
    bytes: int = 0
    bitrate_bps: float = 0.0
    message: str = ""
    last_error: Optional[str] = None

    @property
    def code(self) -> str:
        return self.state.code


@dataclass(frozen=True)
class ServerStatus:
    """
    A snapshot of the full relay status, safe to share across threads.
    """
    running: bool
    elapsed_s: float
    streams: List[StreamStatus]

    @property
    def input(self) -> StreamStatus:
        return self.streams[0]

    @property
    def outputs(self) -> List[StreamStatus]:
        return self.streams[1:]

    def state_codes(self) -> str:
        """One state character per stream, input first: e.g. 'CCWE'."""
        return "".join(s.code for s in self.streams)

    def format_line(self) -> str:
        """
        Console status line:
          <elapsed> [CCW-] <input bytes> B <input bps> bps <out1 msg> ...
        """
        h, rem = divmod(int(self.elapsed_s), 3600)
        m, s = divmod(rem, 60)
        inp = self.input
        parts = [
            f"{h:02d}:{m:02d}:{s:02d}",
            f"[{self.state_codes()}]",
            f"{inp.bytes:10d} B",
            f"{inp.bitrate_bps:7.0f} bps",
        ]
        for out in self.outputs:
            if out.message:
                parts.append(f"(o{out.index}) {out.message}")
        return " ".join(parts)
