# gnssrelay/transport/file.py
from __future__ import annotations

import math
import struct
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, List, Optional, Tuple

from gnssrelay.model.endpoint import StreamKind

from .base import StreamState, Transport
from .errors import TransportIOError, TransportOpenError

TAG_HEADER_SIZE = 64
TAG_MAGIC = b"TIMETAG gnssrelay"
TAG_RECORD = struct.Struct("<IQ")  # (ms since open, file offset after write)
TAG_START = struct.Struct("<d")  # unix time of open, right after the magic

_GPS_EPOCH = datetime(1980, 1, 6, tzinfo=timezone.utc)


def expand_path(template: str, t: datetime) -> str:
    """
    Replace time keywords in a file path:
      %Y yyyy  %y yy  %m mm  %d dd  %h hh  %M min  %S sec
      %n day of year  %W gps week  %D day of week  %H hour code (a..x)
    """
    if "%" not in template:
        return template
    t = t.astimezone(timezone.utc)
    week = int((t - _GPS_EPOCH).total_seconds() // (7 * 86400))
    dow = (t.weekday() + 1) % 7  # sunday = 0, as in gps weeks
    repl = {
        "%Y": f"{t.year:04d}",
        "%y": f"{t.year % 100:02d}",
        "%m": f"{t.month:02d}",
        "%d": f"{t.day:02d}",
        "%h": f"{t.hour:02d}",
        "%M": f"{t.minute:02d}",
        "%S": f"{t.second:02d}",
        "%n": f"{t.timetuple().tm_yday:03d}",
        "%W": f"{week:04d}",
        "%D": f"{dow}",
        "%H": chr(ord("a") + t.hour),
    }
    out = template
    for key, value in repl.items():
        out = out.replace(key, value)
    return out


class FileTransport(Transport):
    """
    File stream.

    Read mode (input): plain sequential reads, or paced playback when a
    time-tag file (<path>.tag) was recorded with '::T'; playback honours the
    start offset and speed multiplier.

    Write mode (output): appends to a path that may contain time keywords;
    with a swap interval the file is replaced by the next one when the wall
    clock reaches the next boundary minus the swap margin.
    """

    kind = StreamKind.FILE

    def __init__(
        self,
        path_template: str,
        mode: str = "r",
        *,
        time_tag: bool = False,
        start_offset_s: float = 0.0,
        speed: float = 1.0,
        swap_interval_h: float = 0.0,
        swap_margin_s: float = 30.0,
        local_dir: str = "",
        wallclock: Callable[[], float] = time.time,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        if mode not in ("r", "w"):
            raise ValueError(f"invalid file mode {mode!r}")
        self.path_template = path_template
        self.mode = mode
        self.time_tag = time_tag
        self.start_offset_s = float(start_offset_s)
        self.speed = float(speed)
        self.swap_interval_s = float(swap_interval_h) * 3600.0
        self.swap_margin_s = float(swap_margin_s)
        self.local_dir = local_dir
        self._wallclock = wallclock

        self.fp: Optional[BinaryIO] = None
        self.tag_fp: Optional[BinaryIO] = None
        self.current_path: Optional[Path] = None
        self._eof = False

        # playback
        self._tags: List[Tuple[int, int]] = []
        self._tag_idx = 0
        self._play_started = 0.0
        self._limit = 0

        # recording
        self._opened_mono = 0.0
        self._next_swap: Optional[float] = None

    # ---------------- paths ----------------
    def _resolve(self, t: float) -> Path:
        name = expand_path(self.path_template, datetime.fromtimestamp(t, tz=timezone.utc))
        path = Path(name).expanduser()
        if self.local_dir and not path.is_absolute():
            path = Path(self.local_dir) / path
        return path

    @staticmethod
    def tag_path(path: Path) -> Path:
        return path.with_name(path.name + ".tag")

    # ---------------- lifecycle ----------------
    def _open(self) -> StreamState:
        self._eof = False
        if self.mode == "r":
            self._open_read()
        else:
            now = self._wallclock()
            self._next_swap = None
            self._open_write(now)
            self._next_swap = self._swap_boundary(now) if self.swap_interval_s > 0 else None
        return StreamState.ACTIVE

    def _open_read(self) -> None:
        path = self._resolve(self._wallclock())
        try:
            self.fp = open(path, "rb")
        except OSError as e:
            raise TransportOpenError(f"could not open file {str(path)!r}: {e}") from None
        self.current_path = path
        self._set_info(path.name)

        self._tags = []
        self._tag_idx = 0
        if self.time_tag:
            self._tags = self._load_tags(self.tag_path(path))
            start_ms = int(self.start_offset_s * 1000)
            # skip data recorded before the start offset
            offset = 0
            while self._tag_idx < len(self._tags) and self._tags[self._tag_idx][0] <= start_ms:
                offset = self._tags[self._tag_idx][1]
                self._tag_idx += 1
            self.fp.seek(offset)
            self._limit = offset
            self._play_started = self._clock()
        elif self.start_offset_s or self.speed != 1.0:
            self._log.info("FILE_PLAYBACK_UNTAGGED path=%s start/speed ignored without ::T", path)

    def _load_tags(self, tag_path: Path) -> List[Tuple[int, int]]:
        try:
            raw = tag_path.read_bytes()
        except OSError as e:
            raise TransportOpenError(f"could not read time tag file {str(tag_path)!r}: {e}") from None
        if len(raw) < TAG_HEADER_SIZE or not raw.startswith(TAG_MAGIC):
            raise TransportOpenError(f"invalid time tag file {str(tag_path)!r}")

        body = raw[TAG_HEADER_SIZE:]
        usable = len(body) - len(body) % TAG_RECORD.size
        return [TAG_RECORD.unpack_from(body, i) for i in range(0, usable, TAG_RECORD.size)]

    def _open_write(self, now: float) -> None:
        # a swapped-in file is named for the period it covers
        name_time = self._next_swap if self._next_swap is not None and now < self._next_swap else now
        path = self._resolve(name_time)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self.fp = open(path, "ab")
            if self.time_tag:
                self.tag_fp = open(self.tag_path(path), "wb")
                header = TAG_MAGIC + TAG_START.pack(now)
                self.tag_fp.write(header.ljust(TAG_HEADER_SIZE, b"\x00"))
        except OSError as e:
            self._close()
            raise TransportOpenError(f"could not open file {str(path)!r}: {e}") from None

        self.current_path = path
        self._opened_mono = self._clock()
        self._set_info(path.name)
        self._log.info("FILE_OPEN_WRITE path=%s time_tag=%s", path, self.time_tag)

    def _swap_boundary(self, now: float) -> float:
        return (math.floor(now / self.swap_interval_s) + 1) * self.swap_interval_s

    def _close(self) -> None:
        for attr in ("fp", "tag_fp"):
            fp = getattr(self, attr)
            if fp is not None:
                try:
                    fp.close()
                finally:
                    setattr(self, attr, None)

    @property
    def at_eof(self) -> bool:
        return self._eof

    # ---------------- data path ----------------
    def _read(self, n: int) -> bytes:
        if self.mode != "r":
            raise TransportIOError("read on a file opened for writing")
        if self.fp is None:
            raise TransportIOError("read while transport not open")

        if self.time_tag:
            n = self._playback_budget(n)
            if n <= 0:
                if self._tag_idx >= len(self._tags):
                    self._mark_eof()
                return b""

        try:
            data = self.fp.read(n)
        except OSError as e:
            raise TransportIOError(f"file read failed: {e}") from None

        if not data and (not self.time_tag or self._tag_idx >= len(self._tags)):
            self._mark_eof()
        return data

    def _mark_eof(self) -> None:
        if not self._eof:
            self._log.info("FILE_EOF path=%s", self.current_path)
        self._eof = True

    def _playback_budget(self, n: int) -> int:
        elapsed_ms = (self._clock() - self._play_started) * 1000.0 * self.speed + self.start_offset_s * 1000.0
        while self._tag_idx < len(self._tags) and self._tags[self._tag_idx][0] <= elapsed_ms:
            self._limit = self._tags[self._tag_idx][1]
            self._tag_idx += 1
        assert self.fp is not None
        return min(n, self._limit - self.fp.tell())

    def _write(self, data: bytes) -> int:
        if self.mode != "w":
            raise TransportIOError("write on a file opened for reading")

        if self._next_swap is not None:
            now = self._wallclock()
            if now >= self._next_swap - self.swap_margin_s:
                self._swap(now)

        if self.fp is None:
            raise TransportIOError("write while transport not open")
        try:
            self.fp.write(data)
            self.fp.flush()
            if self.tag_fp is not None:
                tick = int((self._clock() - self._opened_mono) * 1000.0)
                self.tag_fp.write(TAG_RECORD.pack(tick & 0xFFFFFFFF, self.fp.tell()))
                self.tag_fp.flush()
        except OSError as e:
            raise TransportIOError(f"file write failed: {e}") from None
        return len(data)

    def _swap(self, now: float) -> None:
        assert self._next_swap is not None
        old = self.current_path
        self._close()
        self._open_write(now)
        self._log.info("FILE_SWAP old=%s new=%s", old, self.current_path)
        self._next_swap = self._swap_boundary(max(now, self._next_swap))
