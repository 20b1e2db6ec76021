# gnssrelay/common/rate.py
from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Optional, Tuple


class BitrateMeter:
    """
    Moving bitrate over a fixed window.

    add() records byte counts as they are transferred; bitrate() sums the
    samples younger than the window and divides by the window length, so
    bursty transports read as a smoothed rate. Not thread-safe on its own:
    callers hold the owning transport's lock.
    """

    def __init__(self, window_s: float = 2.0, clock: Callable[[], float] = time.monotonic):
        if window_s <= 0:
            raise ValueError("window_s must be positive")
        self.window_s = float(window_s)
        self._clock = clock
        self._samples: Deque[Tuple[float, int]] = deque()
        self._in_window = 0

    def add(self, nbytes: int, now: Optional[float] = None) -> None:
        if nbytes <= 0:
            return
        t = self._clock() if now is None else now
        self._samples.append((t, int(nbytes)))
        self._in_window += int(nbytes)
        self._expire(t)

    def bitrate(self, now: Optional[float] = None) -> float:
        t = self._clock() if now is None else now
        self._expire(t)
        return self._in_window * 8.0 / self.window_s

    def reset(self) -> None:
        self._samples.clear()
        self._in_window = 0

    def _expire(self, now: float) -> None:
        horizon = now - self.window_s
        while self._samples and self._samples[0][0] <= horizon:
            _, n = self._samples.popleft()
            self._in_window -= n
