# gnssrelay/runtime/commands.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from gnssrelay.model.endpoint import StreamRole
from gnssrelay.transport.base import StreamState, Transport

PHASE_START = "start"
PHASE_STOP = "stop"

WAIT_PREFIX = "!WAIT"


@dataclass(frozen=True)
class CommandScript:
    """
    Receiver command text split by role and phase.

    Marker lines start with '@':
      '@'                  start phase -> stop phase
      '@input' '@output'   select role, phase back to start
      '@start' '@stop'     select phase
    Text before any marker is input/start.
    """

    sections: Dict[Tuple[StreamRole, str], str] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> "CommandScript":
        buckets: Dict[Tuple[StreamRole, str], List[str]] = {}
        role = StreamRole.INPUT
        phase = PHASE_START
        for line in (text or "").splitlines():
            marker = line.strip()
            if marker.startswith("@"):
                word = marker[1:].strip().lower()
                if word == "":
                    phase = PHASE_STOP if phase == PHASE_START else PHASE_START
                elif word in (StreamRole.INPUT.value, StreamRole.OUTPUT.value):
                    role = StreamRole(word)
                    phase = PHASE_START
                elif word in (PHASE_START, PHASE_STOP):
                    phase = word
                else:
                    # unknown markers act like a bare '@'
                    phase = PHASE_STOP if phase == PHASE_START else PHASE_START
                continue
            buckets.setdefault((role, phase), []).append(line)

        sections = {k: "\n".join(v).strip("\n") for k, v in buckets.items()}
        return cls({k: v for k, v in sections.items() if v.strip()})

    def text(self, role: StreamRole, phase: str) -> str:
        return self.sections.get((role, phase), "")

    def __bool__(self) -> bool:
        return bool(self.sections)


class CommandInjector:
    """
    Sends command text line by line to a transport.

    '#' lines are comments; '!WAIT ms' pauses (interruptible through the
    cancellation event). Every other line is sent with a CR LF terminator.
    """

    def __init__(self, cancel: Optional[threading.Event] = None, logger: Optional[logging.Logger] = None):
        self._cancel = cancel or threading.Event()
        self._log = logger or logging.getLogger(__name__)

    def send(self, transport: Transport, text: str) -> int:
        """Return the number of command lines written."""
        if not text or not transport.accepts_commands:
            return 0

        sent = 0
        for raw in text.splitlines():
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line.upper().startswith(WAIT_PREFIX):
                self._wait(line)
                continue
            if transport.state not in (StreamState.ACTIVE, StreamState.WAITING):
                self._log.warning("CMD_SKIPPED path=%s state=%s line=%r", transport.path, transport.state.name, line)
                continue
            n = transport.write(line.encode("ascii", "replace") + b"\r\n")
            self._log.debug("CMD_SENT path=%s bytes=%d line=%r", transport.path, n, line)
            sent += 1
        return sent

    def _wait(self, line: str) -> None:
        arg = line[len(WAIT_PREFIX):].strip()
        try:
            ms = int(arg)
        except ValueError:
            self._log.warning("CMD_BAD_WAIT line=%r", line)
            return
        if ms > 0:
            self._cancel.wait(ms / 1000.0)
