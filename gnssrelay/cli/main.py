# gnssrelay/cli/main.py
from __future__ import annotations

import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from gnssrelay.app.config import RelayConfig
from gnssrelay.app.runner import build_server
from gnssrelay.cli.args import config_from_args, parse_args
from gnssrelay.core.errors import RelayError
from gnssrelay.runtime.relay_server import RelayServer

TRACE_FILE = "gnssrelay.trace"


# ---------------- Logging ----------------

def trace_level_to_logging(level: int) -> int:
    if level <= 0:
        return logging.WARNING
    if level <= 2:
        return logging.INFO
    return logging.DEBUG


def configure_logging(trace_level: int, trace_path: Path = Path(TRACE_FILE)) -> None:
    """
    Console warnings always; a trace file handler when trace_level > 0 (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    level = trace_level_to_logging(trace_level)
    if not root.handlers:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.WARNING)
        console.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        root.addHandler(console)
    root.setLevel(level)

    if trace_level <= 0:
        return

    target = str(trace_path.resolve())
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(trace_path, encoding="utf-8", delay=True)
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(fh)


# ---------------- Run loop ----------------

def run_until_interrupted(server: RelayServer, cfg: RelayConfig) -> int:
    cancel = server.cancel_event

    def _on_signal(signum, frame) -> None:
        cancel.set()

    signal.signal(signal.SIGINT, _on_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _on_signal)

    print("stream server start", file=sys.stderr)
    server.start(background=True)
    try:
        interval_s = max(cfg.display_interval_ms, 100) / 1000.0
        while not cancel.is_set():
            print(server.snapshot().format_line(), file=sys.stderr)
            cancel.wait(interval_s)
    finally:
        server.stop()
        print("stream server stop", file=sys.stderr)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    try:
        cfg = config_from_args(parse_args(argv))
        configure_logging(cfg.trace_level)
        server = build_server(cfg)
        return run_until_interrupted(server, cfg)
    except RelayError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
