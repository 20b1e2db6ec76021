# gnssrelay/runtime/relay_worker.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gnssrelay.runtime.relay_server import RelayServer


class RelayWorker(threading.Thread):
    """Thread that drives RelayServer.step() until the server's cancel event is set."""

    def __init__(self, server: "RelayServer"):
        super().__init__(name="gnssrelay-worker", daemon=True)
        self.server = server

    def run(self) -> None:
        self.server.run()
