# gnssrelay/app/runner.py
from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from gnssrelay.app.config import RelayConfig
from gnssrelay.core.errors import ConfigError
from gnssrelay.runtime.relay_server import RelayServer
from gnssrelay.transport.factory import TransportFactory


def read_command_file(path: str | Path) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise ConfigError(
            f"Could not read command file '{p}': {e.strerror}",
            hint="The command file holds receiver commands; '@' lines separate start and stop sections.",
            details={"path": str(p)},
        ) from None


def build_server(
    cfg: RelayConfig,
    *,
    clock: Callable[[], float] = time.monotonic,
    logger: Optional[logging.Logger] = None,
) -> RelayServer:
    """Validate the config and construct (not start) the relay server."""
    log = logger or logging.getLogger(__name__)
    cfg.validate()

    commands = cfg.commands
    if cfg.command_file:
        commands = read_command_file(cfg.command_file)
        log.info("CMD_FILE_LOADED path=%s lines=%d", cfg.command_file, len(commands.splitlines()))

    factory = TransportFactory(replace(cfg.transport_options(), clock=clock))
    return RelayServer(
        cfg.input,
        cfg.outputs,
        options=cfg.options(),
        msg_filter=cfg.message_filter(),
        overrides=cfg.overrides(),
        commands=commands,
        receiver_options=cfg.receiver_options,
        transport_factory=factory,
        clock=clock,
        logger=logger,
    )
