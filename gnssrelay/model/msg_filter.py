# gnssrelay/model/msg_filter.py
from __future__ import annotations

import re
from typing import Dict, Iterator, Optional, Tuple

from gnssrelay.core.errors import ConfigError

_ENTRY = re.compile(r"^\s*([A-Za-z0-9_\-]+)\s*(?:\(\s*([0-9.]+(?:[eE][+\-]?[0-9]+)?)\s*\))?\s*$")


class MessageFilter:
    """
    Ordered allow-list of message types with a minimum emission interval.

    A type not listed is suppressed. An interval of 0 lets every message of
    that type through.
    """

    def __init__(self, entries: Optional[Dict[str, float]] = None):
        self._entries: Dict[str, float] = {}
        for mtype, interval in (entries or {}).items():
            if interval < 0:
                raise ConfigError(f"Negative interval for message type '{mtype}'.")
            self._entries[str(mtype)] = float(interval)

    @classmethod
    def parse(cls, text: str) -> "MessageFilter":
        """Parse 'type[(interval)][,type[(interval)]...]'."""
        entries: Dict[str, float] = {}
        for item in (text or "").split(","):
            if not item.strip():
                continue
            m = _ENTRY.match(item)
            if m is None:
                raise ConfigError(
                    f"Invalid message filter entry '{item.strip()}'.",
                    hint="Use type[(interval)][,type[(interval)]...], e.g. 1004,1019(10)",
                    details={"filter": text},
                )
            mtype, interval = m.group(1), m.group(2)
            try:
                entries[mtype] = float(interval) if interval else 0.0
            except ValueError:
                raise ConfigError(
                    f"Invalid interval in message filter entry '{item.strip()}'.",
                    details={"filter": text},
                ) from None
        return cls(entries)

    def allows(self, mtype: str) -> bool:
        return str(mtype) in self._entries

    def interval(self, mtype: str) -> Optional[float]:
        return self._entries.get(str(mtype))

    def types(self) -> Tuple[str, ...]:
        return tuple(self._entries)

    def render(self) -> str:
        out = []
        for mtype, interval in self._entries.items():
            out.append(f"{mtype}({interval:g})" if interval > 0 else mtype)
        return ",".join(out)

    def __iter__(self) -> Iterator[Tuple[str, float]]:
        return iter(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MessageFilter):
            return NotImplemented
        return list(self._entries.items()) == list(other._entries.items())

    def __repr__(self) -> str:
        return f"MessageFilter('{self.render()}')"
