# gnssrelay/protocol/registry.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from gnssrelay.core.errors import FormatError

from .base import MessageEncoder, StreamDecoder
from .novatel import NovatelDecoder
from .rtcm3 import Rtcm3Decoder, Rtcm3Encoder
from .skytraq import SkytraqDecoder
from .ubx import UbxDecoder

DecoderFactory = Callable[..., StreamDecoder]
EncoderFactory = Callable[..., MessageEncoder]


@dataclass(frozen=True)
class FormatSpec:
    """
    One known stream format.

    decoder/encoder are None where no built-in codec exists; such a format
    is still accepted as a tag on a raw (unconverted) stream.
    """

    name: str
    description: str
    decoder: Optional[DecoderFactory] = None
    encoder: Optional[EncoderFactory] = None
    input_only: bool = True


_BUILTIN: Tuple[FormatSpec, ...] = (
    FormatSpec("rtcm2", "RTCM 2"),
    FormatSpec("rtcm3", "RTCM 3", Rtcm3Decoder, Rtcm3Encoder, input_only=False),
    FormatSpec("nov", "NovAtel OEM7/OEM6/OEM4", NovatelDecoder),
    FormatSpec("oem3", "NovAtel OEM3"),
    FormatSpec("ubx", "u-blox UBX", UbxDecoder),
    FormatSpec("ss2", "NovAtel Superstar II"),
    FormatSpec("hemis", "Hemisphere"),
    FormatSpec("stq", "SkyTraq", SkytraqDecoder),
    FormatSpec("gw10", "Furuno GW10"),
    FormatSpec("javad", "Javad"),
    FormatSpec("nvs", "NVS BINR"),
    FormatSpec("binex", "BINEX"),
    FormatSpec("rt17", "Trimble RT17"),
)


class FormatRegistry:
    """Maps format tags -> FormatSpec. Tags are case-insensitive."""

    def __init__(self, specs: Iterable[FormatSpec]):
        self._specs: Dict[str, FormatSpec] = {s.name.lower(): s for s in specs}

    @classmethod
    def default(cls) -> "FormatRegistry":
        return cls(_BUILTIN)

    def has(self, tag: str) -> bool:
        return str(tag).lower() in self._specs

    def names(self) -> Tuple[str, ...]:
        return tuple(self._specs)

    def get(self, tag: str) -> FormatSpec:
        key = str(tag).lower()
        if key not in self._specs:
            raise FormatError(
                f"Unknown stream format '{tag}'.",
                hint=f"Known formats: {', '.join(self._specs)}",
                details={"format": tag},
            )
        return self._specs[key]

    def register(self, spec: FormatSpec) -> None:
        self._specs[spec.name.lower()] = spec

    def check_output(self, tag: str) -> FormatSpec:
        """Validate a tag configured on an output stream."""
        spec = self.get(tag)
        if spec.input_only:
            raise FormatError(
                f"Format '{spec.name}' can only be used on the input stream.",
                hint="Outputs accept: " + ", ".join(s.name for s in self._specs.values() if not s.input_only),
                details={"format": tag},
            )
        return spec

    def create_decoder(self, tag: str, **kwargs: Any) -> StreamDecoder:
        spec = self.get(tag)
        if spec.decoder is None:
            raise FormatError(
                f"No decoder available for format '{spec.name}'; it can only be relayed raw.",
                hint="Drop the output '#format' tag to relay the stream unchanged.",
                details={"format": tag},
            )
        return spec.decoder(**kwargs)

    def create_encoder(self, tag: str, **kwargs: Any) -> MessageEncoder:
        spec = self.check_output(tag)
        if spec.encoder is None:
            raise FormatError(f"No encoder available for format '{spec.name}'.", details={"format": tag})
        return spec.encoder(**kwargs)
