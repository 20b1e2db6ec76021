from __future__ import annotations

import pytest

from gnssrelay.core.errors import FormatError
from gnssrelay.protocol.registry import FormatRegistry, FormatSpec
from gnssrelay.protocol.rtcm3 import Rtcm3Decoder, Rtcm3Encoder
from gnssrelay.protocol.ubx import UbxDecoder

TAGS = ("rtcm2", "rtcm3", "nov", "oem3", "ubx", "ss2", "hemis", "stq", "gw10", "javad", "nvs", "binex", "rt17")


def test_default_registry_knows_every_tag():
    reg = FormatRegistry.default()
    assert reg.names() == TAGS
    for tag in TAGS:
        assert reg.has(tag.upper())


def test_only_rtcm3_is_usable_on_outputs():
    reg = FormatRegistry.default()
    assert [t for t in TAGS if not reg.get(t).input_only] == ["rtcm3"]
    assert reg.check_output("RTCM3").name == "rtcm3"
    with pytest.raises(FormatError):
        reg.check_output("ubx")


def test_unknown_tag_raises():
    with pytest.raises(FormatError) as ei:
        FormatRegistry.default().get("sbf")
    assert ei.value.details == {"format": "sbf"}


def test_codec_factories():
    reg = FormatRegistry.default()
    assert isinstance(reg.create_decoder("rtcm3"), Rtcm3Decoder)
    assert isinstance(reg.create_decoder("ubx", options="-EPHALL"), UbxDecoder)
    assert isinstance(reg.create_encoder("rtcm3"), Rtcm3Encoder)


def test_tags_without_decoder_cannot_be_converted():
    reg = FormatRegistry.default()
    for tag in ("rtcm2", "oem3", "ss2", "hemis", "gw10", "javad", "nvs", "binex", "rt17"):
        with pytest.raises(FormatError):
            reg.create_decoder(tag)


def test_register_adds_format():
    reg = FormatRegistry([])
    reg.register(FormatSpec("ubx", "u-blox", UbxDecoder))
    assert reg.has("UBX")
