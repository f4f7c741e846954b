from __future__ import annotations

import pytest

from sf45.device.errors import ValidationError
from sf45.device.types import (
    OUTPUT_FIELDS_ALL,
    OutputField,
    SampleRate,
    firmware_version_str,
    parse_firmware_version,
)


def test_firmware_version_formatting():
    assert firmware_version_str(0x00020A03) == "2.10.3"
    assert parse_firmware_version("2.10.3") == 0x00020A03


def test_firmware_version_round_trip_and_ordering():
    versions = [0x000001, 0x000100, 0x0001FF, 0x010000, 0x020A03, 0xFFFFFF]
    for version in versions:
        assert parse_firmware_version(firmware_version_str(version)) == version
    keys = [tuple(int(part) for part in firmware_version_str(v).split(".")) for v in versions]
    assert keys == sorted(keys)


def test_parse_firmware_version_rejects_garbage():
    with pytest.raises(ValueError):
        parse_firmware_version("1.2")
    with pytest.raises(ValueError):
        parse_firmware_version("1.2.300")


def test_sample_rate_table():
    assert [rate.hz for rate in SampleRate] == [
        50, 100, 200, 400, 500, 625, 1000, 1250, 1538, 2000, 2500, 5000
    ]
    assert SampleRate.HZ_50.register_value == 1
    assert SampleRate.HZ_1538.index == 8
    assert SampleRate.from_register(12) is SampleRate.HZ_5000
    with pytest.raises(ValidationError):
        SampleRate.from_register(13)
    assert SampleRate.coerce(625) is SampleRate.HZ_625


def test_output_fields_cover_low_nine_bits():
    combined = OutputField(0)
    for flag in OutputField:
        combined |= flag
    assert int(combined) == OUTPUT_FIELDS_ALL
