from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import ValidationError

# Register ids of the SF45/B command set.
REG_PRODUCT_NAME = 0
REG_HARDWARE_VERSION = 1
REG_FIRMWARE_VERSION = 2
REG_SERIAL_NUMBER = 3
REG_DISTANCE_OUTPUT = 27
REG_STREAM = 30
REG_DISTANCE_DATA = 44
REG_UPDATE_RATE = 66
REG_SCAN_SPEED = 85
REG_SCAN_ENABLE = 96
REG_SCAN_POSITION = 97
REG_SCAN_LOW_ANGLE = 98
REG_SCAN_HIGH_ANGLE = 99

STREAM_DISABLED = 0
STREAM_DISTANCE_CM = 5

SCAN_SPEED_MIN = 5
SCAN_SPEED_MAX = 2000
LOW_ANGLE_RANGE = (-170.0, -5.0)
HIGH_ANGLE_RANGE = (5.0, 170.0)
SCAN_POSITION_RANGE = (-170.0, 170.0)
FOV_RANGE = (10.0, 340.0)

STRING_REGISTER_SIZE = 16


class OutputField(enum.IntFlag):
    """Bitmap of fields included in each distance output packet."""

    FIRST_RAW = 1 << 0
    FIRST_FILTERED = 1 << 1
    FIRST_STRENGTH = 1 << 2
    LAST_RAW = 1 << 3
    LAST_FILTERED = 1 << 4
    LAST_STRENGTH = 1 << 5
    NOISE = 1 << 6
    TEMPERATURE = 1 << 7
    YAW_ANGLE = 1 << 8


OUTPUT_FIELDS_ALL = 0x1FF


class SampleRate(enum.Enum):
    HZ_50 = 50
    HZ_100 = 100
    HZ_200 = 200
    HZ_400 = 400
    HZ_500 = 500
    HZ_625 = 625
    HZ_1000 = 1000
    HZ_1250 = 1250
    HZ_1538 = 1538
    HZ_2000 = 2000
    HZ_2500 = 2500
    HZ_5000 = 5000

    @property
    def hz(self) -> int:
        return self.value

    @property
    def index(self) -> int:
        """Position in the firmware rate table; the register stores index + 1."""
        return _RATE_TABLE.index(self)

    @property
    def register_value(self) -> int:
        return self.index + 1

    @classmethod
    def from_register(cls, raw: int) -> "SampleRate":
        if not 1 <= raw <= len(_RATE_TABLE):
            raise ValidationError(f"Update rate register value {raw} is outside 1..{len(_RATE_TABLE)}")
        return _RATE_TABLE[raw - 1]

    @classmethod
    def coerce(cls, rate: "SampleRate | int") -> "SampleRate":
        if isinstance(rate, SampleRate):
            return rate
        try:
            return cls(int(rate))
        except ValueError as exc:
            allowed = ", ".join(str(item.hz) for item in _RATE_TABLE)
            raise ValidationError(f"Unsupported sample rate {rate!r}; expected one of {allowed}") from exc


_RATE_TABLE = list(SampleRate)


@dataclass(frozen=True)
class UnitIdentity:
    model_name: str
    hardware_version: int
    firmware_version: int
    serial_number: str

    @property
    def firmware_version_str(self) -> str:
        return firmware_version_str(self.firmware_version)


@dataclass(frozen=True)
class PointSample:
    """One decoded distance output packet. Distances are in centimetres."""

    first_dist_raw: int
    first_dist_filtered: int
    first_strength: int
    last_dist_raw: int
    last_dist_filtered: int
    last_strength: int
    noise: int
    temperature: float
    angle: float


def firmware_version_str(version: int) -> str:
    return f"{(version >> 16) & 0xFF}.{(version >> 8) & 0xFF}.{version & 0xFF}"


def parse_firmware_version(text: str) -> int:
    parts = text.strip().split(".")
    if len(parts) != 3:
        raise ValueError(f"Firmware version '{text}' must look like major.minor.patch")
    major, minor, patch = (int(part) for part in parts)
    for value in (major, minor, patch):
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Firmware version component {value} does not fit in a byte")
    return (major << 16) | (minor << 8) | patch
