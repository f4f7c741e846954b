"""
Host-side driver for the SF45 scanning rangefinder.

The subpackage exposes the LWNX serial transport, the device session with
validated register operations, the telemetry frame decoder, and the
background stream controller used by the `sf45-host` command line tool.
"""

from .config import HostConfig, ScanConfig, StreamRuntime, apply_scan_config, load_config
from .errors import (
    DecodeError,
    PartialConfigurationError,
    SF45Error,
    StateError,
    TransportError,
    TransportFailure,
    TransportTimeout,
    ValidationError,
)
from .frames import Packet, PacketParser, build_packet, crc16_ccitt, decode_point_sample
from .processing import CsvLogger, SampleRecord, SampleRecorder
from .session import DeviceSession
from .stream import QueueSink, StreamController, StreamEvent, StreamState
from .transport import LwnxSerialTransport, RegisterTransport, SerialSettings
from .types import OutputField, PointSample, SampleRate, UnitIdentity

__all__ = [
    "HostConfig",
    "ScanConfig",
    "StreamRuntime",
    "apply_scan_config",
    "load_config",
    "DecodeError",
    "PartialConfigurationError",
    "SF45Error",
    "StateError",
    "TransportError",
    "TransportFailure",
    "TransportTimeout",
    "ValidationError",
    "Packet",
    "PacketParser",
    "build_packet",
    "crc16_ccitt",
    "decode_point_sample",
    "CsvLogger",
    "SampleRecord",
    "SampleRecorder",
    "DeviceSession",
    "QueueSink",
    "StreamController",
    "StreamEvent",
    "StreamState",
    "LwnxSerialTransport",
    "RegisterTransport",
    "SerialSettings",
    "OutputField",
    "PointSample",
    "SampleRate",
    "UnitIdentity",
]
