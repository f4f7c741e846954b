from __future__ import annotations

import struct
import threading
from typing import Callable, Dict, List, Optional, Union

import pytest

from sf45.device.frames import build_packet
from sf45.device.transport import RegisterTransport
from sf45.device.types import (
    REG_DISTANCE_DATA,
    REG_DISTANCE_OUTPUT,
    REG_FIRMWARE_VERSION,
    REG_HARDWARE_VERSION,
    REG_PRODUCT_NAME,
    REG_SCAN_HIGH_ANGLE,
    REG_SCAN_LOW_ANGLE,
    REG_SCAN_SPEED,
    REG_SERIAL_NUMBER,
    REG_UPDATE_RATE,
)

FrameItem = Union[bytes, BaseException]


def distance_frame(
    *,
    first_raw=100,
    first_filtered=100,
    first_strength=50,
    last_raw=100,
    last_filtered=100,
    last_strength=50,
    noise=5,
    temperature_raw=8000,
    angle_raw=10000,
) -> bytes:
    data = struct.pack(
        "<HHHHHHHHh",
        first_raw,
        first_filtered,
        first_strength,
        last_raw,
        last_filtered,
        last_strength,
        noise,
        temperature_raw,
        angle_raw,
    )
    return build_packet(REG_DISTANCE_DATA, data)


class RecordingTransport(RegisterTransport):
    """In-memory register file that records every call."""

    def __init__(self, frame_source: Optional[Callable[[], FrameItem]] = None):
        self.registers: Dict[int, object] = {
            REG_PRODUCT_NAME: "SF45",
            REG_HARDWARE_VERSION: 3,
            REG_FIRMWARE_VERSION: (1 << 16) | (2 << 8) | 7,
            REG_SERIAL_NUMBER: "A1B2C3",
            REG_SCAN_SPEED: 15,
            REG_UPDATE_RATE: 5,
            REG_SCAN_LOW_ANGLE: -45.0,
            REG_SCAN_HIGH_ANGLE: 45.0,
            REG_DISTANCE_OUTPUT: 0x1FF,
        }
        self.calls: List[tuple] = []
        self.fail_reads: Dict[int, BaseException] = {}
        self.fail_writes: Dict[int, BaseException] = {}
        self.frames: List[FrameItem] = []
        self.frame_source = frame_source
        self.connected = False
        self.workers_at_disconnect: Optional[List[threading.Thread]] = None
        self._calls_lock = threading.Lock()

    @property
    def writes(self) -> List[tuple]:
        return [call for call in self.calls if call[0] == "write"]

    def _record(self, *call) -> None:
        with self._calls_lock:
            self.calls.append(call)

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.workers_at_disconnect = [
            thread for thread in threading.enumerate() if thread.name == "sf45-stream"
        ]
        self.connected = False

    def _read(self, register: int):
        self._record("read", register)
        if register in self.fail_reads:
            raise self.fail_reads[register]
        return self.registers[register]

    def _write(self, register: int, value) -> None:
        self._record("write", register, value)
        if register in self.fail_writes:
            raise self.fail_writes[register]
        self.registers[register] = value

    def read_string(self, register: int) -> str:
        return self._read(register)

    def read_u8(self, register: int) -> int:
        return self._read(register)

    def read_u16(self, register: int) -> int:
        return self._read(register)

    def read_u32(self, register: int) -> int:
        return self._read(register)

    def read_float32(self, register: int) -> float:
        return self._read(register)

    def write_u8(self, register: int, value: int) -> None:
        self._write(register, value)

    def write_u16(self, register: int, value: int) -> None:
        self._write(register, value)

    def write_u32(self, register: int, value: int) -> None:
        self._write(register, value)

    def write_float32(self, register: int, value: float) -> None:
        self._write(register, value)

    def send_read(self, command_id: int) -> None:
        self._record("send_read", command_id)

    def recv_frame(self, command_id: int, timeout_ms: int) -> bytes:
        self._record("recv", command_id, timeout_ms)
        if self.frames:
            item = self.frames.pop(0)
        elif self.frame_source is not None:
            item = self.frame_source()
        else:
            item = distance_frame()
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()
