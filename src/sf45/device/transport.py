from __future__ import annotations

import logging
import struct
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import serial  # type: ignore[import]

from .errors import DecodeError, TransportFailure, TransportTimeout, ValidationError
from .frames import PacketParser, build_packet
from .types import STRING_REGISTER_SIZE

logger = logging.getLogger(__name__)


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 921600
    timeout_ms: int = 1000
    attempts: int = 4
    read_timeout: float = 0.02


class RegisterTransport(ABC):
    """
    Typed register access to one device.

    Implementations are not thread-safe: only one command may be outstanding
    at a time, so callers serialise access themselves.
    """

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None: ...

    @abstractmethod
    def read_string(self, register: int) -> str: ...

    @abstractmethod
    def read_u8(self, register: int) -> int: ...

    @abstractmethod
    def read_u16(self, register: int) -> int: ...

    @abstractmethod
    def read_u32(self, register: int) -> int: ...

    @abstractmethod
    def read_float32(self, register: int) -> float: ...

    @abstractmethod
    def write_u8(self, register: int, value: int) -> None: ...

    @abstractmethod
    def write_u16(self, register: int, value: int) -> None: ...

    @abstractmethod
    def write_u32(self, register: int, value: int) -> None: ...

    @abstractmethod
    def write_float32(self, register: int, value: float) -> None: ...

    @abstractmethod
    def send_read(self, command_id: int) -> None:
        """Issue a read request without waiting for the response."""

    @abstractmethod
    def recv_frame(self, command_id: int, timeout_ms: int) -> bytes:
        """Wait for the next packet carrying `command_id` and return it whole."""


class LwnxSerialTransport(RegisterTransport):
    """LWNX binary protocol over a pyserial port."""

    def __init__(self, settings: SerialSettings):
        self.settings = settings
        self.parser = PacketParser()
        self._serial: Optional[serial.Serial] = None
        self._log = logging.getLogger(__name__)

    @property
    def is_connected(self) -> bool:
        return self._serial is not None

    def connect(self) -> None:
        if self._serial is not None:
            return
        try:
            self._serial = serial.Serial(
                port=self.settings.port,
                baudrate=self.settings.baudrate,
                timeout=self.settings.read_timeout,
            )
        except (serial.SerialException, OSError) as exc:
            raise TransportFailure(f"Could not open {self.settings.port}: {exc}") from exc
        self.parser.reset()
        self._log.info("Connected to %s at %d baud", self.settings.port, self.settings.baudrate)

    def disconnect(self) -> None:
        handle, self._serial = self._serial, None
        if handle is None:
            return
        try:
            handle.close()
        except (serial.SerialException, OSError) as exc:
            self._log.debug("Error closing %s: %s", self.settings.port, exc)
        self._log.info("Disconnected from %s", self.settings.port)

    def read_string(self, register: int) -> str:
        data = self._transact(register)[:STRING_REGISTER_SIZE]
        return data.split(b"\x00", 1)[0].decode("ascii", errors="ignore")

    def read_u8(self, register: int) -> int:
        return self._read_struct(register, "<B")

    def read_u16(self, register: int) -> int:
        return self._read_struct(register, "<H")

    def read_u32(self, register: int) -> int:
        return self._read_struct(register, "<I")

    def read_float32(self, register: int) -> float:
        return self._read_struct(register, "<f")

    def write_u8(self, register: int, value: int) -> None:
        self._write_struct(register, "<B", value)

    def write_u16(self, register: int, value: int) -> None:
        self._write_struct(register, "<H", value)

    def write_u32(self, register: int, value: int) -> None:
        self._write_struct(register, "<I", value)

    def write_float32(self, register: int, value: float) -> None:
        self._write_struct(register, "<f", value)

    def send_read(self, command_id: int) -> None:
        self._send(build_packet(command_id))

    def recv_frame(self, command_id: int, timeout_ms: int) -> bytes:
        handle = self._require_handle()
        deadline = time.monotonic() + timeout_ms / 1000.0
        while time.monotonic() < deadline:
            try:
                chunk = handle.read(handle.in_waiting or 1)
            except (serial.SerialException, OSError) as exc:
                raise TransportFailure(f"Read from {self.settings.port} failed: {exc}") from exc
            for packet in self.parser.feed(chunk):
                if packet.command_id == command_id:
                    return packet.raw
                self._log.debug(
                    "Ignoring packet for command %d while waiting for %d",
                    packet.command_id,
                    command_id,
                )
        raise TransportTimeout(f"No response to command {command_id} within {timeout_ms} ms")

    def _transact(self, command_id: int, data: bytes = b"", write: bool = False) -> bytes:
        """Send a request and return the data bytes of the matching response."""
        attempts = max(self.settings.attempts, 1)
        last_exc: Optional[TransportTimeout] = None
        for attempt in range(1, attempts + 1):
            self._send(build_packet(command_id, data, write=write))
            try:
                raw = self.recv_frame(command_id, self.settings.timeout_ms)
            except TransportTimeout as exc:
                last_exc = exc
                self._log.debug(
                    "No response to command %d (attempt %d/%d)", command_id, attempt, attempts
                )
                continue
            return raw[4:-2]
        raise TransportTimeout(
            f"Command {command_id} unanswered after {attempts} attempts"
        ) from last_exc

    def _read_struct(self, register: int, fmt: str):
        data = self._transact(register)
        size = struct.calcsize(fmt)
        if len(data) < size:
            raise DecodeError(
                f"Register {register} response carries {len(data)} bytes, expected {size}"
            )
        return struct.unpack_from(fmt, data)[0]

    def _write_struct(self, register: int, fmt: str, value) -> None:
        try:
            data = struct.pack(fmt, value)
        except struct.error as exc:
            raise ValidationError(f"Value {value!r} does not fit register {register}") from exc
        self._transact(register, data, write=True)

    def _send(self, payload: bytes) -> None:
        handle = self._require_handle()
        try:
            handle.write(payload)
            handle.flush()
        except (serial.SerialException, OSError) as exc:
            raise TransportFailure(f"Write to {self.settings.port} failed: {exc}") from exc

    def _require_handle(self):
        if self._serial is None:
            raise TransportFailure(f"{self.settings.port} is not connected")
        return self._serial
