from __future__ import annotations

import logging
import threading
import weakref
from typing import TYPE_CHECKING, List, Optional

from .errors import PartialConfigurationError, TransportError, ValidationError
from .frames import decode_point_sample
from .transport import RegisterTransport
from .types import (
    FOV_RANGE,
    HIGH_ANGLE_RANGE,
    LOW_ANGLE_RANGE,
    OUTPUT_FIELDS_ALL,
    REG_DISTANCE_DATA,
    REG_DISTANCE_OUTPUT,
    REG_FIRMWARE_VERSION,
    REG_HARDWARE_VERSION,
    REG_PRODUCT_NAME,
    REG_SCAN_ENABLE,
    REG_SCAN_HIGH_ANGLE,
    REG_SCAN_LOW_ANGLE,
    REG_SCAN_POSITION,
    REG_SCAN_SPEED,
    REG_SERIAL_NUMBER,
    REG_STREAM,
    REG_UPDATE_RATE,
    SCAN_POSITION_RANGE,
    SCAN_SPEED_MAX,
    SCAN_SPEED_MIN,
    STREAM_DISABLED,
    STREAM_DISTANCE_CM,
    OutputField,
    PointSample,
    SampleRate,
    UnitIdentity,
)

if TYPE_CHECKING:
    from .stream import StreamController

logger = logging.getLogger(__name__)

POLL_TIMEOUT_MS = 1000


def _check_range(name: str, value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be a number, got {value!r}") from exc
    if not low <= value <= high:
        raise ValidationError(f"{name} {value:g} outside [{low:g}, {high:g}]")
    return value


class DeviceSession:
    """
    Owns one connected SF45 and translates domain operations into register
    reads and writes.

    Every transport call goes through `self.lock`, which the stream worker
    shares, so configuration calls and background polls never interleave on
    the wire. Validation happens before the lock is taken: a rejected value
    never reaches the transport.
    """

    def __init__(self, transport: RegisterTransport, *, connect: bool = True):
        self.transport = transport
        self.lock = threading.RLock()
        self._identity: Optional[UnitIdentity] = None
        self._streams: "weakref.WeakSet[StreamController]" = weakref.WeakSet()
        self._closed = False
        if connect:
            self.transport.connect()

    # -- identity ---------------------------------------------------------

    @property
    def identity(self) -> Optional[UnitIdentity]:
        return self._identity

    def refresh_identity(self) -> UnitIdentity:
        with self.lock:
            model_name = self.transport.read_string(REG_PRODUCT_NAME)
            hardware_version = self.transport.read_u32(REG_HARDWARE_VERSION)
            firmware_version = self.transport.read_u32(REG_FIRMWARE_VERSION)
            serial_number = self.transport.read_string(REG_SERIAL_NUMBER)
        identity = UnitIdentity(
            model_name=model_name,
            hardware_version=hardware_version,
            firmware_version=firmware_version,
            serial_number=serial_number,
        )
        self._identity = identity
        logger.debug("Identity refreshed: %s", identity)
        return identity

    def describe(self) -> List[str]:
        identity = self._identity or self.refresh_identity()
        return [
            f"{'Model:':<15}{identity.model_name:>10}",
            f"{'HW Version:':<15}{identity.hardware_version:>10}",
            f"{'FW Version:':<15}{identity.firmware_version_str:>10}",
            f"{'Serial:':<15}{identity.serial_number:>10}",
        ]

    # -- scan speed / rate ------------------------------------------------

    def get_scan_speed(self) -> int:
        with self.lock:
            return self.transport.read_u16(REG_SCAN_SPEED)

    def set_scan_speed(self, speed: int) -> None:
        if isinstance(speed, bool) or not isinstance(speed, int):
            raise ValidationError(f"Scan speed must be an integer, got {speed!r}")
        if not SCAN_SPEED_MIN <= speed <= SCAN_SPEED_MAX:
            raise ValidationError(f"Scan speed {speed} outside [{SCAN_SPEED_MIN}, {SCAN_SPEED_MAX}]")
        with self.lock:
            self.transport.write_u16(REG_SCAN_SPEED, speed)

    def get_sample_rate(self) -> SampleRate:
        with self.lock:
            raw = self.transport.read_u8(REG_UPDATE_RATE)
        return SampleRate.from_register(raw)

    def set_sample_rate(self, rate: SampleRate | int) -> None:
        rate = SampleRate.coerce(rate)
        with self.lock:
            self.transport.write_u8(REG_UPDATE_RATE, rate.register_value)

    # -- angles -----------------------------------------------------------

    def get_low_angle(self) -> float:
        with self.lock:
            return self.transport.read_float32(REG_SCAN_LOW_ANGLE)

    def set_low_angle(self, angle: float) -> None:
        angle = _check_range("Low angle", angle, LOW_ANGLE_RANGE)
        with self.lock:
            self.transport.write_float32(REG_SCAN_LOW_ANGLE, angle)

    def get_high_angle(self) -> float:
        with self.lock:
            return self.transport.read_float32(REG_SCAN_HIGH_ANGLE)

    def set_high_angle(self, angle: float) -> None:
        angle = _check_range("High angle", angle, HIGH_ANGLE_RANGE)
        with self.lock:
            self.transport.write_float32(REG_SCAN_HIGH_ANGLE, angle)

    def get_angle(self) -> float:
        with self.lock:
            return self.transport.read_float32(REG_SCAN_POSITION)

    def set_angle(self, angle: float) -> None:
        angle = _check_range("Scan position", angle, SCAN_POSITION_RANGE)
        with self.lock:
            self.transport.write_float32(REG_SCAN_POSITION, angle)

    def get_field_of_view(self) -> float:
        # Consistent against other users of this session only; a change made
        # outside this process between the two reads is not detected.
        with self.lock:
            low = self.transport.read_float32(REG_SCAN_LOW_ANGLE)
            high = self.transport.read_float32(REG_SCAN_HIGH_ANGLE)
        return high - low

    def set_field_of_view(self, fov: float) -> None:
        """
        Set a symmetric scan window of `fov` degrees.

        The device has no joint write, so this is two register writes (high
        bound first). If the second one fails the device keeps the new high
        bound next to the old low bound and PartialConfigurationError is
        raised.
        """
        fov = _check_range("Field of view", fov, FOV_RANGE)
        half = fov / 2.0
        with self.lock:
            self.transport.write_float32(REG_SCAN_HIGH_ANGLE, half)
            try:
                self.transport.write_float32(REG_SCAN_LOW_ANGLE, -half)
            except TransportError as exc:
                raise PartialConfigurationError(
                    f"High angle set to {half:g} but low angle write failed: {exc}",
                    written=["high_angle"],
                    cause=exc,
                ) from exc

    def set_angle_window(self, low: float, high: float) -> None:
        low = _check_range("Low angle", low, LOW_ANGLE_RANGE)
        high = _check_range("High angle", high, HIGH_ANGLE_RANGE)
        with self.lock:
            self.transport.write_float32(REG_SCAN_LOW_ANGLE, low)
            try:
                self.transport.write_float32(REG_SCAN_HIGH_ANGLE, high)
            except TransportError as exc:
                raise PartialConfigurationError(
                    f"Low angle set to {low:g} but high angle write failed: {exc}",
                    written=["low_angle"],
                    cause=exc,
                ) from exc

    # -- output / enables -------------------------------------------------

    def get_output_fields(self) -> OutputField:
        with self.lock:
            raw = self.transport.read_u32(REG_DISTANCE_OUTPUT)
        return OutputField(raw & OUTPUT_FIELDS_ALL)

    def set_output_fields(self, bitmap: int) -> None:
        if isinstance(bitmap, bool) or not isinstance(bitmap, int):
            raise ValidationError(f"Output bitmap must be an integer, got {bitmap!r}")
        bitmap = int(bitmap)
        if bitmap < 0 or bitmap & ~OUTPUT_FIELDS_ALL:
            raise ValidationError(f"Output bitmap 0x{bitmap:X} sets bits above bit 8")
        with self.lock:
            self.transport.write_u32(REG_DISTANCE_OUTPUT, bitmap)

    def enable_scanning(self, enable: bool) -> None:
        with self.lock:
            self.transport.write_u8(REG_SCAN_ENABLE, 1 if enable else 0)

    def enable_stream(self, enable: bool) -> None:
        with self.lock:
            self.transport.write_u32(REG_STREAM, STREAM_DISTANCE_CM if enable else STREAM_DISABLED)

    # -- telemetry --------------------------------------------------------

    def poll_once(self, timeout_ms: int = POLL_TIMEOUT_MS) -> PointSample:
        with self.lock:
            self.transport.send_read(REG_DISTANCE_DATA)
            frame = self.transport.recv_frame(REG_DISTANCE_DATA, timeout_ms)
        return decode_point_sample(frame)

    # -- lifecycle --------------------------------------------------------

    def _register_stream(self, controller: "StreamController") -> None:
        self._streams.add(controller)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for controller in list(self._streams):
            controller.stop()
        self._streams.clear()
        with self.lock:
            self.transport.disconnect()

    def __enter__(self) -> "DeviceSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
