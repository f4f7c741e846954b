from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .session import DeviceSession
from .transport import SerialSettings
from .types import OUTPUT_FIELDS_ALL, SampleRate


@dataclass
class ScanConfig:
    scan_speed: int = 15
    sample_rate_hz: int = 500
    output_fields: int = OUTPUT_FIELDS_ALL
    fov: Optional[float] = 100.0
    low_angle: Optional[float] = None
    high_angle: Optional[float] = None
    scanning: bool = True

    @property
    def sample_rate(self) -> SampleRate:
        return SampleRate.coerce(self.sample_rate_hz)


@dataclass
class StreamRuntime:
    queue_maxsize: int = 1024
    poll_interval_sec: Optional[float] = None
    stats_log_interval: float = 10.0
    output_csv: Path | None = None


@dataclass
class HostConfig:
    serial: SerialSettings = field(default_factory=lambda: SerialSettings(port="/dev/ttyUSB0"))
    scan: ScanConfig = field(default_factory=ScanConfig)
    stream: StreamRuntime = field(default_factory=StreamRuntime)


def apply_scan_config(session: DeviceSession, scan: ScanConfig) -> None:
    """
    Write a scan configuration to the device.

    Order matters: the output bitmap is fixed before anything that changes
    packet cadence, and scanning is switched last.
    """
    session.set_output_fields(scan.output_fields)
    session.set_sample_rate(scan.sample_rate)
    session.set_scan_speed(scan.scan_speed)
    if scan.low_angle is not None or scan.high_angle is not None:
        if scan.low_angle is None or scan.high_angle is None:
            raise ValueError("scan.low_angle and scan.high_angle must be given together")
        session.set_angle_window(scan.low_angle, scan.high_angle)
    elif scan.fov is not None:
        session.set_field_of_view(scan.fov)
    session.enable_scanning(scan.scanning)


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None, overrides: Sequence[str] | None = None) -> HostConfig:
    """
    Load a host configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["scan.scan_speed=20", "serial.port=/dev/ttyACM0"]
    A `None` path starts from the built-in defaults.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    serial_data = merged.get("serial") or {}
    scan_data = merged.get("scan") or {}
    stream_data = merged.get("stream") or {}
    scan_defaults = ScanConfig()
    config = HostConfig(
        serial=SerialSettings(
            port=str(serial_data.get("port", "/dev/ttyUSB0")),
            baudrate=int(serial_data.get("baudrate", 921600)),
            timeout_ms=int(serial_data.get("timeout_ms", 1000)),
            attempts=int(serial_data.get("attempts", 4)),
            read_timeout=float(serial_data.get("read_timeout", 0.02)),
        ),
        scan=ScanConfig(
            scan_speed=int(scan_data.get("scan_speed", scan_defaults.scan_speed)),
            sample_rate_hz=int(scan_data.get("sample_rate_hz", scan_defaults.sample_rate_hz)),
            output_fields=_coerce_bitmap(scan_data.get("output_fields", scan_defaults.output_fields)),
            fov=_optional_float(scan_data.get("fov", scan_defaults.fov)),
            low_angle=_optional_float(scan_data.get("low_angle")),
            high_angle=_optional_float(scan_data.get("high_angle")),
            scanning=bool(scan_data.get("scanning", True)),
        ),
        stream=StreamRuntime(
            queue_maxsize=int(stream_data.get("queue_maxsize", 1024)),
            poll_interval_sec=_optional_float(stream_data.get("poll_interval_sec")),
            stats_log_interval=float(stream_data.get("stats_log_interval", 10.0)),
            output_csv=Path(stream_data["output_csv"]) if stream_data.get("output_csv") else None,
        ),
    )
    # Fail early on a rate the firmware does not support.
    SampleRate.coerce(config.scan.sample_rate_hz)
    return config


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _coerce_bitmap(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    lowered = raw.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if lowered.startswith("0x"):
            return int(raw, 16)
        if "." in raw or "e" in lowered:
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
