from __future__ import annotations

import csv
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO

from .stream import StreamEvent
from .types import PointSample, UnitIdentity

CAPTURE_FIELDS = [
    "ts",
    "angle",
    "first_dist_raw",
    "first_dist_filtered",
    "first_strength",
    "last_dist_raw",
    "last_dist_filtered",
    "last_strength",
    "noise",
    "temperature",
]


@dataclass
class SampleRecord:
    """Timestamped point sample ready for persistence."""

    ts: float
    angle: float
    first_dist_raw: int
    first_dist_filtered: int
    first_strength: int
    last_dist_raw: int
    last_dist_filtered: int
    last_strength: int
    noise: int
    temperature: float

    @classmethod
    def from_sample(cls, sample: PointSample, ts: Optional[float] = None) -> "SampleRecord":
        fields = asdict(sample)
        return cls(ts=time.time() if ts is None else ts, **fields)


class CsvLogger:
    """
    Lazily creates a CSV writer when the first record arrives. Keeping writer
    creation lazy avoids touching the filesystem during dry runs or tests.
    """

    def __init__(self, path: Path):
        self.path = path
        self._handle: Optional[csv.DictWriter[str]] = None
        self._file_handle: Optional[TextIO] = None
        self._pending_metadata: List[str] = []

    def append(self, record: SampleRecord) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            for line in self._pending_metadata:
                self._file_handle.write(line + "\n")
            self._pending_metadata.clear()
            self._handle = csv.DictWriter(self._file_handle, fieldnames=CAPTURE_FIELDS)
            self._handle.writeheader()
        self._handle.writerow(asdict(record))
        if self._file_handle is not None:
            self._file_handle.flush()

    def set_metadata(self, metadata: Dict[str, str]) -> None:
        if not metadata:
            return
        line = "# " + " ".join(f"{key}={value}" for key, value in metadata.items())
        if self._handle is None:
            self._pending_metadata.append(line)
            return
        if self._file_handle is None:
            return
        self._file_handle.write(line + "\n")
        self._file_handle.flush()

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._handle = None


def identity_metadata(identity: UnitIdentity) -> Dict[str, str]:
    return {
        "model": identity.model_name.replace(" ", "_") or "unknown",
        "hw": str(identity.hardware_version),
        "fw": identity.firmware_version_str,
        "serial": identity.serial_number.replace(" ", "_") or "unknown",
    }


class SampleRecorder:
    """
    Stream sink that timestamps samples, optionally logs them to CSV and
    fans them out to callbacks. Error events are counted, not recorded.
    """

    def __init__(self, output_csv: Optional[Path] = None, identity: Optional[UnitIdentity] = None):
        self.logger = CsvLogger(output_csv) if output_csv else None
        self.records = 0
        self.errors = 0
        self.last_fatal: Optional[BaseException] = None
        self._callbacks: List[Callable[[SampleRecord], None]] = []
        if self.logger and identity is not None:
            self.logger.set_metadata(identity_metadata(identity))

    def __call__(self, event: StreamEvent) -> None:
        if event.error is not None:
            self.errors += 1
            if event.fatal:
                self.last_fatal = event.error
            return
        assert event.sample is not None
        record = SampleRecord.from_sample(event.sample, ts=event.timestamp)
        self.records += 1
        if self.logger:
            self.logger.append(record)
        for callback in self._callbacks:
            callback(record)

    def register_callback(self, callback: Callable[[SampleRecord], None]) -> None:
        self._callbacks.append(callback)

    def close(self) -> None:
        if self.logger:
            self.logger.close()
