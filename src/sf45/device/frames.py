from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator

from .errors import DecodeError
from .types import PointSample

START_BYTE = 0xAA
MAX_PAYLOAD = 1023  # flags carry a 10-bit length
WRITE_FLAG = 0x01

POINT_SAMPLE_OFFSET = 4
POINT_SAMPLE_FORMAT = "<HHHHHHHHh"
POINT_SAMPLE_MIN_LEN = POINT_SAMPLE_OFFSET + struct.calcsize(POINT_SAMPLE_FORMAT)


def crc16_ccitt(data: bytes, poly: int = 0x1021, init: int = 0x0000) -> int:
    crc = init
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = (crc << 1) ^ poly
            else:
                crc <<= 1
            crc &= 0xFFFF
    return crc


@dataclass(frozen=True)
class Packet:
    """
    One validated LWNX packet.

    `raw` keeps the start byte, flags and command id so offsets line up with
    the device documentation (the first data byte sits at offset 4).
    """

    raw: bytes

    @property
    def flags(self) -> int:
        return self.raw[1] | (self.raw[2] << 8)

    @property
    def command_id(self) -> int:
        return self.raw[3]

    @property
    def is_write(self) -> bool:
        return bool(self.flags & WRITE_FLAG)

    @property
    def data(self) -> bytes:
        return self.raw[4:-2]


def build_packet(command_id: int, data: bytes = b"", write: bool = False) -> bytes:
    length = len(data) + 1
    if length > MAX_PAYLOAD:
        raise ValueError(f"Payload of {len(data)} bytes exceeds LWNX limit")
    flags = (length << 6) | (WRITE_FLAG if write else 0)
    body = bytes([START_BYTE]) + struct.pack("<HB", flags, command_id & 0xFF) + data
    return body + struct.pack("<H", crc16_ccitt(body))


class PacketParser:
    """
    Streaming LWNX packet parser.

    Bytes may arrive in arbitrary chunks; complete packets are yielded once
    their CRC checks out. A bad length or CRC drops only the start byte so the
    parser can resynchronise on a 0xAA that appears later in the buffer.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._stats: Dict[str, int] = {"packets": 0, "crc_errors": 0, "length_errors": 0}
        self._log = logging.getLogger(__name__)

    def feed(self, chunk: bytes) -> Iterator[Packet]:
        if chunk:
            self._buffer.extend(chunk)
        yield from self._extract_packets()

    def parse(self, chunks: Iterable[bytes]) -> Iterator[Packet]:
        for chunk in chunks:
            yield from self.feed(chunk)

    def _extract_packets(self) -> Iterator[Packet]:
        while True:
            start = self._buffer.find(bytes([START_BYTE]))
            if start < 0:
                self._buffer.clear()
                break
            if start:
                del self._buffer[:start]
            if len(self._buffer) < 3:
                break
            flags = self._buffer[1] | (self._buffer[2] << 8)
            length = flags >> 6
            if length < 1 or length > MAX_PAYLOAD:
                self._stats["length_errors"] += 1
                self._log.debug("Discarding packet with invalid length: %s", length)
                del self._buffer[:1]
                continue
            packet_end = 3 + length + 2
            if len(self._buffer) < packet_end:
                break
            raw = bytes(self._buffer[:packet_end])
            crc_expected = struct.unpack_from("<H", raw, packet_end - 2)[0]
            crc_actual = crc16_ccitt(raw[:-2])
            if crc_actual != crc_expected:
                self._stats["crc_errors"] += 1
                self._log.debug(
                    "CRC mismatch (expected=%04X, actual=%04X)", crc_expected, crc_actual
                )
                del self._buffer[:1]
                continue
            del self._buffer[:packet_end]
            self._stats["packets"] += 1
            yield Packet(raw)

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self._buffer.clear()


def decode_point_sample(frame: bytes) -> PointSample:
    """
    Decode a distance output frame (all nine output fields enabled).

    `frame` is the packet as received, starting with the 0xAA start byte;
    the CRC trailer may be present or already stripped.
    """
    if len(frame) < POINT_SAMPLE_MIN_LEN:
        raise DecodeError(
            f"Distance frame too short: {len(frame)} bytes, need {POINT_SAMPLE_MIN_LEN}"
        )
    (
        first_raw,
        first_filtered,
        first_strength,
        last_raw,
        last_filtered,
        last_strength,
        noise,
        temperature_raw,
        angle_raw,
    ) = struct.unpack_from(POINT_SAMPLE_FORMAT, frame, POINT_SAMPLE_OFFSET)
    return PointSample(
        first_dist_raw=first_raw,
        first_dist_filtered=first_filtered,
        first_strength=first_strength,
        last_dist_raw=last_raw,
        last_dist_filtered=last_filtered,
        last_strength=last_strength,
        noise=noise,
        temperature=temperature_raw / 100.0,
        angle=angle_raw / 100.0,
    )
