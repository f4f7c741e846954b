from __future__ import annotations

import struct

import pytest

from sf45.device.errors import DecodeError
from sf45.device.frames import (
    POINT_SAMPLE_MIN_LEN,
    PacketParser,
    build_packet,
    crc16_ccitt,
    decode_point_sample,
)

from conftest import distance_frame


def test_crc16_matches_xmodem_check_value():
    assert crc16_ccitt(b"123456789") == 0x31C3


def test_build_packet_layout():
    packet = build_packet(85, struct.pack("<H", 15), write=True)
    assert packet[0] == 0xAA
    flags = struct.unpack_from("<H", packet, 1)[0]
    assert flags >> 6 == 3  # command id + two data bytes
    assert flags & 0x01 == 1
    assert packet[3] == 85
    assert packet[4:6] == b"\x0f\x00"
    assert struct.unpack_from("<H", packet, len(packet) - 2)[0] == crc16_ccitt(packet[:-2])


def test_parser_handles_split_chunks_and_garbage():
    parser = PacketParser()
    packet = build_packet(27, struct.pack("<I", 0x1FF))
    stream = b"\x01\x02" + packet
    packets = []
    for index in range(len(stream)):
        packets.extend(parser.feed(stream[index : index + 1]))
    assert len(packets) == 1
    assert packets[0].command_id == 27
    assert packets[0].data == struct.pack("<I", 0x1FF)
    assert not packets[0].is_write
    assert parser.stats()["packets"] == 1


def test_parser_recovers_after_crc_error():
    parser = PacketParser()
    good = build_packet(66, b"\x05")
    corrupted = bytearray(good)
    corrupted[-1] ^= 0xFF
    packets = list(parser.parse([bytes(corrupted), good]))
    assert [packet.command_id for packet in packets] == [66]
    stats = parser.stats()
    assert stats["crc_errors"] == 1
    assert stats["packets"] == 1


def test_decode_reference_frame():
    sample = decode_point_sample(distance_frame())
    assert sample.first_dist_raw == 100
    assert sample.first_dist_filtered == 100
    assert sample.first_strength == 50
    assert sample.last_dist_raw == 100
    assert sample.last_strength == 50
    assert sample.noise == 5
    assert sample.temperature == pytest.approx(80.0)
    assert sample.angle == pytest.approx(100.0)


def test_decode_negative_angle():
    sample = decode_point_sample(distance_frame(angle_raw=-4550))
    assert sample.angle == pytest.approx(-45.5)


def test_decode_is_idempotent():
    frame = distance_frame(first_raw=1234, angle_raw=-1)
    assert decode_point_sample(frame) == decode_point_sample(frame)


def test_decode_rejects_short_frame():
    frame = distance_frame()[: POINT_SAMPLE_MIN_LEN - 1]
    assert len(frame) == 21
    with pytest.raises(DecodeError):
        decode_point_sample(frame)


def test_decode_accepts_frame_without_crc():
    frame = distance_frame()[:-2]
    assert len(frame) == POINT_SAMPLE_MIN_LEN
    assert decode_point_sample(frame).noise == 5
