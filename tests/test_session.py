from __future__ import annotations

import pytest

from sf45.device.errors import (
    DecodeError,
    PartialConfigurationError,
    TransportFailure,
    TransportTimeout,
    ValidationError,
)
from sf45.device.session import DeviceSession
from sf45.device.types import (
    REG_DISTANCE_DATA,
    REG_DISTANCE_OUTPUT,
    REG_SCAN_ENABLE,
    REG_SCAN_HIGH_ANGLE,
    REG_SCAN_LOW_ANGLE,
    REG_SCAN_POSITION,
    REG_SCAN_SPEED,
    REG_SERIAL_NUMBER,
    REG_STREAM,
    REG_UPDATE_RATE,
    OutputField,
    SampleRate,
)

from conftest import distance_frame


@pytest.fixture
def session(transport):
    return DeviceSession(transport)


def test_session_connects_transport(transport, session):
    assert transport.connected


@pytest.mark.parametrize("speed", [5, 15, 2000])
def test_set_scan_speed_accepts_range(transport, session, speed):
    session.set_scan_speed(speed)
    assert transport.writes == [("write", REG_SCAN_SPEED, speed)]


@pytest.mark.parametrize("speed", [4, 0, -1, 2001, 65535, 15.5, True])
def test_set_scan_speed_rejects_without_transport(transport, session, speed):
    with pytest.raises(ValidationError):
        session.set_scan_speed(speed)
    assert transport.calls == []


def test_get_scan_speed_propagates_failure(transport, session):
    transport.fail_reads[REG_SCAN_SPEED] = TransportTimeout("no answer")
    with pytest.raises(TransportTimeout):
        session.get_scan_speed()


def test_sample_rate_uses_table_index(transport, session):
    session.set_sample_rate(SampleRate.HZ_500)
    session.set_sample_rate(5000)
    assert transport.writes == [
        ("write", REG_UPDATE_RATE, 5),
        ("write", REG_UPDATE_RATE, 12),
    ]
    transport.registers[REG_UPDATE_RATE] = 1
    assert session.get_sample_rate() is SampleRate.HZ_50


def test_sample_rate_rejects_unknown_frequency(transport, session):
    with pytest.raises(ValidationError):
        session.set_sample_rate(300)
    assert transport.calls == []


def test_sample_rate_rejects_bad_register_value(transport, session):
    transport.registers[REG_UPDATE_RATE] = 0
    with pytest.raises(ValidationError):
        session.get_sample_rate()


@pytest.mark.parametrize("angle", [-4.0, -171.0, 0.0, 20.0])
def test_low_angle_rejected_without_side_effects(transport, session, angle):
    with pytest.raises(ValidationError):
        session.set_low_angle(angle)
    assert transport.calls == []
    assert transport.registers[REG_SCAN_HIGH_ANGLE] == 45.0


@pytest.mark.parametrize("angle", [4.0, 171.0, 0.0, -20.0])
def test_high_angle_rejected_without_side_effects(transport, session, angle):
    with pytest.raises(ValidationError):
        session.set_high_angle(angle)
    assert transport.calls == []
    assert transport.registers[REG_SCAN_LOW_ANGLE] == -45.0


def test_angle_setters_touch_only_their_register(transport, session):
    session.set_low_angle(-30.0)
    session.set_high_angle(60.0)
    session.set_angle(-12.5)
    assert transport.writes == [
        ("write", REG_SCAN_LOW_ANGLE, -30.0),
        ("write", REG_SCAN_HIGH_ANGLE, 60.0),
        ("write", REG_SCAN_POSITION, -12.5),
    ]
    with pytest.raises(ValidationError):
        session.set_angle(170.5)


@pytest.mark.parametrize("setter", ["set_angle", "set_low_angle", "set_high_angle", "set_field_of_view"])
def test_angle_setters_reject_bool(transport, session, setter):
    with pytest.raises(ValidationError):
        getattr(session, setter)(True)
    assert transport.calls == []


@pytest.mark.parametrize("fov", [10.0, 100.0, 257.5, 340.0])
def test_field_of_view_round_trip(transport, session, fov):
    session.set_field_of_view(fov)
    assert session.get_high_angle() - session.get_low_angle() == pytest.approx(fov)
    assert session.get_field_of_view() == pytest.approx(fov)


def test_field_of_view_writes_high_then_low(transport, session):
    session.set_field_of_view(90.0)
    assert transport.writes == [
        ("write", REG_SCAN_HIGH_ANGLE, 45.0),
        ("write", REG_SCAN_LOW_ANGLE, -45.0),
    ]


@pytest.mark.parametrize("fov", [9.9, 0.0, 340.1, -100.0])
def test_field_of_view_out_of_range_writes_nothing(transport, session, fov):
    with pytest.raises(ValidationError):
        session.set_field_of_view(fov)
    assert transport.calls == []


def test_field_of_view_partial_failure(transport, session):
    transport.fail_writes[REG_SCAN_LOW_ANGLE] = TransportTimeout("lost")
    with pytest.raises(PartialConfigurationError) as excinfo:
        session.set_field_of_view(60.0)
    assert excinfo.value.written == ("high_angle",)
    assert isinstance(excinfo.value.cause, TransportTimeout)
    assert transport.registers[REG_SCAN_HIGH_ANGLE] == 30.0
    assert transport.registers[REG_SCAN_LOW_ANGLE] == -45.0


def test_field_of_view_first_write_failure_is_plain_transport_error(transport, session):
    transport.fail_writes[REG_SCAN_HIGH_ANGLE] = TransportFailure("unplugged")
    with pytest.raises(TransportFailure):
        session.set_field_of_view(60.0)
    assert len(transport.writes) == 1


def test_angle_window_partial_failure(transport, session):
    transport.fail_writes[REG_SCAN_HIGH_ANGLE] = TransportTimeout("lost")
    with pytest.raises(PartialConfigurationError) as excinfo:
        session.set_angle_window(-20.0, 40.0)
    assert excinfo.value.written == ("low_angle",)


def test_output_bitmap_validation(transport, session):
    with pytest.raises(ValidationError):
        session.set_output_fields(0x2FF)
    assert transport.calls == []
    session.set_output_fields(0x1FF)
    assert transport.writes == [("write", REG_DISTANCE_OUTPUT, 0x1FF)]


@pytest.mark.parametrize("bitmap", [0x1FF + 0.9, "0x1FF", True, None])
def test_output_bitmap_rejects_non_integers(transport, session, bitmap):
    with pytest.raises(ValidationError):
        session.set_output_fields(bitmap)
    assert transport.calls == []


def test_output_bitmap_read_as_flags(transport, session):
    transport.registers[REG_DISTANCE_OUTPUT] = 0x0C1
    fields = session.get_output_fields()
    assert OutputField.FIRST_RAW in fields
    assert OutputField.NOISE in fields
    assert OutputField.TEMPERATURE in fields
    assert OutputField.YAW_ANGLE not in fields


def test_enable_controls_use_device_encoding(transport, session):
    session.enable_stream(True)
    session.enable_stream(False)
    session.enable_scanning(True)
    session.enable_scanning(False)
    assert transport.writes == [
        ("write", REG_STREAM, 5),
        ("write", REG_STREAM, 0),
        ("write", REG_SCAN_ENABLE, 1),
        ("write", REG_SCAN_ENABLE, 0),
    ]


def test_refresh_identity(transport, session):
    assert session.identity is None
    identity = session.refresh_identity()
    assert identity.model_name == "SF45"
    assert identity.hardware_version == 3
    assert identity.firmware_version_str == "1.2.7"
    assert identity.serial_number == "A1B2C3"
    assert session.identity is identity


def test_refresh_identity_is_all_or_nothing(transport, session):
    first = session.refresh_identity()
    transport.fail_reads[REG_SERIAL_NUMBER] = TransportTimeout("no answer")
    with pytest.raises(TransportTimeout):
        session.refresh_identity()
    assert session.identity is first


def test_describe_lists_unit_header(transport, session):
    lines = session.describe()
    assert lines[0].startswith("Model:")
    assert lines[0].endswith("SF45")
    assert "1.2.7" in lines[2]


def test_poll_once_decodes_frame(transport, session):
    sample = session.poll_once()
    assert sample.first_dist_raw == 100
    assert sample.temperature == pytest.approx(80.0)
    assert transport.calls == [
        ("send_read", REG_DISTANCE_DATA),
        ("recv", REG_DISTANCE_DATA, 1000),
    ]


def test_poll_once_timeout_is_distinct(transport, session):
    transport.frames.append(TransportTimeout("silent"))
    with pytest.raises(TransportTimeout):
        session.poll_once()


def test_poll_once_short_frame_is_decode_error(transport, session):
    transport.frames.append(distance_frame()[:10])
    with pytest.raises(DecodeError):
        session.poll_once()


def test_close_disconnects_once(transport):
    with DeviceSession(transport) as session:
        assert transport.connected
    assert not transport.connected
    session.close()
