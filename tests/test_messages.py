"""Unit tests for message payload encoding and decoding."""

from datetime import datetime, timedelta, timezone

import pytest

from plugwise_gateway.core.errors import ProtocolError
from plugwise_gateway.protocol.constants import Command
from plugwise_gateway.protocol.frames import Frame
from plugwise_gateway.protocol.messages import (
    DeviceDateTime,
    PayloadReader,
    clock_set_payload,
    log_address,
    log_position,
    parse_ack,
    parse_calibration,
    parse_clock_info,
    parse_info,
    parse_initialize,
    parse_power_buffer,
    parse_power_use,
    power_buffer_payload,
    switch_payload,
)
from plugwise_gateway.protocol.power import Calibration, Pulses

ADDRESS = 0x0123456789ABCDEF


def response(command: Command, payload: bytes, address: int = ADDRESS) -> Frame:
    return Frame(command=command, address=address, payload=payload, sequence=1)


class TestDeviceDateTime:
    """Tests for the YY MM MMMM date encoding."""

    def test_from_datetime(self):
        value = datetime(2015, 4, 25, 11, 36, 58, tzinfo=timezone.utc)
        encoded = DeviceDateTime.from_datetime(value)

        assert encoded == DeviceDateTime(year=15, month=4, minutes=35256)
        assert encoded.to_payload() == b"0F0489B8"

    def test_to_datetime_drops_seconds(self):
        value = datetime(2024, 2, 29, 23, 59, 45, tzinfo=timezone.utc)

        assert DeviceDateTime.from_datetime(value).to_datetime() == value.replace(second=0)

    def test_aware_datetime_converted_to_utc(self):
        value = datetime(2024, 1, 1, 1, 30, tzinfo=timezone(timedelta(hours=2)))

        expected = datetime(2023, 12, 31, 23, 30, tzinfo=timezone.utc)
        assert DeviceDateTime.from_datetime(value).to_datetime() == expected

    def test_unwritten_slot_is_none(self):
        assert DeviceDateTime(year=0xFF, month=0xFF, minutes=0xFFFF).to_datetime() is None

    def test_invalid_month_is_none(self):
        assert DeviceDateTime(year=20, month=0, minutes=0).to_datetime() is None
        assert DeviceDateTime(year=20, month=13, minutes=0).to_datetime() is None

    def test_invalid_day_is_none(self):
        # 30 February
        assert DeviceDateTime(year=21, month=2, minutes=29 * 1440).to_datetime() is None


class TestPayloadReader:
    """Tests for sequential payload reading."""

    def test_read_fields(self):
        reader = PayloadReader(b"0A0102030405060708ABCD3F800000")

        assert reader.read_uint(1) == 0x0A
        assert reader.read_uint(8) == 0x0102030405060708
        assert reader.read_string(4) == "ABCD"
        assert reader.read_float() == 1.0
        reader.finish()

    def test_short_payload(self):
        reader = PayloadReader(b"0A")
        with pytest.raises(ProtocolError):
            reader.read_uint(2)

    def test_trailing_data(self):
        reader = PayloadReader(b"0A0B")
        reader.read_uint(1)
        with pytest.raises(ProtocolError):
            reader.finish()


class TestRequests:
    """Tests for request payload builders."""

    def test_switch_payload(self):
        assert switch_payload(True) == b"01"
        assert switch_payload(False) == b"00"

    def test_log_address_conversion(self):
        assert log_address(0) == 0x44000
        assert log_address(1) == 0x44020
        assert log_position(0x44020) == 1
        assert log_position(0x48398) == 540

    def test_power_buffer_payload(self):
        assert power_buffer_payload(0) == b"00044000"
        assert power_buffer_payload(540) == b"00048380"

    def test_power_buffer_negative_position(self):
        with pytest.raises(ValueError):
            power_buffer_payload(-1)

    def test_clock_set_payload(self):
        """Test date, unchanged log address, time and ISO weekday."""
        value = datetime(2015, 4, 25, 11, 36, 58, tzinfo=timezone.utc)

        assert clock_set_payload(value) == b"0F0489B8" + b"FFFFFFFF" + b"0B243A06"

    def test_clock_set_payload_sunday(self):
        value = datetime(2024, 6, 2, 8, 0, 0, tzinfo=timezone.utc)

        assert clock_set_payload(value).endswith(b"07")

    def test_clock_set_payload_with_log_position(self):
        value = datetime(2015, 4, 25, 11, 36, 58, tzinfo=timezone.utc)

        assert clock_set_payload(value, position=1)[8:16] == b"00044020"


class TestResponses:
    """Tests for response parsers."""

    def test_parse_ack(self):
        ack = parse_ack(Frame(command=Command.ACK, address=ADDRESS, payload=b"00D8", sequence=7))

        assert ack.status == 0xD8
        assert ack.address == ADDRESS
        assert ack.sequence == 7
        assert ack.failed is False

    def test_parse_ack_failure(self):
        assert parse_ack(Frame(command=Command.ACK, address=ADDRESS, payload=b"00E1", sequence=7)).failed is True

    def test_parse_initialize(self):
        result = parse_initialize(
            response(Command.INITIALIZE_RESPONSE, b"0101" + b"0123456789ABCDEF" + b"ABCD" + b"00")
        )

        assert result.is_online is True
        assert result.network_id == 0x0123456789ABCDEF
        assert result.short_id == 0xABCD

    def test_parse_initialize_offline(self):
        result = parse_initialize(response(Command.INITIALIZE_RESPONSE, b"0000" + b"0" * 16 + b"0000" + b"00"))

        assert result.is_online is False

    def test_parse_info(self):
        result = parse_info(response(Command.INFO_RESPONSE, b"0F0489B80004839801856539070140234E0844C202"))

        assert result.address == ADDRESS
        assert result.timestamp == datetime(2015, 4, 25, 11, 36, tzinfo=timezone.utc)
        assert result.log_position == 540
        assert result.relay_state is True
        assert result.hz == 50
        assert result.hw_version == "653907014023"
        assert result.fw_version == datetime.fromtimestamp(0x4E0844C2, tz=timezone.utc)
        assert result.node_type == 2

    def test_parse_info_relay_off_60hz(self):
        payload = b"0F0489B800048398" + b"00C5" + b"653907014023" + b"4E0844C202"
        result = parse_info(response(Command.INFO_RESPONSE, payload))

        assert result.relay_state is False
        assert result.hz == 60

    def test_parse_calibration(self):
        payload = b"3F800000" + b"3E800000" + b"BF000000" + b"40000000"
        result = parse_calibration(response(Command.CALIBRATION_RESPONSE, payload))

        assert result == Calibration(gain_a=1.0, gain_b=0.25, off_total=-0.5, off_noise=2.0)

    def test_parse_power_use(self):
        result = parse_power_use(response(Command.POWER_USE_RESPONSE, b"00100080" + b"00000E10" + b"000000000000"))

        assert result.pulses_1s == Pulses(16, 1, width=16)
        assert result.pulses_8s == Pulses(128, 8, width=16)
        assert result.pulses_hour == Pulses(3600, 3600, width=32)

    def test_parse_power_buffer(self):
        payload = b"0D094D1C0000007B0D094D58000000760D094D94000000710D094DD00000003100044000"
        result = parse_power_buffer(response(Command.POWER_BUFFER_RESPONSE, payload))

        assert result.log_position == 0
        assert len(result.slots) == 4
        assert result.slots[0].timestamp == datetime(2013, 9, 14, 17, 0, tzinfo=timezone.utc)
        assert result.slots[0].pulses.pulses == 0x7B
        assert result.slots[1].timestamp == datetime(2013, 9, 14, 18, 0, tzinfo=timezone.utc)
        assert result.slots[3].pulses.pulses == 0x31

    def test_parse_power_buffer_unwritten_slots(self):
        payload = b"0D094D1C0000007B" + b"F" * 48 + b"00044000"
        result = parse_power_buffer(response(Command.POWER_BUFFER_RESPONSE, payload))

        assert result.slots[0].timestamp is not None
        assert [slot.timestamp for slot in result.slots[1:]] == [None, None, None]

    def test_parse_clock_info(self):
        result = parse_clock_info(response(Command.CLOCK_INFO_RESPONSE, b"0B243A0601457A"))

        assert (result.hour, result.minute, result.second) == (11, 36, 58)
        assert result.day_of_week == 6
        assert result.unknown2 == 0x457A

    def test_wrong_response_code(self):
        with pytest.raises(ProtocolError):
            parse_info(response(Command.CLOCK_INFO_RESPONSE, b"0B243A0601457A"))

    def test_short_payload(self):
        with pytest.raises(ProtocolError):
            parse_clock_info(response(Command.CLOCK_INFO_RESPONSE, b"0B243A"))

    def test_trailing_payload(self):
        with pytest.raises(ProtocolError):
            parse_clock_info(response(Command.CLOCK_INFO_RESPONSE, b"0B243A0601457A00"))
