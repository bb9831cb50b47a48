"""Payload encoding and decoding for Plugwise messages.

Payloads are sequences of fixed-width, upper-case hex fields. Integers are
big-endian, floats are the hex rendering of their IEEE-754 single precision
bit pattern, strings are taken verbatim.
"""

import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from plugwise_gateway.core.errors import ProtocolError
from plugwise_gateway.protocol.constants import (
    FAILURE_STATUSES,
    HZ_CODES,
    LOG_ADDRESS_OFFSET,
    LOG_ADDRESS_UNCHANGED,
    LOG_BYTES_PER_POSITION,
    SECONDS_PER_HOUR,
    Command,
)
from plugwise_gateway.protocol.frames import Frame
from plugwise_gateway.protocol.power import Calibration, Pulses

_MINUTES_PER_DAY = 24 * 60


def log_address(position: int) -> int:
    """Convert a log position to its memory address."""
    return position * LOG_BYTES_PER_POSITION + LOG_ADDRESS_OFFSET


def log_position(address: int) -> int:
    """Convert a log memory address to its position."""
    return (address - LOG_ADDRESS_OFFSET) // LOG_BYTES_PER_POSITION


@dataclass(frozen=True)
class DeviceDateTime:
    """
    Date and time as Circles encode it (``YY MM MMMM``).

    Attributes:
        year: Years since 2000
        month: Month (1-12)
        minutes: Minutes since the start of the month
    """

    year: int
    month: int
    minutes: int

    @classmethod
    def from_datetime(cls, value: datetime) -> "DeviceDateTime":
        """Build from a datetime; aware values are converted to UTC."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        minutes = (value.day - 1) * _MINUTES_PER_DAY + value.hour * 60 + value.minute
        return cls(year=value.year - 2000, month=value.month, minutes=minutes)

    def to_datetime(self) -> datetime | None:
        """
        Interpret as a UTC datetime.

        Returns:
            The timestamp, or None if the fields do not form a valid date
            (unwritten log slots read as all ones)
        """
        if not 1 <= self.month <= 12:
            return None
        day, remainder = divmod(self.minutes, _MINUTES_PER_DAY)
        hour, minute = divmod(remainder, 60)
        try:
            return datetime(2000 + self.year, self.month, day + 1, hour, minute, tzinfo=timezone.utc)
        except ValueError:
            return None

    def to_payload(self) -> bytes:
        return b"%02X%02X%04X" % (self.year, self.month, self.minutes)


class PayloadReader:
    """Sequential reader over a hex payload."""

    def __init__(self, payload: bytes, message: str = "payload"):
        self._payload = payload
        self._offset = 0
        self._message = message

    @property
    def remaining(self) -> int:
        return len(self._payload) - self._offset

    def _take(self, digits: int) -> bytes:
        if self.remaining < digits:
            raise ProtocolError(
                f"{self._message}: expected {digits} more hex digits at offset {self._offset}, "
                f"only {self.remaining} left"
            )
        chunk = self._payload[self._offset : self._offset + digits]
        self._offset += digits
        return chunk

    def read_uint(self, size: int) -> int:
        """Read an unsigned big-endian integer of *size* bytes."""
        chunk = self._take(size * 2)
        try:
            return int(chunk, 16)
        except ValueError as e:
            raise ProtocolError(f"{self._message}: invalid hex field {chunk!r}") from e

    def read_float(self) -> float:
        """Read an IEEE-754 single precision float."""
        chunk = self._take(8)
        try:
            return struct.unpack(">f", bytes.fromhex(chunk.decode("ascii")))[0]
        except ValueError as e:
            raise ProtocolError(f"{self._message}: invalid float field {chunk!r}") from e

    def read_string(self, length: int) -> str:
        return self._take(length).decode("ascii", errors="replace")

    def read_datetime(self) -> DeviceDateTime:
        return DeviceDateTime(year=self.read_uint(1), month=self.read_uint(1), minutes=self.read_uint(2))

    def finish(self) -> None:
        """Ensure the payload was consumed completely."""
        if self.remaining:
            raise ProtocolError(f"{self._message}: {self.remaining} unexpected trailing hex digits")


def _reader(frame: Frame, expected: Command) -> PayloadReader:
    if frame.command != expected:
        raise ProtocolError(f"Expected 0x{expected:04X} response, got 0x{frame.command:04X}")
    return PayloadReader(frame.payload, message=expected.name.lower())


# ============================================================================
# Requests
# ============================================================================


def switch_payload(on: bool) -> bytes:
    return b"01" if on else b"00"


def power_buffer_payload(position: int) -> bytes:
    """Payload of a power buffer request for log *position*."""
    if position < 0:
        raise ValueError(f"Log position must not be negative: {position}")
    return b"%08X" % log_address(position)


def clock_set_payload(value: datetime, position: int | None = None) -> bytes:
    """
    Payload of a clock set request.

    Args:
        value: New device time; aware values are converted to UTC
        position: Log position to rewind to, or None to leave the log untouched
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    address = LOG_ADDRESS_UNCHANGED if position is None else log_address(position)
    return DeviceDateTime.from_datetime(value).to_payload() + b"%08X%02X%02X%02X%02X" % (
        address,
        value.hour,
        value.minute,
        value.second,
        value.isoweekday(),
    )


# ============================================================================
# Responses
# ============================================================================


@dataclass(frozen=True)
class Ack:
    sequence: int | None
    status: int
    address: int | None

    @property
    def failed(self) -> bool:
        return self.status in FAILURE_STATUSES


@dataclass(frozen=True)
class InitializeResponse:
    """Circle+ network status (response 0011)."""

    address: int
    is_online: bool
    network_id: int
    short_id: int
    unknown1: int
    unknown2: int


@dataclass(frozen=True)
class InfoResponse:
    """Circle status (response 0024)."""

    address: int
    timestamp: datetime | None
    log_position: int
    relay_state: bool
    hz: int
    hw_version: str
    fw_version: datetime
    node_type: int


@dataclass(frozen=True)
class PowerUseResponse:
    """Live pulse counters (response 0013)."""

    address: int
    pulses_1s: Pulses
    pulses_8s: Pulses
    pulses_hour: Pulses
    unknown: tuple[int, int, int]


@dataclass(frozen=True)
class LogSlot:
    """One hourly slot of the energy log; *timestamp* is None if unwritten."""

    timestamp: datetime | None
    pulses: Pulses


@dataclass(frozen=True)
class PowerBufferResponse:
    """Four energy log slots (response 0049)."""

    address: int
    slots: tuple[LogSlot, ...]
    log_position: int


@dataclass(frozen=True)
class ClockInfoResponse:
    """Device clock (response 003F)."""

    address: int
    hour: int
    minute: int
    second: int
    day_of_week: int
    unknown1: int
    unknown2: int


def parse_ack(frame: Frame) -> Ack:
    reader = _reader(frame, Command.ACK)
    status = reader.read_uint(2)
    reader.finish()
    return Ack(sequence=frame.sequence, status=status, address=frame.address)


def parse_initialize(frame: Frame) -> InitializeResponse:
    reader = _reader(frame, Command.INITIALIZE_RESPONSE)
    unknown1 = reader.read_uint(1)
    is_online = reader.read_uint(1)
    network_id = reader.read_uint(8)
    short_id = reader.read_uint(2)
    unknown2 = reader.read_uint(1)
    reader.finish()
    return InitializeResponse(
        address=frame.address,
        is_online=is_online == 1,
        network_id=network_id,
        short_id=short_id,
        unknown1=unknown1,
        unknown2=unknown2,
    )


def parse_info(frame: Frame) -> InfoResponse:
    reader = _reader(frame, Command.INFO_RESPONSE)
    timestamp = reader.read_datetime().to_datetime()
    last_address = reader.read_uint(4)
    relay_state = reader.read_uint(1)
    hz = reader.read_uint(1)
    hw_version = reader.read_string(12)
    fw_version = reader.read_uint(4)
    node_type = reader.read_uint(1)
    reader.finish()
    return InfoResponse(
        address=frame.address,
        timestamp=timestamp,
        log_position=log_position(last_address),
        relay_state=relay_state == 1,
        hz=HZ_CODES.get(hz, 0),
        hw_version=hw_version,
        fw_version=datetime(1970, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=fw_version),
        node_type=node_type,
    )


def parse_calibration(frame: Frame) -> Calibration:
    reader = _reader(frame, Command.CALIBRATION_RESPONSE)
    gain_a = reader.read_float()
    gain_b = reader.read_float()
    off_total = reader.read_float()
    off_noise = reader.read_float()
    reader.finish()
    return Calibration(gain_a=gain_a, gain_b=gain_b, off_total=off_total, off_noise=off_noise)


def parse_power_use(frame: Frame) -> PowerUseResponse:
    reader = _reader(frame, Command.POWER_USE_RESPONSE)
    pulses_1s = Pulses(reader.read_uint(2), 1, width=16)
    pulses_8s = Pulses(reader.read_uint(2), 8, width=16)
    pulses_hour = Pulses(reader.read_uint(4), SECONDS_PER_HOUR, width=32)
    unknown = (reader.read_uint(2), reader.read_uint(2), reader.read_uint(2))
    reader.finish()
    return PowerUseResponse(
        address=frame.address,
        pulses_1s=pulses_1s,
        pulses_8s=pulses_8s,
        pulses_hour=pulses_hour,
        unknown=unknown,
    )


def parse_power_buffer(frame: Frame) -> PowerBufferResponse:
    reader = _reader(frame, Command.POWER_BUFFER_RESPONSE)
    slots = []
    for _ in range(4):
        timestamp = reader.read_datetime().to_datetime()
        pulses = Pulses(reader.read_uint(4), SECONDS_PER_HOUR, width=32)
        slots.append(LogSlot(timestamp=timestamp, pulses=pulses))
    position = log_position(reader.read_uint(4))
    reader.finish()
    return PowerBufferResponse(address=frame.address, slots=tuple(slots), log_position=position)


def parse_clock_info(frame: Frame) -> ClockInfoResponse:
    reader = _reader(frame, Command.CLOCK_INFO_RESPONSE)
    response = ClockInfoResponse(
        address=frame.address,
        hour=reader.read_uint(1),
        minute=reader.read_uint(1),
        second=reader.read_uint(1),
        day_of_week=reader.read_uint(1),
        unknown1=reader.read_uint(1),
        unknown2=reader.read_uint(2),
    )
    reader.finish()
    return response
