"""Handle for a single Circle on the mesh."""

import logging
import math
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from enum import Enum

from plugwise_gateway.core.errors import InvalidTimestampError, ProtocolError
from plugwise_gateway.protocol.constants import (
    LOG_DEPTH,
    LOG_SLOTS_PER_POSITION,
    SECONDS_PER_HOUR,
    AckStatus,
    Command,
)
from plugwise_gateway.protocol.frames import Frame, format_address
from plugwise_gateway.protocol.messages import (
    ClockInfoResponse,
    InfoResponse,
    clock_set_payload,
    parse_ack,
    parse_calibration,
    parse_clock_info,
    parse_info,
    parse_power_buffer,
    parse_power_use,
    power_buffer_payload,
    switch_payload,
)
from plugwise_gateway.protocol.power import (
    Calibration,
    PowerSample,
    PowerUsage,
    instantaneous_power,
    interval_energy,
    power_usage,
)
from plugwise_gateway.serial.session import ResponseFilter, TransportSession

logger = logging.getLogger(__name__)


def _ack_with_status(*statuses: int) -> ResponseFilter:
    """Accept acknowledgements carrying one of *statuses*."""

    def accept(frame: Frame) -> bool:
        try:
            return parse_ack(frame).status in statuses
        except ProtocolError:
            return False

    return accept


def _buffer_at(position: int) -> ResponseFilter:
    """Accept power buffers for log *position* only."""

    def accept(frame: Frame) -> bool:
        try:
            return parse_power_buffer(frame).log_position == position
        except ProtocolError:
            return False

    return accept


class CircleState(Enum):
    UNINITIALIZED = "uninitialized"
    CALIBRATED = "calibrated"


class Circle:
    """
    Operations on one Circle, addressed by its 64-bit hardware address.

    Power readings need the Circle's calibration constants; they are fetched
    once on first use (or explicitly with ``calibrate()``) and cached.
    """

    def __init__(self, session: TransportSession, address: int):
        """
        Initialize Circle handle.

        Args:
            session: Transport session to the stick
            address: Hardware address of the Circle
        """
        if not 0 <= address < 1 << 64:
            raise ValueError(f"Hardware address out of range: {address}")
        self.session = session
        self.address = address
        self._calibration: Calibration | None = None

    @property
    def mac(self) -> str:
        """Hardware address as 16 hex digits."""
        return format_address(self.address)

    @property
    def state(self) -> CircleState:
        return CircleState.CALIBRATED if self._calibration is not None else CircleState.UNINITIALIZED

    @property
    def calibration(self) -> Calibration | None:
        """Cached calibration constants, if fetched."""
        return self._calibration

    async def _request(
        self,
        command: Command,
        expected: Command,
        payload: bytes = b"",
        accept: ResponseFilter | None = None,
    ) -> Frame:
        return await self.session.request(command, self.address, payload, expected_response=expected, accept=accept)

    async def _acked(self, command: Command, payload: bytes, accepted: AckStatus) -> None:
        # A late acknowledgement of an earlier switch must not answer this one
        frame = await self._request(command, Command.ACK, payload, accept=_ack_with_status(accepted, AckStatus.NONE))
        ack = parse_ack(frame)
        if ack.status not in (accepted, AckStatus.NONE):
            raise ProtocolError(f"Circle {self.mac} answered 0x{command:04X} with status 0x{ack.status:04X}")

    async def calibrate(self) -> Calibration:
        """Fetch and cache the calibration constants."""
        calibration = parse_calibration(await self._request(Command.CALIBRATION, Command.CALIBRATION_RESPONSE))
        self._calibration = calibration
        logger.info("Circle %s calibrated: %s", self.mac, calibration)
        return calibration

    async def fetch_calibration(self) -> Calibration:
        """Return cached calibration constants, fetching them on first use."""
        if self._calibration is None:
            return await self.calibrate()
        return self._calibration

    async def switch_on(self) -> None:
        await self._acked(Command.SWITCH, switch_payload(True), AckStatus.RELAY_ON)
        logger.info("Circle %s switched on", self.mac)

    async def switch_off(self) -> None:
        await self._acked(Command.SWITCH, switch_payload(False), AckStatus.RELAY_OFF)
        logger.info("Circle %s switched off", self.mac)

    async def info(self) -> InfoResponse:
        return parse_info(await self._request(Command.INFO, Command.INFO_RESPONSE))

    async def relay_status(self) -> bool:
        """Query the relay state; True when switched on."""
        return (await self.info()).relay_state

    async def power_usage(self) -> PowerUsage:
        """Read the live counters converted to watts and kWh."""
        calibration = await self.fetch_calibration()
        response = parse_power_use(await self._request(Command.POWER_USE, Command.POWER_USE_RESPONSE))
        return power_usage(response.pulses_1s, response.pulses_8s, response.pulses_hour, calibration)

    async def current_power(self) -> float:
        """Current power draw in watts, averaged over the last 8 seconds."""
        calibration = await self.fetch_calibration()
        response = parse_power_use(await self._request(Command.POWER_USE, Command.POWER_USE_RESPONSE))
        return instantaneous_power(response.pulses_8s, calibration)

    async def power_history(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AsyncIterator[PowerSample]:
        """
        Iterate over logged hourly energy, oldest first.

        The log is read one buffer (four hours) at a time while iterating.
        Unwritten slots are skipped.

        Args:
            start: Earliest interval start to include (inclusive)
            end: Latest interval start to include (exclusive)

        Yields:
            PowerSample per logged hour
        """
        info = await self.info()
        last = info.log_position
        if last < 0:
            return

        calibration = await self.fetch_calibration()
        first = max(0, last - LOG_DEPTH + 1)
        if start is not None and info.timestamp is not None:
            hours = max(0, math.ceil((info.timestamp - start).total_seconds() / SECONDS_PER_HOUR))
            first = max(first, last - math.ceil(hours / LOG_SLOTS_PER_POSITION) - 1)

        logger.debug("Reading log of Circle %s, positions %d..%d", self.mac, first, last)
        for position in range(first, last + 1):
            frame = await self._request(
                Command.POWER_BUFFER,
                Command.POWER_BUFFER_RESPONSE,
                power_buffer_payload(position),
                accept=_buffer_at(position),
            )
            buffer = parse_power_buffer(frame)
            if buffer.log_position != position:
                raise ProtocolError(
                    f"Circle {self.mac} answered log position {position} with position {buffer.log_position}"
                )
            for slot in buffer.slots:
                if slot.timestamp is None:
                    continue
                if start is not None and slot.timestamp < start:
                    continue
                if end is not None and slot.timestamp >= end:
                    return
                yield PowerSample(
                    timestamp=slot.timestamp,
                    interval_seconds=slot.pulses.timespan,
                    energy_kwh=interval_energy(
                        slot.pulses.pulses, slot.pulses.timespan, calibration, slot.pulses.width
                    ),
                )

    async def set_clock(self, value: datetime | None = None) -> None:
        """Set the Circle's clock (default: now, UTC)."""
        value = value or datetime.now(timezone.utc)
        await self._acked(Command.CLOCK_SET, clock_set_payload(value), AckStatus.CLOCK_ACCEPTED)
        logger.info("Circle %s clock set to %s", self.mac, value.isoformat())

    async def clock_info(self) -> ClockInfoResponse:
        return parse_clock_info(await self._request(Command.CLOCK_INFO, Command.CLOCK_INFO_RESPONSE))

    async def get_clock(self) -> datetime:
        """
        Read the Circle's clock.

        The info response carries the date at minute resolution, the clock
        response the time of day with seconds; both are combined.

        Raises:
            InvalidTimestampError: If the Circle reports an invalid date or time
        """
        info = await self.info()
        clock = await self.clock_info()
        if info.timestamp is None:
            raise InvalidTimestampError(f"Circle {self.mac} reported an invalid date")
        try:
            value = info.timestamp.replace(hour=clock.hour, minute=clock.minute, second=clock.second)
        except ValueError as e:
            raise InvalidTimestampError(
                f"Circle {self.mac} reported invalid time {clock.hour}:{clock.minute}:{clock.second}"
            ) from e
        # Midnight passed between the two reads
        if value < info.timestamp - timedelta(hours=1):
            value += timedelta(days=1)
        return value

    def __repr__(self) -> str:
        return f"Circle({self.mac}, state={self.state.value})"
