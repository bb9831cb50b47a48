"""In-memory stand-in for the Plugwise stick and its Circles.

``CircleSimulator`` offers the same read/write interface as
``SerialConnection``. Written request frames are decoded and answered the way
a healthy network would: the stick acknowledges every request, then the target
Circle responds. Relay states, clocks and a synthetic energy log are tracked
per Circle address. Fault knobs (dropped, corrupted or rejected responses,
failing writes) let tests exercise retry and error paths.
"""

import asyncio
import logging
import math
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from plugwise_gateway.protocol.constants import (
    LOG_SLOTS_PER_POSITION,
    READ_TIMEOUT,
    AckStatus,
    Command,
)
from plugwise_gateway.protocol.frames import Frame, FrameDecoder
from plugwise_gateway.protocol.messages import DeviceDateTime, PayloadReader, log_address, log_position
from plugwise_gateway.protocol.power import Calibration

logger = logging.getLogger(__name__)

STICK_ADDRESS = 0x000D6F0000000001
DEFAULT_CLOCK = datetime(2015, 4, 25, 11, 36, 58, tzinfo=timezone.utc)
HW_VERSION = b"653907014023"
FW_VERSION = 0x4E0844C2
HZ_50 = 0x85

_UNWRITTEN_SLOT = b"FFFFFFFFFFFFFFFF"


def _float_hex(value: float) -> bytes:
    return struct.pack(">f", value).hex().upper().encode("ascii")


@dataclass
class SimulatedCircle:
    """State of one simulated Circle."""

    relay: bool = False
    clock: datetime = DEFAULT_CLOCK
    pulses_1s: int = 0
    pulses_8s: int = 0
    pulses_hour: int = 0
    log_start: datetime = field(default_factory=lambda: DEFAULT_CLOCK.replace(minute=0, second=0) - timedelta(hours=8))
    log_hours: int = 8
    hourly_pulses: int = 3600

    @property
    def log_positions(self) -> int:
        return math.ceil(self.log_hours / LOG_SLOTS_PER_POSITION)


class CircleSimulator:
    """Byte stream emulating the stick, the Circle+ and any number of Circles."""

    def __init__(
        self,
        timeout: float = READ_TIMEOUT,
        network_online: bool = True,
        calibration: Calibration = Calibration(gain_a=1.0, gain_b=0.0, off_total=0.0, off_noise=0.0),
    ):
        """
        Initialize simulator.

        Args:
            timeout: Idle read timeout in seconds
            network_online: Whether the Circle+ reports the mesh as online
            calibration: Calibration reported by every Circle
        """
        self.timeout = timeout
        self.network_online = network_online
        self.calibration = calibration
        self.circles: dict[int, SimulatedCircle] = {}
        self.unreachable: set[int] = set()
        self.silent: set[int] = set()
        self.drop_responses = 0
        self.corrupt_responses = 0
        self.fail_reads = False
        self.fail_writes = False
        self.received: list[Frame] = []

        self._decoder = FrameDecoder(response=False)
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue()
        self._sequence = 0
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    def circle(self, address: int) -> SimulatedCircle:
        """Get (creating on first use) the state of the Circle at *address*."""
        return self.circles.setdefault(address, SimulatedCircle())

    async def connect(self) -> bool:
        self._connected = True
        logger.info("Simulator connected")
        return True

    async def disconnect(self) -> None:
        if self._connected:
            logger.info("Simulator disconnected")
        self._connected = False

    async def read(self, n: int = 4096) -> bytes:
        """
        Return the next queued response.

        Raises:
            ConnectionError: If disconnected or read failure is simulated
            TimeoutError: If nothing is queued within the timeout
        """
        if not self._connected:
            raise ConnectionError("Simulator not connected")
        if self.fail_reads:
            raise ConnectionError("Simulated read failure")
        data = await asyncio.wait_for(self._outbox.get(), timeout=self.timeout)
        if self.fail_reads:
            raise ConnectionError("Simulated read failure")
        return data

    async def write(self, data: bytes) -> None:
        if not self._connected:
            raise ConnectionError("Simulator not connected")
        if self.fail_writes:
            raise ConnectionError("Simulated write failure")
        self._decoder.feed(data)
        for frame in self._decoder.frames():
            self.received.append(frame)
            self._handle(frame)

    def inject(self, data: bytes) -> None:
        """Queue raw bytes as if the stick had sent them."""
        self._outbox.put_nowait(data)

    def _next_sequence(self) -> int:
        self._sequence = (self._sequence + 1) & 0xFFFF
        return self._sequence

    def _emit(self, frame: Frame, faults: bool = True) -> None:
        data = frame.to_bytes()
        if faults and self.drop_responses > 0:
            self.drop_responses -= 1
            logger.debug("Simulator dropping %r", frame)
            return
        if faults and self.corrupt_responses > 0:
            self.corrupt_responses -= 1
            # Flip one body character so the CRC no longer matches
            index = len(data) - 8
            data = data[:index] + (b"0" if data[index : index + 1] != b"0" else b"1") + data[index + 1 :]
        self._outbox.put_nowait(data)

    def _ack(self, status: int, address: int | None = None, faults: bool = False) -> None:
        self._emit(
            Frame(command=Command.ACK, address=address, payload=b"%04X" % status, sequence=self._next_sequence()),
            faults=faults,
        )

    def _respond(self, command: Command, address: int, payload: bytes) -> None:
        self._emit(Frame(command=command, address=address, payload=payload, sequence=self._next_sequence()))

    def _handle(self, frame: Frame) -> None:
        # The stick accepts every well-formed request first
        self._ack(AckStatus.ACCEPTED)

        if frame.command == Command.INITIALIZE:
            self._respond(
                Command.INITIALIZE_RESPONSE,
                STICK_ADDRESS,
                b"00%02X%016X%04X00" % (1 if self.network_online else 0, 0x0123456789ABCDEF, 0xABCD),
            )
            return

        address = frame.address
        if address in self.silent:
            return
        if address in self.unreachable:
            self._ack(AckStatus.TIMEOUT, address, faults=True)
            return

        handler = {
            Command.SWITCH: self._handle_switch,
            Command.CLOCK_SET: self._handle_clock_set,
            Command.INFO: self._handle_info,
            Command.CALIBRATION: self._handle_calibration,
            Command.POWER_USE: self._handle_power_use,
            Command.POWER_BUFFER: self._handle_power_buffer,
            Command.CLOCK_INFO: self._handle_clock_info,
        }.get(frame.command)

        if handler is None:
            logger.warning("Simulator has no handler for %r", frame)
            self._ack(AckStatus.FAILED, address, faults=True)
            return
        handler(address, self.circle(address), frame.payload)

    def _handle_switch(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        circle.relay = int(payload[:2], 16) != 0
        self._ack(AckStatus.RELAY_ON if circle.relay else AckStatus.RELAY_OFF, address, faults=True)

    def _handle_clock_set(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        reader = PayloadReader(payload, message="clock_set")
        date = reader.read_datetime().to_datetime()
        reader.read_uint(4)
        hour, minute, second = reader.read_uint(1), reader.read_uint(1), reader.read_uint(1)
        reader.read_uint(1)
        if date is None:
            self._ack(AckStatus.FAILED, address, faults=True)
            return
        circle.clock = date.replace(hour=hour, minute=minute, second=second)
        self._ack(AckStatus.CLOCK_ACCEPTED, address, faults=True)

    def _handle_info(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        last_address = log_address(max(circle.log_positions - 1, 0))
        self._respond(
            Command.INFO_RESPONSE,
            address,
            DeviceDateTime.from_datetime(circle.clock).to_payload()
            + b"%08X%02X%02X" % (last_address, 1 if circle.relay else 0, HZ_50)
            + HW_VERSION
            + b"%08X02" % FW_VERSION,
        )

    def _handle_calibration(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        cal = self.calibration
        self._respond(
            Command.CALIBRATION_RESPONSE,
            address,
            _float_hex(cal.gain_a) + _float_hex(cal.gain_b) + _float_hex(cal.off_total) + _float_hex(cal.off_noise),
        )

    def _handle_power_use(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        self._respond(
            Command.POWER_USE_RESPONSE,
            address,
            b"%04X%04X%08X000000000000" % (circle.pulses_1s, circle.pulses_8s, circle.pulses_hour),
        )

    def _handle_power_buffer(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        position = log_position(int(payload, 16))
        slots = bytearray()
        for slot in range(LOG_SLOTS_PER_POSITION):
            hour = position * LOG_SLOTS_PER_POSITION + slot
            if position >= 0 and hour < circle.log_hours:
                timestamp = circle.log_start + timedelta(hours=hour)
                slots.extend(DeviceDateTime.from_datetime(timestamp).to_payload())
                slots.extend(b"%08X" % circle.hourly_pulses)
            else:
                slots.extend(_UNWRITTEN_SLOT)
        self._respond(Command.POWER_BUFFER_RESPONSE, address, bytes(slots) + b"%08X" % log_address(position))

    def _handle_clock_info(self, address: int, circle: SimulatedCircle, payload: bytes) -> None:
        clock = circle.clock
        self._respond(
            Command.CLOCK_INFO_RESPONSE,
            address,
            b"%02X%02X%02X%02X01457A" % (clock.hour, clock.minute, clock.second, clock.isoweekday()),
        )

