"""Handle for the Circle+ network coordinator and session helpers."""

import logging

from plugwise_gateway.core.errors import NotOnlineError, TransportError
from plugwise_gateway.devices.circle import Circle
from plugwise_gateway.protocol.constants import REQUEST_TIMEOUT, RETRY_ATTEMPTS, SERIAL_BAUD, Command
from plugwise_gateway.protocol.frames import format_address
from plugwise_gateway.protocol.messages import InitializeResponse, parse_initialize
from plugwise_gateway.serial.connection import SerialConnection
from plugwise_gateway.serial.session import TransportSession
from plugwise_gateway.serial.simulator import CircleSimulator

logger = logging.getLogger(__name__)


class CirclePlus:
    """The coordinator reached through the USB stick; hands out Circle handles."""

    def __init__(self, session: TransportSession):
        self.session = session
        self.network_info: InitializeResponse | None = None
        self._circles: dict[int, Circle] = {}

    @property
    def circles(self) -> dict[int, Circle]:
        """Handles created so far, by hardware address."""
        return dict(self._circles)

    async def initialize(self) -> InitializeResponse:
        """
        Initialize the stick and check that the mesh network is up.

        Raises:
            NotOnlineError: If the Circle+ reports the network offline
        """
        frame = await self.session.request(Command.INITIALIZE, expected_response=Command.INITIALIZE_RESPONSE)
        response = parse_initialize(frame)
        if not response.is_online:
            raise NotOnlineError("Circle+ reports the network is not online")
        self.network_info = response
        logger.info(
            "Network online: id=%s short_id=0x%04X", format_address(response.network_id), response.short_id
        )
        return response

    def circle(self, address: int) -> Circle:
        """Get the cached handle for *address*, creating it without calibrating."""
        handle = self._circles.get(address)
        if handle is None:
            handle = Circle(self.session, address)
            self._circles[address] = handle
        return handle

    async def create_circle(self, address: int, calibrate: bool = True) -> Circle:
        """
        Get a Circle handle, optionally fetching its calibration right away.

        Raises:
            RequestTimeoutError: If calibration was requested and the Circle did not answer
        """
        handle = self.circle(address)
        if calibrate:
            await handle.fetch_calibration()
        return handle

    async def close(self) -> None:
        await self.session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


async def _start(session: TransportSession, initialize: bool) -> CirclePlus:
    circle_plus = CirclePlus(session)
    if initialize:
        try:
            await circle_plus.initialize()
        except BaseException:
            await session.close()
            raise
    return circle_plus


async def connect_device(
    port: str,
    baudrate: int = SERIAL_BAUD,
    timeout: float = REQUEST_TIMEOUT,
    max_retries: int = RETRY_ATTEMPTS,
    initialize: bool = True,
) -> CirclePlus:
    """
    Open the stick on *port* and return its Circle+.

    Raises:
        TransportError: If the serial port cannot be opened
        NotOnlineError: If the network is not online
    """
    connection = SerialConnection(port, baudrate=baudrate)
    if not await connection.connect():
        raise TransportError(f"Unable to open serial port {port}")
    session = await TransportSession.open(connection, timeout=timeout, max_retries=max_retries)
    return await _start(session, initialize)


async def connect_simulator(
    simulator: CircleSimulator | None = None,
    timeout: float = REQUEST_TIMEOUT,
    max_retries: int = RETRY_ATTEMPTS,
    initialize: bool = True,
) -> CirclePlus:
    """Return a Circle+ backed by an in-memory simulator."""
    simulator = simulator or CircleSimulator()
    await simulator.connect()
    session = await TransportSession.open(simulator, timeout=timeout, max_retries=max_retries)
    return await _start(session, initialize)
