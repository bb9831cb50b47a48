"""Shared test fixtures."""

import asyncio
from collections.abc import Callable

import pytest

from plugwise_gateway.protocol.frames import Frame
from plugwise_gateway.serial.simulator import CircleSimulator

# Address used by most tests
TEST_ADDRESS = 0x0123456789ABCDEF
OTHER_ADDRESS = 0xFEDCBA9876543210


class FakeConnection:
    """Scriptable byte stream standing in for the serial port."""

    def __init__(self, timeout: float = 0.01):
        self.timeout = timeout
        self.connected = True
        self.written: list[bytes] = []
        self.read_error: Exception | None = None
        self.write_error: Exception | None = None
        self.on_write: Callable[[bytes], None] | None = None
        self._incoming: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        """Queue bytes for the session to read."""
        self._incoming.put_nowait(data)

    def respond(self, frame: Frame) -> None:
        self.feed(frame.to_bytes())

    async def read(self) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        return await asyncio.wait_for(self._incoming.get(), timeout=self.timeout)

    async def write(self, data: bytes) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.written.append(data)
        if self.on_write is not None:
            self.on_write(data)

    async def disconnect(self) -> None:
        self.connected = False


async def wait_for_writes(connection: FakeConnection, count: int, timeout: float = 1.0) -> None:
    """Wait until *count* frames were written."""

    async def _poll():
        while len(connection.written) < count:
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def simulator() -> CircleSimulator:
    """Simulator with a short idle read timeout."""
    return CircleSimulator(timeout=0.01)
