"""Unit tests for the serial port byte stream."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from serial import SerialException

from plugwise_gateway.core.errors import TransportError
from plugwise_gateway.devices import connect_device
from plugwise_gateway.serial.connection import SerialConnection

OPEN_SERIAL = "plugwise_gateway.serial.connection.serial_asyncio.open_serial_connection"


def make_streams(data: bytes = b"") -> tuple[MagicMock, MagicMock]:
    """Create mock reader/writer pair."""
    reader = MagicMock()
    reader.read = AsyncMock(return_value=data)
    writer = MagicMock()
    writer.is_closing.return_value = False
    writer.drain = AsyncMock()
    writer.wait_closed = AsyncMock()
    return reader, writer


class TestConnect:
    """Tests for opening and closing the port."""

    @pytest.mark.asyncio
    async def test_connect(self):
        reader, writer = make_streams()
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))) as open_serial:
            connection = SerialConnection("/dev/ttyUSB0")
            assert await connection.connect() is True

        assert connection.connected is True
        kwargs = open_serial.call_args.kwargs
        assert kwargs["url"] == "/dev/ttyUSB0"
        assert kwargs["baudrate"] == 115200

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        """Test an unavailable port reports False instead of raising."""
        with patch(OPEN_SERIAL, new=AsyncMock(side_effect=SerialException("no such port"))):
            connection = SerialConnection("/dev/ttyUSB9")
            assert await connection.connect() is False

        assert connection.connected is False

    @pytest.mark.asyncio
    async def test_connect_twice(self):
        reader, writer = make_streams()
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))) as open_serial:
            connection = SerialConnection("/dev/ttyUSB0")
            await connection.connect()
            await connection.connect()

        assert open_serial.await_count == 1

    @pytest.mark.asyncio
    async def test_disconnect(self):
        reader, writer = make_streams()
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            connection = SerialConnection("/dev/ttyUSB0")
            await connection.connect()

        await connection.disconnect()

        writer.close.assert_called_once()
        assert connection.connected is False

    @pytest.mark.asyncio
    async def test_context_manager(self):
        reader, writer = make_streams()
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            async with SerialConnection("/dev/ttyUSB0") as connection:
                assert connection.connected is True

        assert connection.connected is False


class TestReadWrite:
    """Tests for byte transfer."""

    @pytest.mark.asyncio
    async def test_read(self):
        reader, writer = make_streams(b"\x05\x05\x03\x03")
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            connection = SerialConnection("/dev/ttyUSB0")
            await connection.connect()

        assert await connection.read() == b"\x05\x05\x03\x03"

    @pytest.mark.asyncio
    async def test_read_timeout(self):
        """Test an idle port raises TimeoutError and stays connected."""

        async def never(n):
            await asyncio.sleep(10)

        reader, writer = make_streams()
        reader.read = AsyncMock(side_effect=never)
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            connection = SerialConnection("/dev/ttyUSB0", timeout=0.01)
            await connection.connect()

        with pytest.raises(TimeoutError):
            await connection.read()
        assert connection.connected is True

    @pytest.mark.asyncio
    async def test_read_error_marks_disconnected(self):
        reader, writer = make_streams()
        reader.read = AsyncMock(side_effect=SerialException("device reports readiness to read but returned no data"))
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            connection = SerialConnection("/dev/ttyUSB0")
            await connection.connect()

        with pytest.raises(OSError):
            await connection.read()
        assert connection.connected is False

    @pytest.mark.asyncio
    async def test_write(self):
        reader, writer = make_streams()
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            connection = SerialConnection("/dev/ttyUSB0")
            await connection.connect()

        await connection.write(b"\x05\x05\x03\x03000AB43C\r\n")

        writer.write.assert_called_once_with(b"\x05\x05\x03\x03000AB43C\r\n")
        writer.drain.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_connected(self):
        connection = SerialConnection("/dev/ttyUSB0")

        with pytest.raises(ConnectionError):
            await connection.read()
        with pytest.raises(ConnectionError):
            await connection.write(b"")


class TestConnectDevice:
    """Tests for opening a Circle+ on a serial port."""

    @pytest.mark.asyncio
    async def test_port_unavailable(self):
        with patch(OPEN_SERIAL, new=AsyncMock(side_effect=SerialException("no such port"))):
            with pytest.raises(TransportError):
                await connect_device("/dev/ttyUSB9")

    @pytest.mark.asyncio
    async def test_open_without_initialize(self):
        """Test the session runs on the opened port until closed."""

        async def idle(n):
            await asyncio.sleep(10)

        reader, writer = make_streams()
        reader.read = AsyncMock(side_effect=idle)
        with patch(OPEN_SERIAL, new=AsyncMock(return_value=(reader, writer))):
            circle_plus = await connect_device("/dev/ttyUSB0", timeout=0.05, initialize=False)

        assert circle_plus.session.closed is False
        assert circle_plus.network_info is None

        await circle_plus.close()
        assert circle_plus.session.closed is True
        writer.close.assert_called_once()
