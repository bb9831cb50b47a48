"""Serial port byte stream to the Plugwise USB stick.

The stick enumerates as a USB serial adapter and talks 115200 8N1. This module
only moves bytes; framing and correlation live in ``protocol.frames`` and
``serial.session``.
"""

import asyncio
import logging

import serial_asyncio
from serial import EIGHTBITS, PARITY_NONE, STOPBITS_ONE, SerialException

from plugwise_gateway.protocol.constants import READ_TIMEOUT, SERIAL_BAUD

logger = logging.getLogger(__name__)


class SerialConnection:
    """
    Byte stream over the stick's serial port.

    ``read()`` returns whatever arrived, or raises ``TimeoutError`` after
    ``timeout`` seconds of silence so the caller's loop can notice cancellation.
    Port errors surface as ``OSError`` (``SerialException`` is one) and mark the
    stream disconnected.
    """

    def __init__(
        self,
        port: str,
        baudrate: int = SERIAL_BAUD,
        bytesize: int = EIGHTBITS,
        parity: str = PARITY_NONE,
        stopbits: float = STOPBITS_ONE,
        timeout: float = READ_TIMEOUT,
    ):
        """
        Args:
            port: Device path of the stick, e.g. ``/dev/ttyUSB0``
            baudrate: Line speed; the stick uses 115200
            bytesize: Data bits
            parity: Parity mode
            stopbits: Stop bits
            timeout: Seconds an idle ``read()`` waits before raising TimeoutError
        """
        self.port = port
        self.baudrate = baudrate
        self.bytesize = bytesize
        self.parity = parity
        self.stopbits = stopbits
        self.timeout = timeout

        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._open = False
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._open and self._writer is not None and not self._writer.is_closing()

    def _streams(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        if not self.connected or self._reader is None or self._writer is None:
            raise ConnectionError(f"Stick port {self.port} is not open")
        return self._reader, self._writer

    async def connect(self) -> bool:
        """
        Open the port.

        Returns:
            True once the port is open, False if it could not be opened
        """
        async with self._lock:
            if self.connected:
                return True

            logger.info("Opening stick on %s (%d baud)", self.port, self.baudrate)
            try:
                self._reader, self._writer = await serial_asyncio.open_serial_connection(
                    url=self.port,
                    baudrate=self.baudrate,
                    bytesize=self.bytesize,
                    parity=self.parity,
                    stopbits=self.stopbits,
                )
            except (OSError, SerialException) as e:
                logger.error("Cannot open %s: %s", self.port, e)
                self._open = False
                return False

            self._open = True
            logger.info("Stick port %s open", self.port)
            return True

    async def disconnect(self) -> None:
        """Close the port; safe to call when already closed."""
        async with self._lock:
            if not self._open:
                return

            writer = self._writer
            self._reader = None
            self._writer = None
            self._open = False

            if writer is not None:
                try:
                    writer.close()
                    await writer.wait_closed()
                except (OSError, SerialException) as e:
                    logger.warning("Error while closing %s: %s", self.port, e)
            logger.info("Stick port %s closed", self.port)

    async def read(self, n: int = 4096) -> bytes:
        """
        Read up to *n* bytes.

        Returns:
            Received bytes; empty once the port reached end of stream

        Raises:
            ConnectionError: If the port is not open
            TimeoutError: If nothing arrived within ``timeout``
        """
        reader, _ = self._streams()
        try:
            return await asyncio.wait_for(reader.read(n), timeout=self.timeout)
        except TimeoutError:
            raise
        except (OSError, SerialException) as e:
            logger.error("Read from %s failed: %s", self.port, e)
            self._open = False
            raise

    async def write(self, data: bytes) -> None:
        """
        Write *data* and wait until it is flushed to the port.

        Raises:
            ConnectionError: If the port is not open
        """
        _, writer = self._streams()
        try:
            writer.write(data)
            await writer.drain()
        except (OSError, SerialException) as e:
            logger.error("Write to %s failed: %s", self.port, e)
            self._open = False
            raise

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
