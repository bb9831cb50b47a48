"""Request/response correlation over the serial byte stream.

The stick answers requests asynchronously and interleaves answers for
different Circles. Each request waits on a slot keyed by the response code it
expects and the Circle address; a background task decodes incoming frames and
resolves the matching slot. Requests sharing a key run one at a time in FIFO
order, requests with different keys may be in flight together.

A request may pass an ``accept`` filter. Frames under its key that the filter
refuses (a stale answer to an earlier request, a buffer for another log
position) are discarded and the request keeps waiting.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

from plugwise_gateway.core.errors import ProtocolError, RequestTimeoutError, TransportError
from plugwise_gateway.protocol.constants import (
    CLOSE_TIMEOUT,
    FAILURE_STATUSES,
    REQUEST_TIMEOUT,
    RETRY_ATTEMPTS,
    Command,
)
from plugwise_gateway.protocol.frames import Frame, FrameDecoder, encode, format_address

logger = logging.getLogger(__name__)

PendingKey = tuple[int, int | None]
ResponseFilter = Callable[[Frame], bool]


class ByteStream(Protocol):
    """Interface of the byte stream a session runs on."""

    @property
    def connected(self) -> bool: ...

    async def read(self) -> bytes: ...

    async def write(self, data: bytes) -> None: ...

    async def disconnect(self) -> None: ...


def _describe(key: PendingKey) -> str:
    code, address = key
    target = format_address(address) if address is not None else "stick"
    return f"0x{code:04X} from {target}"


class TransportSession:
    """Correlates requests with responses on one serial byte stream."""

    def __init__(
        self,
        connection: ByteStream,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = RETRY_ATTEMPTS,
    ):
        """
        Initialize session.

        Args:
            connection: Open byte stream; owned by the session from now on
            timeout: Seconds to wait for a response per attempt
            max_retries: Resends after the first attempt before giving up
        """
        self.connection = connection
        self.timeout = timeout
        self.max_retries = max_retries

        self._decoder = FrameDecoder(response=True)
        self._pending: dict[PendingKey, tuple[asyncio.Future, ResponseFilter | None]] = {}
        self._key_locks: dict[PendingKey, asyncio.Lock] = {}
        self._write_lock = asyncio.Lock()
        self._reader_task: asyncio.Task | None = None
        self._closed = True
        self._closing = False
        self._failure: TransportError | None = None
        self._stats = {
            "requests": 0,
            "responses": 0,
            "retries": 0,
            "timeouts": 0,
            "rejected": 0,
            "unsolicited": 0,
            "mismatched": 0,
            "frames_written": 0,
        }

    @classmethod
    async def open(
        cls,
        connection: ByteStream,
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = RETRY_ATTEMPTS,
    ) -> "TransportSession":
        """Create a session on *connection* and start its reader."""
        session = cls(connection, timeout=timeout, max_retries=max_retries)
        session.start()
        return session

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        """Number of requests currently waiting for a response."""
        return len(self._pending)

    @property
    def stats(self) -> dict[str, Any]:
        """Get session and decoder statistics."""
        stats: dict[str, Any] = self._stats.copy()
        stats["decoder"] = self._decoder.stats
        stats["pending"] = len(self._pending)
        return stats

    def start(self) -> None:
        """Start the background reader."""
        if self._reader_task and not self._reader_task.done():
            logger.warning("Session reader already running")
            return
        self._closed = False
        self._closing = False
        self._failure = None
        self._decoder.reset()
        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info("Transport session started")

    async def close(self) -> None:
        """Stop the reader, fail pending requests and release the byte stream."""
        self._closing = True
        task = self._reader_task
        if task is not None:
            task.cancel()
            # The loop also checks _closing, so a cancel lost inside read() still ends it
            done, _ = await asyncio.wait({task}, timeout=CLOSE_TIMEOUT)
            if not done:
                logger.warning("Session reader did not stop within %.1fs", CLOSE_TIMEOUT)
            elif not task.cancelled() and task.exception() is not None:
                logger.error("Session reader failed: %r", task.exception())
            self._reader_task = None

        self._closed = True
        self._fail_pending(TransportError("Session closed"))
        await self.connection.disconnect()
        logger.info("Transport session closed")

    def _check_open(self) -> None:
        if self._closed:
            if self._failure is not None:
                raise TransportError(f"Session closed after transport failure: {self._failure}")
            raise TransportError("Session is closed")

    def _fail_pending(self, error: TransportError) -> None:
        for future, _ in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(str(error)))

    def _fail(self, error: TransportError) -> None:
        """Mark the session broken after a byte stream failure."""
        if self._failure is None:
            logger.error("Transport failure, closing session: %s", error)
        self._failure = error
        self._closed = True
        self._fail_pending(error)

    async def _read_loop(self) -> None:
        """Read bytes, decode frames and dispatch them until cancelled or failed."""
        while not self._closing:
            try:
                data = await self.connection.read()
            except TimeoutError:
                continue
            except (OSError, EOFError) as e:
                self._fail(TransportError(f"Serial read failed: {e}"))
                return

            if not data:
                self._fail(TransportError("Serial stream closed"))
                return

            self._decoder.feed(data)
            for frame in self._decoder.frames():
                try:
                    self._dispatch(frame)
                except Exception:
                    logger.exception("Error dispatching %r", frame)

    def _dispatch(self, frame: Frame) -> None:
        logger.debug("Frame received: %r", frame)

        if frame.command == Command.ACK and frame.address is not None:
            status = int(frame.payload, 16)
            if status in FAILURE_STATUSES and self._reject(frame.address, status):
                return

        entry = self._pending.get((frame.command, frame.address))
        if entry is None and frame.address is not None:
            entry = self._pending.get((frame.command, None))

        if entry is None or entry[0].done():
            self._stats["unsolicited"] += 1
            logger.debug("Unsolicited frame: %r", frame)
            return

        future, accept = entry
        if accept is not None and not accept(frame):
            self._stats["mismatched"] += 1
            logger.debug("Discarding frame that does not answer the pending request: %r", frame)
            return

        self._stats["responses"] += 1
        future.set_result(frame)

    def _reject(self, address: int, status: int) -> bool:
        """Fail every pending request for *address*; False if there were none."""
        rejected = False
        for (code, pending_address), (future, _) in self._pending.items():
            if pending_address == address and not future.done():
                future.set_exception(
                    ProtocolError(f"Request for {_describe((code, address))} rejected with status 0x{status:04X}")
                )
                rejected = True
        if rejected:
            self._stats["rejected"] += 1
        return rejected

    async def _write(self, data: bytes) -> None:
        async with self._write_lock:
            self._check_open()
            try:
                await self.connection.write(data)
            except OSError as e:
                error = TransportError(f"Serial write failed: {e}")
                self._fail(error)
                raise error from e
            self._stats["frames_written"] += 1
            logger.debug("Frame written: %s", data.hex())

    async def send(self, command: int, address: int | None = None, payload: bytes = b"") -> None:
        """
        Write a request without waiting for any response.

        Raises:
            EncodingError: If the request cannot be encoded
            TransportError: If the session is closed or the write fails
        """
        self._check_open()
        await self._write(encode(command, address, payload))

    async def request(
        self,
        command: int,
        address: int | None = None,
        payload: bytes = b"",
        expected_response: int = Command.ACK,
        accept: ResponseFilter | None = None,
    ) -> Frame:
        """
        Send a request and wait for its response.

        The identical frame is resent when no response arrives within
        ``timeout``, up to ``max_retries`` times.

        Args:
            command: Request message code
            address: Target Circle, or None for stick-level requests
            payload: Upper-case hex arguments
            expected_response: Message code of the awaited response
            accept: Optional check a frame under the key must pass to count
                as the response; refused frames are dropped

        Returns:
            The matching response frame

        Raises:
            EncodingError: If the request cannot be encoded
            RequestTimeoutError: If no response arrived after all attempts
            ProtocolError: If the node rejected the request
            TransportError: If the byte stream failed or the session is closed
        """
        self._check_open()
        data = encode(command, address, payload)
        key: PendingKey = (expected_response, address)
        lock = self._key_locks.setdefault(key, asyncio.Lock())

        async with lock:
            self._check_open()
            future = asyncio.get_running_loop().create_future()
            self._pending[key] = (future, accept)
            self._stats["requests"] += 1
            try:
                for attempt in range(self.max_retries + 1):
                    if attempt:
                        self._stats["retries"] += 1
                        logger.debug(
                            "No response to 0x%04X, retrying (%d/%d)", command, attempt, self.max_retries
                        )
                    await self._write(data)
                    try:
                        return await asyncio.wait_for(asyncio.shield(future), timeout=self.timeout)
                    except TimeoutError:
                        continue

                self._stats["timeouts"] += 1
                raise RequestTimeoutError(
                    f"No {_describe(key)} after {self.max_retries + 1} attempts of {self.timeout}s"
                )
            finally:
                entry = self._pending.get(key)
                if entry is not None and entry[0] is future:
                    del self._pending[key]
                if not future.done():
                    future.cancel()
                elif not future.cancelled():
                    # Failures raised through _write leave the same error unread here
                    future.exception()

    async def __aenter__(self):
        """Async context manager entry."""
        if self._reader_task is None:
            self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
