"""Frame construction and parsing for the Plugwise protocol.

Frame structure::

    [05 05 03 03][BODY ...][CRC x4][\\r\\n]

The body is upper-case ASCII hex. Outbound requests carry
``CODE(4) [ADDRESS(16)] PAYLOAD``; inbound responses carry
``CODE(4) SEQ(4) ADDRESS(16) PAYLOAD``. Acknowledgements (code ``0000``)
carry ``0000 SEQ(4) STATUS(4) [ADDRESS(16)]``. The CRC is CRC16/XMODEM of the
body, written as four hex digits.
"""

import logging
import string
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from plugwise_gateway.core.errors import EncodingError
from plugwise_gateway.protocol.constants import (
    ADDRESS_LEN,
    ADDRESSLESS_REQUESTS,
    CODE_LEN,
    CRC_LEN,
    FOOTER,
    HEADER,
    HEX_DIGITS,
    MAX_BODY_LEN,
    MAX_FRAME_LEN,
    MAX_PAYLOAD_LEN,
    SEQUENCE_LEN,
    Command,
)
from plugwise_gateway.protocol.crc import format_crc16, verify_crc16

logger = logging.getLogger(__name__)

_STATUS_LEN = 4
_MIN_FRAME_LEN = len(HEADER) + CODE_LEN + CRC_LEN + len(FOOTER)


class DecodeStatus(Enum):
    """Non-frame outcomes of decoding."""

    NEED_MORE_DATA = "need_more_data"
    INVALID = "invalid"


def format_address(address: int) -> str:
    """Render a 64-bit hardware address as 16 upper-case hex digits."""
    return f"{address:016X}"


def parse_address(text: str) -> int:
    """Parse a 16 hex digit hardware address.

    Raises:
        ValueError: If *text* is not exactly 16 hex digits.
    """
    if len(text) != ADDRESS_LEN or not all(c in string.hexdigits for c in text):
        raise ValueError(f"Hardware address must be {ADDRESS_LEN} hex digits: {text!r}")
    return int(text, 16)


def _is_hex(data: bytes) -> bool:
    return HEX_DIGITS.issuperset(data)


@dataclass(frozen=True, repr=False)
class Frame:
    """
    Represents one Plugwise protocol message.

    Attributes:
        command: Message code (16-bit)
        address: Hardware address of the Circle, or None
        payload: Upper-case ASCII hex argument bytes
        sequence: Sequence number assigned by the stick (responses only)
    """

    command: int
    address: Optional[int] = None
    payload: bytes = b""
    sequence: Optional[int] = None

    @property
    def is_response(self) -> bool:
        """Whether the frame carries a sequence number (inbound layout)."""
        return self.sequence is not None

    def body(self) -> bytes:
        """
        Build the ASCII hex body (everything between preamble and CRC).

        Raises:
            EncodingError: If any field violates protocol constraints
        """
        if not 0 <= self.command <= 0xFFFF:
            raise EncodingError(f"Command code out of range: {self.command}")
        if self.address is not None and not 0 <= self.address < 1 << 64:
            raise EncodingError(f"Hardware address out of range: {self.address}")
        if len(self.payload) > MAX_PAYLOAD_LEN:
            raise EncodingError(f"Payload of {len(self.payload)} bytes exceeds maximum of {MAX_PAYLOAD_LEN}")
        if not _is_hex(self.payload):
            raise EncodingError(f"Payload must be upper-case hex: {self.payload!r}")

        body = bytearray(b"%04X" % self.command)
        address = format_address(self.address).encode("ascii") if self.address is not None else b""

        if self.sequence is not None:
            if not 0 <= self.sequence <= 0xFFFF:
                raise EncodingError(f"Sequence number out of range: {self.sequence}")
            body.extend(b"%04X" % self.sequence)
            if self.command == Command.ACK:
                # Acknowledgements put the address after the status word
                body.extend(self.payload)
                body.extend(address)
                return bytes(body)
            if self.address is None:
                raise EncodingError(f"Response 0x{self.command:04X} requires a hardware address")
        elif self.command in ADDRESSLESS_REQUESTS:
            if self.address is not None:
                raise EncodingError(f"Request 0x{self.command:04X} does not take a hardware address")
        elif self.address is None:
            raise EncodingError(f"Request 0x{self.command:04X} requires a hardware address")

        body.extend(address)
        body.extend(self.payload)
        return bytes(body)

    def to_bytes(self) -> bytes:
        """
        Convert frame to bytes for transmission.

        Returns:
            Complete frame as bytes

        Example:
            >>> Frame(command=Command.INITIALIZE).to_bytes()
            b'\\x05\\x05\\x03\\x03000AB43C\\r\\n'
        """
        body = self.body()
        return HEADER + body + format_crc16(body) + FOOTER

    @classmethod
    def from_body(cls, body: bytes, response: bool = True) -> Optional["Frame"]:
        """
        Parse a checksum-verified body.

        Args:
            body: ASCII hex body
            response: True for inbound (stick to host) layout, False for requests

        Returns:
            Parsed Frame, or None if the body is malformed
        """
        if len(body) < CODE_LEN or len(body) > MAX_BODY_LEN or not _is_hex(body):
            return None

        command = int(body[:CODE_LEN], 16)
        rest = body[CODE_LEN:]

        if not response:
            if command in ADDRESSLESS_REQUESTS:
                return cls(command=command, payload=rest)
            if len(rest) < ADDRESS_LEN:
                return None
            return cls(command=command, address=int(rest[:ADDRESS_LEN], 16), payload=rest[ADDRESS_LEN:])

        if len(rest) < SEQUENCE_LEN:
            return None
        sequence = int(rest[:SEQUENCE_LEN], 16)
        rest = rest[SEQUENCE_LEN:]

        if command == Command.ACK:
            if len(rest) == _STATUS_LEN:
                return cls(command=command, payload=rest, sequence=sequence)
            if len(rest) == _STATUS_LEN + ADDRESS_LEN:
                address = int(rest[_STATUS_LEN:], 16)
                return cls(command=command, address=address, payload=rest[:_STATUS_LEN], sequence=sequence)
            return None

        if len(rest) < ADDRESS_LEN:
            return None
        return cls(
            command=command,
            address=int(rest[:ADDRESS_LEN], 16),
            payload=rest[ADDRESS_LEN:],
            sequence=sequence,
        )

    @classmethod
    def from_bytes(cls, data: bytes, response: bool = True) -> Optional["Frame"]:
        """
        Parse a frame from received bytes.

        Args:
            data: Raw frame bytes, preamble through terminator
            response: True for inbound layout, False for requests

        Returns:
            Parsed Frame object, or None if invalid
        """
        result = decode(data, response=response)
        return result if isinstance(result, Frame) else None

    def __repr__(self) -> str:
        """String representation for debugging."""
        address = format_address(self.address) if self.address is not None else "-"
        sequence = f"0x{self.sequence:04X}" if self.sequence is not None else "-"
        return (
            f"Frame(cmd=0x{self.command:04X}, seq={sequence}, addr={address}, "
            f"payload={self.payload.decode('ascii', errors='replace') or '(empty)'})"
        )


def encode(command: int, address: int | None = None, payload: bytes = b"") -> bytes:
    """Encode an outbound request frame.

    Raises:
        EncodingError: If the payload is too long or not upper-case hex, or the
            address does not suit the command.
    """
    return Frame(command=command, address=address, payload=payload).to_bytes()


def decode(data: bytes, response: bool = True) -> Frame | DecodeStatus:
    """Decode exactly one complete frame.

    Any structural or checksum defect yields ``DecodeStatus.INVALID``.
    """
    if len(data) < _MIN_FRAME_LEN:
        return DecodeStatus.INVALID
    if not data.startswith(HEADER) or not data.endswith(FOOTER):
        return DecodeStatus.INVALID

    body = data[len(HEADER) : -(CRC_LEN + len(FOOTER))]
    crc = data[-(CRC_LEN + len(FOOTER)) : -len(FOOTER)]
    if not verify_crc16(body, crc):
        return DecodeStatus.INVALID

    frame = Frame.from_body(body, response=response)
    if frame is None:
        return DecodeStatus.INVALID
    return frame


class FrameDecoder:
    """Incremental decoder over an arbitrarily chunked byte stream.

    Bytes are accumulated with ``feed()``; each ``decode()`` call returns the
    next complete frame, ``NEED_MORE_DATA`` or ``INVALID``. Anything before a
    preamble is noise (stick debug output, stray bytes) and is discarded.
    """

    def __init__(self, response: bool = True, max_frame_len: int = MAX_FRAME_LEN):
        """
        Initialize decoder.

        Args:
            response: Decode inbound (response) layout when True, requests otherwise
            max_frame_len: Resynchronisation window; a preamble not terminated
                within this many bytes is dropped
        """
        self.response = response
        self.max_frame_len = max_frame_len
        self._buffer = bytearray()
        self._stats = {
            "frames_read": 0,
            "frames_invalid": 0,
            "bytes_read": 0,
            "noise_bytes": 0,
        }

    @property
    def stats(self) -> dict:
        """Get decoder statistics."""
        return self._stats.copy()

    @property
    def buffered(self) -> int:
        """Number of bytes waiting in the buffer."""
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        """Append received bytes."""
        self._buffer.extend(data)
        self._stats["bytes_read"] += len(data)

    def _discard_noise(self, count: int) -> None:
        if count <= 0:
            return
        logger.debug("Discarding %d bytes before preamble: %r", count, bytes(self._buffer[:count]))
        del self._buffer[:count]
        self._stats["noise_bytes"] += count

    def _invalid(self, raw: bytes, reason: str) -> DecodeStatus:
        logger.warning("Dropping invalid frame (%s): %s", reason, raw.hex())
        self._stats["frames_invalid"] += 1
        return DecodeStatus.INVALID

    def decode(self) -> Frame | DecodeStatus:
        """Extract the next result from the buffer."""
        header_idx = self._buffer.find(HEADER)
        if header_idx == -1:
            # Keep a possible partial preamble at the tail
            self._discard_noise(len(self._buffer) - (len(HEADER) - 1))
            return DecodeStatus.NEED_MORE_DATA

        self._discard_noise(header_idx)

        footer_idx = self._buffer.find(FOOTER, len(HEADER))
        next_header = self._buffer.find(HEADER, len(HEADER))

        if next_header != -1 and (footer_idx == -1 or next_header < footer_idx):
            raw = bytes(self._buffer[:next_header])
            del self._buffer[:next_header]
            return self._invalid(raw, "truncated")

        if footer_idx == -1:
            if len(self._buffer) > self.max_frame_len:
                raw = bytes(self._buffer[: len(HEADER)])
                del self._buffer[: len(HEADER)]
                return self._invalid(raw, "no terminator within resync window")
            return DecodeStatus.NEED_MORE_DATA

        frame_end = footer_idx + len(FOOTER)
        raw = bytes(self._buffer[:frame_end])
        del self._buffer[:frame_end]

        result = decode(raw, response=self.response)
        if result is DecodeStatus.INVALID:
            return self._invalid(raw, "CRC or validation error")

        self._stats["frames_read"] += 1
        return result

    def frames(self) -> Iterator[Frame]:
        """Yield every complete frame currently buffered, skipping invalid ones."""
        while True:
            result = self.decode()
            if result is DecodeStatus.NEED_MORE_DATA:
                return
            if isinstance(result, Frame):
                yield result

    def reset(self) -> None:
        """Clear the receive buffer."""
        self._buffer.clear()
