"""CRC-16 calculation for Plugwise protocol frames."""

from plugwise_gateway.protocol.constants import CRC_LEN, HEX_DIGITS


def calculate_crc16(data: bytes) -> int:
    """
    Calculate CRC-16/XMODEM over a frame body.

    Polynomial 0x1021, initial value 0, no reflection and no final XOR. The
    checksum covers the ASCII hex body between the header and the CRC field.

    Args:
        data: ASCII body bytes

    Returns:
        16-bit CRC value

    Example:
        >>> hex(calculate_crc16(b"123456789"))
        '0x31c3'
    """
    crc = 0

    for byte in data:
        s = byte ^ (crc >> 8)
        t = s ^ (s >> 4)
        crc = (crc << 8) ^ t ^ (t << 5) ^ (t << 12)
        crc = crc & 0xFFFF

    return crc


def format_crc16(data: bytes) -> bytes:
    """
    Render the CRC of *data* the way it travels on the wire.

    Example:
        >>> format_crc16(b"000A")
        b'B43C'
    """
    return b"%04X" % calculate_crc16(data)


def verify_crc16(data: bytes, expected_crc: bytes) -> bool:
    """
    Verify a wire-format CRC field against *data*.

    The field must be exactly four upper-case hex digits; anything else fails.

    Args:
        data: Frame body (excluding CRC)
        expected_crc: CRC field as received

    Returns:
        True if CRC matches, False otherwise
    """
    if len(expected_crc) != CRC_LEN or not HEX_DIGITS.issuperset(expected_crc):
        return False
    return int(expected_crc, 16) == calculate_crc16(data)
