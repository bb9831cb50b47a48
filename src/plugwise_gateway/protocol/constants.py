"""Protocol constants for Plugwise serial communication."""

from enum import IntEnum

# ============================================================================
# Frame Structure
# ============================================================================

HEADER = b"\x05\x05\x03\x03"
FOOTER = b"\r\n"
CRC_LEN = 4  # CRC16 as four ASCII hex digits
CODE_LEN = 4
SEQUENCE_LEN = 4
ADDRESS_LEN = 16
MAX_PAYLOAD_LEN = 256
MAX_BODY_LEN = CODE_LEN + SEQUENCE_LEN + ADDRESS_LEN + MAX_PAYLOAD_LEN
MAX_FRAME_LEN = len(HEADER) + MAX_BODY_LEN + CRC_LEN + len(FOOTER)
HEX_DIGITS = frozenset(b"0123456789ABCDEF")

# ============================================================================
# Message Codes
# ============================================================================


class Command(IntEnum):
    """Protocol message codes (requests and responses)."""

    ACK = 0x0000
    INITIALIZE = 0x000A
    INITIALIZE_RESPONSE = 0x0011
    POWER_USE = 0x0012
    POWER_USE_RESPONSE = 0x0013
    CLOCK_SET = 0x0016
    SWITCH = 0x0017
    INFO = 0x0023
    INFO_RESPONSE = 0x0024
    CALIBRATION = 0x0026
    CALIBRATION_RESPONSE = 0x0027
    CLOCK_INFO = 0x003E
    CLOCK_INFO_RESPONSE = 0x003F
    POWER_BUFFER = 0x0048
    POWER_BUFFER_RESPONSE = 0x0049


# Requests sent without a hardware address
ADDRESSLESS_REQUESTS = frozenset({Command.INITIALIZE})

# ============================================================================
# Acknowledgement Status Codes
# ============================================================================


class AckStatus(IntEnum):
    """Status word carried by ACK (0000) messages."""

    NONE = 0x0000
    ACCEPTED = 0x00C1
    FAILED = 0x00C2
    CLOCK_ACCEPTED = 0x00D7
    RELAY_ON = 0x00D8
    RELAY_OFF = 0x00DE
    TIMEOUT = 0x00E1


FAILURE_STATUSES = frozenset({AckStatus.FAILED, AckStatus.TIMEOUT})

# ============================================================================
# Power Measurement
# ============================================================================

PULSES_PER_KW_SECOND = 468.9385193
SECONDS_PER_HOUR = 3600
HZ_CODES = {133: 50, 197: 60}

# ============================================================================
# Energy Log Memory
# ============================================================================

LOG_ADDRESS_OFFSET = 0x44000
LOG_BYTES_PER_POSITION = 32
LOG_SLOTS_PER_POSITION = 4
LOG_DEPTH = 6016  # Positions available in Circle log memory
LOG_ADDRESS_UNCHANGED = 0xFFFFFFFF

# ============================================================================
# Communication Settings
# ============================================================================

SERIAL_BAUD = 115200
REQUEST_TIMEOUT = 1.0  # Seconds per attempt
RETRY_ATTEMPTS = 3  # Resends after the first attempt
READ_TIMEOUT = 0.5  # Background reader poll interval (seconds)
CLOSE_TIMEOUT = 2.0  # Seconds close() waits for the reader to stop
