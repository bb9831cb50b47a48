"""Core application functionality."""

from .config import Settings, setup_logging
from .errors import (
    EncodingError,
    InvalidTimestampError,
    NotOnlineError,
    PlugwiseError,
    ProtocolError,
    RequestTimeoutError,
    TransportError,
)

__all__ = [
    "Settings",
    "setup_logging",
    "PlugwiseError",
    "TransportError",
    "RequestTimeoutError",
    "ProtocolError",
    "NotOnlineError",
    "InvalidTimestampError",
    "EncodingError",
]
