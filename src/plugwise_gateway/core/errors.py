"""Domain-specific errors for plugwise_gateway."""


class PlugwiseError(Exception):
    """Base error for plugwise_gateway."""


class TransportError(PlugwiseError):
    """Raised when the serial byte stream fails; the session must be reopened."""


class RequestTimeoutError(PlugwiseError):
    """Raised when no matching response arrived after all retries."""


class ProtocolError(PlugwiseError):
    """Raised when a well-formed response is unexpected or cannot be decoded."""


class NotOnlineError(ProtocolError):
    """Raised when the Circle+ reports that the mesh network is not online."""


class InvalidTimestampError(ProtocolError):
    """Raised when a Circle returns a date/time that cannot be interpreted."""


class EncodingError(PlugwiseError):
    """Raised when an outbound message violates protocol constraints."""
