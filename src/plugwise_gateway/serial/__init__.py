"""Serial communication layer."""

from .connection import SerialConnection
from .session import TransportSession
from .simulator import CircleSimulator

__all__ = ["SerialConnection", "TransportSession", "CircleSimulator"]
