"""Device handles for the Circle+ and Circles."""

from .circle import Circle, CircleState
from .circle_plus import CirclePlus, connect_device, connect_simulator

__all__ = ["Circle", "CircleState", "CirclePlus", "connect_device", "connect_simulator"]
