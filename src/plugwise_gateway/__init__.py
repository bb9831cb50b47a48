"""Plugwise Circle/Circle+ serial protocol engine and REST gateway."""

__version__ = "0.1.0"
