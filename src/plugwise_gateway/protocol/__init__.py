"""Plugwise protocol implementation."""

from plugwise_gateway.protocol.constants import FOOTER, HEADER, AckStatus, Command
from plugwise_gateway.protocol.crc import calculate_crc16, verify_crc16
from plugwise_gateway.protocol.frames import DecodeStatus, Frame, FrameDecoder, decode, encode
from plugwise_gateway.protocol.power import (
    Calibration,
    PowerSample,
    PowerUsage,
    Pulses,
    instantaneous_power,
    interval_energy,
    pulses_per_second,
)

__all__ = [
    "Frame",
    "FrameDecoder",
    "DecodeStatus",
    "encode",
    "decode",
    "calculate_crc16",
    "verify_crc16",
    "HEADER",
    "FOOTER",
    "AckStatus",
    "Command",
    "Calibration",
    "Pulses",
    "PowerSample",
    "PowerUsage",
    "pulses_per_second",
    "instantaneous_power",
    "interval_energy",
]
