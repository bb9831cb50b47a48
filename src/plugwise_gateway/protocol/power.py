"""Conversion of Circle pulse counters into physical units.

Circles count pulses of their metering chip. A per-device calibration set
corrects the raw count before it is scaled to kilowatts::

    x   = pulses / timespan + off_noise
    pps = x * x * gain_b + x * gain_a + off_total
    kW  = pps / 468.9385193

All functions here are pure; equal inputs give bit-identical outputs.
"""

from dataclasses import dataclass
from datetime import datetime

from plugwise_gateway.protocol.constants import PULSES_PER_KW_SECOND, SECONDS_PER_HOUR


@dataclass(frozen=True)
class Calibration:
    """Calibration constants reported by a Circle (request 0026)."""

    gain_a: float
    gain_b: float
    off_total: float
    off_noise: float


@dataclass(frozen=True)
class Pulses:
    """
    A raw pulse counter reading.

    Attributes:
        pulses: Counter value as reported
        timespan: Seconds the counter covers
        width: Counter width in bits; an all-ones value marks an unfilled counter
    """

    pulses: int
    timespan: int
    width: int = 16

    @property
    def is_valid(self) -> bool:
        """False for empty or unfilled counters."""
        return self.pulses != 0 and self.pulses != (1 << self.width) - 1


@dataclass(frozen=True)
class PowerUsage:
    """One live power reading of a Circle."""

    watts_1s: float
    watts_8s: float
    kwh_last_hour: float


@dataclass(frozen=True)
class PowerSample:
    """Energy consumed over one logged interval."""

    timestamp: datetime
    interval_seconds: int
    energy_kwh: float

    @property
    def average_watts(self) -> float:
        """Mean power over the interval."""
        if self.interval_seconds <= 0:
            return 0.0
        return self.energy_kwh * 1000.0 * SECONDS_PER_HOUR / self.interval_seconds


def pulses_per_second(sample: Pulses, calibration: Calibration) -> float:
    """
    Calibrated pulse rate for a counter reading.

    Args:
        sample: Raw counter reading
        calibration: Calibration constants of the reporting Circle

    Returns:
        Corrected pulses per second, 0.0 for empty or unfilled counters
    """
    if not sample.is_valid or sample.timespan <= 0:
        return 0.0

    corrected = sample.pulses / sample.timespan + calibration.off_noise
    return corrected * corrected * calibration.gain_b + corrected * calibration.gain_a + calibration.off_total


def instantaneous_power(sample: Pulses, calibration: Calibration) -> float:
    """Average power in watts over the counter's timespan."""
    return pulses_per_second(sample, calibration) / PULSES_PER_KW_SECOND * 1000.0


def interval_energy(pulses: int, interval_seconds: int, calibration: Calibration, width: int = 32) -> float:
    """
    Energy in kWh for a pulse count accumulated over an interval.

    Args:
        pulses: Pulses counted during the interval
        interval_seconds: Length of the interval
        calibration: Calibration constants of the reporting Circle
        width: Counter width in bits

    Returns:
        Energy in kWh, 0.0 for unfilled counters or non-positive intervals
    """
    if interval_seconds <= 0:
        return 0.0
    sample = Pulses(pulses=pulses, timespan=interval_seconds, width=width)
    return pulses_per_second(sample, calibration) / PULSES_PER_KW_SECOND * interval_seconds / SECONDS_PER_HOUR


def power_usage(pulses_1s: Pulses, pulses_8s: Pulses, pulses_hour: Pulses, calibration: Calibration) -> PowerUsage:
    """Convert the three counters of a power-use response."""
    return PowerUsage(
        watts_1s=instantaneous_power(pulses_1s, calibration),
        watts_8s=instantaneous_power(pulses_8s, calibration),
        kwh_last_hour=interval_energy(pulses_hour.pulses, pulses_hour.timespan, calibration, pulses_hour.width),
    )
