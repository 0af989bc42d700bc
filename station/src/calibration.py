"""
Battery calibration profiles for state-of-charge and charging-state estimation.

A profile bundles the voltage curve end points and classifier thresholds for
one battery chemistry so the normalizer can be pointed at a different pack
without code changes.

CHANGELOG:
- 2026-10-05: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

from station.src.exceptions import ConfigurationError


@dataclass(frozen=True)
class CalibrationProfile:
    """Calibration constants for one battery chemistry.

    Attributes:
        voltage_min: Resting voltage mapped to 0 % state of charge.
        voltage_max: Resting voltage mapped to 100 % state of charge.
        full_voltage: Voltage at or above which a pack is classified full.
        current_deadband_ma: Half-width of the neutral current band, in mA.
    """

    voltage_min: float
    voltage_max: float
    full_voltage: float
    current_deadband_ma: float

    def __post_init__(self) -> None:
        if self.voltage_max <= self.voltage_min:
            raise ConfigurationError(
                f"voltage_max ({self.voltage_max}) must be greater than "
                f"voltage_min ({self.voltage_min})"
            )
        if self.current_deadband_ma < 0:
            raise ConfigurationError("current_deadband_ma must be >= 0")

    @property
    def voltage_span(self) -> float:
        return self.voltage_max - self.voltage_min


LEAD_ACID_12V = CalibrationProfile(
    voltage_min=11.8,
    voltage_max=13.8,
    full_voltage=13.6,
    current_deadband_ma=100.0,
)
"""Nominal 12 V lead-acid pack: 11.8 V empty, 13.8 V full."""
