"""
Exception hierarchy for the station telemetry core.

None of these escape the public boundary of the supervisor, the sampler or
the normalizer; they are raised internally and turned into log records and
fallback transitions.
"""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for all station telemetry errors."""


class SourceError(TelemetryError):
    """The live feed failed to deliver (network, HTTP status, decoding)."""


class MalformedSampleError(TelemetryError):
    """A raw reading is missing or carries invalid numeric fields."""


class ConfigurationError(TelemetryError):
    """A live source or calibration profile could not be constructed."""
