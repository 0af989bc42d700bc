"""
Pure normalizer that converts a raw sensor reading into a NormalizedSlotRecord.

Converts current from milliamps to amps, estimates state of charge from
voltage against a calibration profile, classifies the charging phase with a
current deadband, and derives power.  Every function here is total: missing
or garbage numbers degrade to ``None`` and the ``idle`` state, nothing
raises.

No I/O and no clock access except where a reading lacks a timestamp.

CHANGELOG:
- 2026-10-19: Guard out-of-range mapping timestamps
- 2026-10-09: Add parse_reading for live source documents
- 2026-10-08: Parameterize over CalibrationProfile
- 2026-10-05: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from station.src.calibration import LEAD_ACID_12V, CalibrationProfile
from station.src.models import (
    ChargingState,
    NormalizedSlotRecord,
    RawSample,
    StationSnapshot,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tolerant parsing helpers
# ---------------------------------------------------------------------------


def safe_float(value: Any) -> float | None:
    """Parse *value* as a finite float, or return ``None``."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def _parse_timestamp(value: Any) -> datetime | None:
    """Accept ISO strings, epoch seconds, datetimes and ``{"seconds": ...}``."""
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, Mapping):
        seconds = safe_float(value.get("seconds"))
        if seconds is None:
            return None
        nanos = safe_float(value.get("nanoseconds")) or 0.0
        try:
            return datetime.fromtimestamp(seconds + nanos / 1e9, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    seconds = safe_float(value)
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def parse_reading(document: Mapping[str, Any]) -> RawSample:
    """Map a live source document onto a RawSample.

    Recognised keys are ``voltage``, ``current_mA``, ``temperatureC`` and
    ``created_at``.  Unparseable values become ``None``; a missing or
    invalid timestamp falls back to the current time.
    """
    captured_at = _parse_timestamp(document.get("created_at"))
    if captured_at is None:
        logger.debug("Reading has no usable created_at, stamping with now")
        captured_at = datetime.now(tz=UTC)
    return RawSample(
        voltage_volts=safe_float(document.get("voltage")),
        current_milliamps=safe_float(document.get("current_mA")),
        temperature_celsius=safe_float(document.get("temperatureC")),
        captured_at=captured_at,
    )


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------


def calculate_soc(
    voltage: float | None,
    profile: CalibrationProfile = LEAD_ACID_12V,
) -> float | None:
    """Estimate state of charge (%) by linear interpolation on voltage.

    Values at or beyond the calibration end points clamp to 0 and 100.
    """
    voltage = safe_float(voltage)
    if voltage is None:
        return None
    if voltage >= profile.voltage_max:
        return 100.0
    if voltage <= profile.voltage_min:
        return 0.0
    return (voltage - profile.voltage_min) / profile.voltage_span * 100.0


def classify_charging_state(
    current_ma: float | None,
    voltage: float | None,
    profile: CalibrationProfile = LEAD_ACID_12V,
) -> ChargingState:
    """Classify the charging phase from current and voltage.

    Precedence: charging current at full voltage is ``full``, other
    charging current is ``charging``, current below the negative deadband
    is ``discharging``, otherwise full voltage is ``full`` and anything
    else ``idle``.  A missing input yields ``idle``.
    """
    current_ma = safe_float(current_ma)
    voltage = safe_float(voltage)
    if current_ma is None or voltage is None:
        return ChargingState.IDLE

    deadband = profile.current_deadband_ma
    at_full_voltage = voltage >= profile.full_voltage
    if current_ma > deadband:
        return ChargingState.FULL if at_full_voltage else ChargingState.CHARGING
    if current_ma < -deadband:
        return ChargingState.DISCHARGING
    if at_full_voltage:
        return ChargingState.FULL
    return ChargingState.IDLE


def _round(value: float | None, digits: int) -> float | None:
    return None if value is None else round(value, digits)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def empty_slot(slot_id: int, observed_at: datetime) -> NormalizedSlotRecord:
    """Return the record for a slot with no battery present."""
    return NormalizedSlotRecord(
        slot_id=slot_id,
        occupied=False,
        charging_state=ChargingState.EMPTY,
        observed_at=observed_at,
    )


def normalize(
    raw: RawSample,
    *,
    slot_id: int = 1,
    battery_id: str | None = "BAT_001",
    occupied: bool = True,
    profile: CalibrationProfile = LEAD_ACID_12V,
) -> NormalizedSlotRecord:
    """Convert a raw reading into a canonical slot record.

    This is a **pure function** and never raises for bad numeric input.

    Args:
        raw: The reading to normalize.
        slot_id: Slot the reading belongs to.
        battery_id: Battery identifier to embed.
        occupied: ``False`` short-circuits to an empty-slot record.
        profile: Calibration used for SoC and classification.

    Returns:
        A :class:`NormalizedSlotRecord`.
    """
    if not occupied:
        return empty_slot(slot_id, raw.captured_at)

    voltage = safe_float(raw.voltage_volts)
    current_ma = safe_float(raw.current_milliamps)
    temperature = safe_float(raw.temperature_celsius)

    current_a = None if current_ma is None else current_ma / 1000.0
    power = None if voltage is None or current_a is None else voltage * current_a

    return NormalizedSlotRecord(
        slot_id=slot_id,
        occupied=True,
        battery_id=battery_id,
        voltage_volts=_round(voltage, 2),
        current_amps=_round(current_a, 2),
        temperature_celsius=_round(temperature, 1),
        state_of_charge_percent=_round(calculate_soc(voltage, profile), 1),
        charging_state=classify_charging_state(current_ma, voltage, profile),
        power_watts=_round(power, 2),
        observed_at=raw.captured_at,
    )


def build_snapshot(
    record: NormalizedSlotRecord,
    *,
    station_id: str,
    slot_count: int,
    timestamp: datetime | None = None,
) -> StationSnapshot:
    """Place a single normalized slot into a full station snapshot.

    The live source reports one slot; every other slot up to *slot_count*
    is reported empty.
    """
    ts = timestamp if timestamp is not None else datetime.now(tz=UTC)
    slots = [
        record if slot_id == record.slot_id else empty_slot(slot_id, record.observed_at)
        for slot_id in range(1, max(slot_count, record.slot_id) + 1)
    ]
    return StationSnapshot(station_id=station_id, timestamp=ts, slots=slots)
