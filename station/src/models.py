"""
Pydantic models for station telemetry.

Defines the raw reading delivered by a source, the canonical normalized slot
record consumed by cards, the station snapshot that groups slots, plotted
history points, rover fleet status, and the supervisor's feed state.

CHANGELOG:
- 2026-10-12: Add RoverStatus for the rover fleet feed
- 2026-10-05: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChargingState(StrEnum):
    """Charging phase of a slot."""

    CHARGING = "charging"
    FULL = "full"
    IDLE = "idle"
    DISCHARGING = "discharging"
    EMPTY = "empty"


class FeedSource(StrEnum):
    """Data source currently backing the supervisor."""

    LIVE = "live"
    SIMULATED = "simulated"


class FeedMode(StrEnum):
    """Supervisor state machine states."""

    LIVE = "live"
    SIMULATED = "simulated"
    STOPPED = "stopped"


class RawSample(BaseModel):
    """A single sensor reading as delivered by a source.

    Values are not validated by the producer; ``None`` stands for a field
    that was missing or could not be parsed.

    Attributes:
        voltage_volts: Pack voltage in volts.
        current_milliamps: Pack current in milliamps.
            Positive = charging, negative = discharging.
        temperature_celsius: Pack temperature in degrees Celsius.
        captured_at: Time the reading was taken.
    """

    voltage_volts: float | None = None
    current_milliamps: float | None = None
    temperature_celsius: float | None = None
    captured_at: datetime


_SLOT_METRICS = (
    "battery_id",
    "voltage_volts",
    "current_amps",
    "temperature_celsius",
    "state_of_charge_percent",
    "power_watts",
)


class NormalizedSlotRecord(BaseModel):
    """Canonical, immutable record for one station slot.

    An unoccupied slot carries no battery and no metrics and is always in
    the ``empty`` charging state.

    Attributes:
        slot_id: 1-based slot number within the station.
        occupied: Whether a battery is present.
        battery_id: Identifier of the battery in the slot.
        voltage_volts: Voltage rounded to 2 decimals.
        current_amps: Current in amps rounded to 2 decimals.
        temperature_celsius: Temperature rounded to 1 decimal.
        state_of_charge_percent: Estimated SoC in [0, 100].
        charging_state: Classified charging phase.
        power_watts: voltage * current, rounded to 2 decimals.
        observed_at: Time of the underlying reading.
    """

    model_config = ConfigDict(frozen=True)

    slot_id: int
    occupied: bool
    battery_id: str | None = None
    voltage_volts: float | None = None
    current_amps: float | None = None
    temperature_celsius: float | None = None
    state_of_charge_percent: float | None = Field(default=None, ge=0.0, le=100.0)
    charging_state: ChargingState
    power_watts: float | None = None
    observed_at: datetime

    @model_validator(mode="after")
    def _unoccupied_slot_has_no_metrics(self) -> NormalizedSlotRecord:
        """An empty slot must not carry readings or a non-empty state."""
        if not self.occupied:
            populated = [name for name in _SLOT_METRICS if getattr(self, name) is not None]
            if populated:
                raise ValueError(f"unoccupied slot {self.slot_id} has values for {populated}")
            if self.charging_state is not ChargingState.EMPTY:
                raise ValueError(f"unoccupied slot {self.slot_id} must be in state 'empty'")
        return self


class StationSnapshot(BaseModel):
    """All slots of a station at one instant.

    Attributes:
        station_id: Station identifier.
        timestamp: Time the snapshot was assembled.
        slots: One record per slot, ordered by slot_id.
        alerts: Free-form alert messages attached by the source.
    """

    station_id: str
    timestamp: datetime
    slots: list[NormalizedSlotRecord]
    alerts: list[str] = Field(default_factory=list)

    def slot(self, slot_id: int) -> NormalizedSlotRecord | None:
        for record in self.slots:
            if record.slot_id == slot_id:
                return record
        return None

    def active_count(self) -> int:
        """Number of occupied slots that are not in the ``empty`` state."""
        return sum(
            1
            for record in self.slots
            if record.occupied and record.charging_state is not ChargingState.EMPTY
        )


class HistoryPoint(BaseModel):
    """One plotted sample for an entity.

    Attributes:
        observed_at: Sample timestamp.
        label: Display time (``HH:MM``).
        metrics: Metric name -> value, ``None`` for a gap.
    """

    model_config = ConfigDict(frozen=True)

    observed_at: datetime
    label: str
    metrics: dict[str, float | None]


class RoverStatus(BaseModel):
    """Status of one rover in the fleet.

    Attributes:
        rover_id: Identifier such as ``ROV-001``.
        name: Display name.
        status: One of active, idle, charging, maintenance.
        battery_level: Battery percentage in [0, 100].
        location: Zone the rover is in.
        speed_kmh: Current speed in km/h.
        temperature_celsius: Pack temperature.
        distance_km: Distance travelled.
        last_update: Time of the last status update.
        mission_status: ``Operational`` or ``Warning``.
    """

    rover_id: str
    name: str
    status: str
    battery_level: float = Field(ge=0.0, le=100.0)
    location: str
    speed_kmh: float
    temperature_celsius: float
    distance_km: float
    last_update: datetime
    mission_status: str


class FeedState(BaseModel):
    """Mutable state owned by a single FeedSupervisor.

    Attributes:
        active_source: Source currently delivering data.
        last_error: Message of the error that caused the last fallback.
        fallback_count: Number of live-to-simulated transitions (0 or 1).
    """

    active_source: FeedSource
    last_error: str | None = None
    fallback_count: int = 0
