"""
Station telemetry configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Every option has a default so the daemon starts with the simulated feed
when nothing is configured.

CHANGELOG:
- 2026-10-12: Add rover fleet options
- 2026-10-08: Move SoC calibration constants into settings
- 2026-10-05: Initial creation

TODO:
- None
"""

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from station.src.calibration import CalibrationProfile


class StationSettings(BaseSettings):
    """Station telemetry configuration.

    Attributes:
        use_mock_data: Start on the simulated source instead of the live one.
        collection_name: Dataset name of the live telemetry source.
        live_source_url: Base URL of the live source; empty = not configured.
        live_poll_interval_s: Seconds between live source polls.
        live_timeout_s: HTTP timeout per live request.
        simulated_tick_s: Simulated source tick period in seconds.
        station_id: Station identifier stamped on snapshots.
        slot_count: Number of slots in a station snapshot.
        voltage_min: SoC calibration 0 % voltage.
        voltage_max: SoC calibration 100 % voltage.
        full_voltage: Voltage threshold for the ``full`` state.
        current_deadband_ma: Classifier deadband around zero current.
        rover_buffer_size: Capacity of the rover chart window.
        rover_tick_s: Rover fleet simulator period in seconds.
        rover_count: Number of simulated rovers.
        history_db_path: SQLite reading store path; empty disables it.
        health_path: Health JSON file path.
    """

    use_mock_data: bool = False
    collection_name: str = "batteryReadings"
    live_source_url: str = ""
    live_poll_interval_s: float = 5.0
    live_timeout_s: float = 10.0
    simulated_tick_s: float = 1.0
    station_id: str = "STATION_001"
    slot_count: int = 3
    voltage_min: float = 11.8
    voltage_max: float = 13.8
    full_voltage: float = 13.6
    current_deadband_ma: float = 100.0
    rover_buffer_size: int = 24
    rover_tick_s: float = 5.0
    rover_count: int = 12
    history_db_path: str = ""
    health_path: str = "/data/health.json"

    @field_validator("live_source_url")
    @classmethod
    def live_source_url_must_be_http(cls, v: str) -> str:
        """Accept an empty value or an http(s) URL, without trailing slash."""
        if v and not v.lower().startswith(("http://", "https://")):
            raise ValueError(
                f"LIVE_SOURCE_URL must start with http:// or https:// (got: '{v[:20]}...')"
            )
        return v.rstrip("/")

    @field_validator(
        "live_poll_interval_s",
        "live_timeout_s",
        "simulated_tick_s",
        "rover_tick_s",
        "full_voltage",
    )
    @classmethod
    def must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("value must be > 0")
        return v

    @field_validator("current_deadband_ma")
    @classmethod
    def deadband_must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("CURRENT_DEADBAND_MA must be >= 0")
        return v

    @field_validator("slot_count")
    @classmethod
    def slot_count_must_be_valid(cls, v: int) -> int:
        """Validate slot count is between 1 and 32."""
        if v < 1 or v > 32:
            raise ValueError("SLOT_COUNT must be between 1 and 32")
        return v

    @field_validator("rover_buffer_size", "rover_count")
    @classmethod
    def must_be_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @model_validator(mode="after")
    def _voltage_range_is_ordered(self) -> "StationSettings":
        """VOLTAGE_MAX must lie above VOLTAGE_MIN for the SoC curve."""
        if self.voltage_max <= self.voltage_min:
            raise ValueError("VOLTAGE_MAX must be greater than VOLTAGE_MIN")
        return self

    def calibration(self) -> CalibrationProfile:
        """Build the calibration profile described by these settings."""
        return CalibrationProfile(
            voltage_min=self.voltage_min,
            voltage_max=self.voltage_max,
            full_voltage=self.full_voltage,
            current_deadband_ma=self.current_deadband_ma,
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
