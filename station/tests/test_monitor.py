"""
Unit tests for the station and fleet monitors.

Tests verify:
- StationMonitor keeps the latest record per slot and the active count.
- Only the selected slot is buffered; switching slot resets the window.
- The window is sized from the chart range.
- sample() defaults to the selected slot and range and never raises.
- FleetMonitor selects the first active rover, bounds its window to 24
  points and exposes the drain rate.

CHANGELOG:
- 2026-10-12: Add FleetMonitor tests
- 2026-10-07: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from station.src.models import RawSample, RoverStatus, StationSnapshot
from station.src.monitor import FleetMonitor, StationMonitor
from station.src.normalizer import build_snapshot, normalize
from station.src.sampler import point_count
from station.src.sources import generate_mock_snapshot

_T0 = datetime(2026, 10, 14, 12, 0, 0, tzinfo=UTC)


def _snapshot(slot_id: int = 1, voltage: float = 12.8, seconds: float = 0) -> StationSnapshot:
    ts = _T0 + timedelta(seconds=seconds)
    record = normalize(
        RawSample(
            voltage_volts=voltage,
            current_milliamps=1500,
            temperature_celsius=25,
            captured_at=ts,
        ),
        slot_id=slot_id,
    )
    return build_snapshot(record, station_id="STATION_001", slot_count=3, timestamp=ts)


def _rover(rover_id: str, status: str = "active", battery: float = 80.0) -> RoverStatus:
    return RoverStatus(
        rover_id=rover_id,
        name=rover_id,
        status=status,
        battery_level=battery,
        location="Zone A",
        speed_kmh=10.0,
        temperature_celsius=30.0,
        distance_km=1.0,
        last_update=_T0,
        mission_status="Operational",
    )


class _Clock:
    def __init__(self) -> None:
        self.now = _T0

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


# ---------------------------------------------------------------------------
# StationMonitor
# ---------------------------------------------------------------------------


class TestStationMonitor:
    def test_latest_records(self) -> None:
        monitor = StationMonitor(AsyncMock())
        snapshot = generate_mock_snapshot(now=_T0)
        monitor.ingest(snapshot)

        assert monitor.snapshot is snapshot
        assert [r.slot_id for r in monitor.slots()] == [1, 2, 3]
        assert monitor.latest(2).battery_id == "BAT_002"
        assert monitor.latest(7) is None
        assert monitor.active_count() == 2

    def test_active_count_before_data(self) -> None:
        assert StationMonitor(AsyncMock()).active_count() == 0

    def test_selected_slot_buffered(self) -> None:
        monitor = StationMonitor(AsyncMock(), selected_slot=1)
        for i in range(3):
            monitor.ingest(_snapshot(voltage=12.0 + i * 0.1, seconds=i * 60))

        window = monitor.window()
        assert [p.metrics["voltage"] for p in window] == [12.0, 12.1, 12.2]
        assert window[0].metrics["drain_rate"] == 0.0
        assert window[1].metrics["drain_rate"] == -5.0

    def test_empty_selected_slot_buffers_gaps(self) -> None:
        monitor = StationMonitor(AsyncMock(), selected_slot=3)
        monitor.ingest(_snapshot(slot_id=1))
        window = monitor.window()
        assert len(window) == 1
        assert window[0].metrics["voltage"] is None
        assert window[0].metrics["battery"] is None

    def test_select_slot_resets_window(self) -> None:
        monitor = StationMonitor(AsyncMock())
        monitor.ingest(_snapshot(seconds=0))
        monitor.ingest(_snapshot(seconds=60))
        monitor.select_slot(2)

        assert monitor.selected_slot == 2
        assert monitor.window() == []

    def test_window_sized_from_range(self) -> None:
        monitor = StationMonitor(AsyncMock(), range_minutes=1)
        capacity = point_count(1) + 1
        for i in range(capacity + 10):
            monitor.ingest(_snapshot(seconds=i))
        assert len(monitor.window()) == capacity

    def test_set_range_rebuilds_window(self) -> None:
        monitor = StationMonitor(AsyncMock(), selected_slot=2, range_minutes=30)
        monitor.ingest(_snapshot(slot_id=2))
        monitor.set_range(10)

        assert monitor.range_minutes == 10
        assert monitor.selected_slot == 2
        assert monitor.window() == []

    @pytest.mark.asyncio
    async def test_sample_defaults(self) -> None:
        sampler = AsyncMock()
        sampler.sample = AsyncMock(return_value=[])
        monitor = StationMonitor(sampler, selected_slot=2, range_minutes=10)

        await monitor.sample()
        sampler.sample.assert_awaited_once_with(2, 10)

        await monitor.sample("ROV-003", 60)
        sampler.sample.assert_awaited_with("ROV-003", 60)

    @pytest.mark.asyncio
    async def test_sample_failure_returns_empty(self) -> None:
        sampler = AsyncMock()
        sampler.sample = AsyncMock(side_effect=OSError("disk gone"))
        monitor = StationMonitor(sampler)

        assert await monitor.sample() == []


# ---------------------------------------------------------------------------
# FleetMonitor
# ---------------------------------------------------------------------------


class TestFleetMonitor:
    def test_defaults_to_first_active_rover(self) -> None:
        monitor = FleetMonitor()
        monitor.ingest([_rover("ROV-001", "idle"), _rover("ROV-002"), _rover("ROV-003")])
        assert monitor.selected == "ROV-002"
        assert len(monitor.window()) == 1

    def test_defaults_to_first_rover_when_none_active(self) -> None:
        monitor = FleetMonitor()
        monitor.ingest([_rover("ROV-001", "charging"), _rover("ROV-002", "idle")])
        assert monitor.selected == "ROV-001"

    def test_empty_fleet_ignored(self) -> None:
        monitor = FleetMonitor()
        monitor.ingest([])
        assert monitor.selected is None
        assert monitor.drain_rate() is None

    def test_window_bounded_to_capacity(self) -> None:
        clock = _Clock()
        monitor = FleetMonitor(clock=clock)
        for _ in range(40):
            clock.advance(5 / 60)
            monitor.ingest([_rover("ROV-001")])
        assert len(monitor.window()) == 24

    def test_drain_rate(self) -> None:
        clock = _Clock()
        monitor = FleetMonitor(clock=clock)
        monitor.ingest([_rover("ROV-001", battery=80.0)])
        assert monitor.drain_rate() == 0.0

        clock.advance(1)
        monitor.ingest([_rover("ROV-001", battery=75.0)])
        assert monitor.drain_rate() == 5.0

    def test_select_rover_resets_window(self) -> None:
        clock = _Clock()
        monitor = FleetMonitor(clock=clock)
        fleet = [_rover("ROV-001"), _rover("ROV-002", battery=50.0)]
        monitor.ingest(fleet)
        monitor.select_rover("ROV-002")
        assert monitor.window() == []

        clock.advance(1)
        monitor.ingest(fleet)
        window = monitor.window()
        assert len(window) == 1
        assert window[0].metrics["battery"] == 50.0
        assert window[0].metrics["drain_rate"] == 0.0

    def test_latest_and_rovers(self) -> None:
        monitor = FleetMonitor()
        monitor.ingest([_rover("ROV-001"), _rover("ROV-002")])
        assert monitor.latest("ROV-002").rover_id == "ROV-002"
        assert monitor.latest("ROV-404") is None
        assert [r.rover_id for r in monitor.rovers()] == ["ROV-001", "ROV-002"]

    def test_selected_rover_removed_falls_back_to_default(self) -> None:
        monitor = FleetMonitor()
        monitor.ingest([_rover("ROV-001"), _rover("ROV-002")])
        monitor.select_rover("ROV-002")
        monitor.ingest([_rover("ROV-001")])
        assert monitor.selected == "ROV-001"
