"""
Station telemetry daemon entrypoint.

Wires the feed supervisor (live HTTP source with fallback to the simulated
source) into a StationMonitor, runs the rover fleet simulator into a
FleetMonitor, and keeps the selected slot's historical series refreshed.
Everything runs on one asyncio loop; SIGTERM/SIGINT set a shared
asyncio.Event and every source is cancelled before exit.

Structured JSON logging is used for all events. A HealthWriter instance
tracks the last delivered record and the supervisor's feed state.

CHANGELOG:
- 2026-10-12: Start rover fleet simulator alongside the station feed
- 2026-10-11: Add HealthWriter and history refresh
- 2026-10-06: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from station.src.monitor import FleetMonitor, StationMonitor
from station.src.sampler import (
    HistoryRefresher,
    HistorySampler,
    SimulatedHistorySampler,
    StoreHistorySampler,
)
from station.src.sources import HttpLiveSource, RoverFleetSimulator, SimulatedSource
from station.src.supervisor import FeedSupervisor

if TYPE_CHECKING:
    from station.src.config import StationSettings
    from station.src.health import HealthWriter
    from station.src.models import HistoryPoint, StationSnapshot
    from station.src.store import ReadingStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: int = logging.INFO) -> None:
    """Configure structured JSON logging on the root logger (stderr)."""

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_config_summary(settings: StationSettings) -> None:
    """Log the effective configuration at startup."""
    logger.info(
        "Station telemetry starting with config: "
        "use_mock_data=%s, collection_name=%s, live_source_url=%s, "
        "live_poll_interval_s=%s, simulated_tick_s=%s, station_id=%s, "
        "slot_count=%s, voltage_min=%s, voltage_max=%s, full_voltage=%s, "
        "current_deadband_ma=%s, rover_count=%s, rover_buffer_size=%s, "
        "history_db_path=%s",
        settings.use_mock_data,
        settings.collection_name,
        settings.live_source_url or "<unset>",
        settings.live_poll_interval_s,
        settings.simulated_tick_s,
        settings.station_id,
        settings.slot_count,
        settings.voltage_min,
        settings.voltage_max,
        settings.full_voltage,
        settings.current_deadband_ma,
        settings.rover_count,
        settings.rover_buffer_size,
        settings.history_db_path or "<unset>",
    )


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_live_factory(settings: StationSettings) -> Callable[[], HttpLiveSource]:
    """Factory for the live source; raises ConfigurationError when unset."""

    def factory() -> HttpLiveSource:
        return HttpLiveSource(
            settings.live_source_url,
            settings.collection_name,
            poll_interval_s=settings.live_poll_interval_s,
            timeout_s=settings.live_timeout_s,
            profile=settings.calibration(),
            station_id=settings.station_id,
            slot_count=settings.slot_count,
        )

    return factory


def build_sampler(settings: StationSettings, store: ReadingStore | None) -> HistorySampler:
    if store is None:
        return SimulatedHistorySampler()
    return StoreHistorySampler(store, profile=settings.calibration())


@dataclass
class Runtime:
    """Every long-lived component of the daemon."""

    supervisor: FeedSupervisor
    station: StationMonitor
    fleet: FleetMonitor
    fleet_simulator: RoverFleetSimulator
    refresher: HistoryRefresher
    series: list[HistoryPoint] = field(default_factory=list)
    _cancels: list[Callable[[], None]] = field(default_factory=list, init=False, repr=False)

    def start(self) -> None:
        self._cancels.append(self.supervisor.start())
        self.fleet_simulator.start()
        self._cancels.append(self.fleet_simulator.stop)
        self._cancels.append(self.refresher.start())

    def select_slot(self, slot_id: int) -> None:
        """Focus the station window and the refreshed series on *slot_id*."""
        self.station.select_slot(slot_id)
        self.refresher.retarget(slot_id, self.station.range_minutes)

    def set_range(self, range_minutes: float) -> None:
        self.station.set_range(range_minutes)
        self.refresher.retarget(self.station.selected_slot, range_minutes)

    def stop(self) -> None:
        while self._cancels:
            cancel = self._cancels.pop()
            try:
                cancel()
            except Exception:
                logger.warning("Cancel failed during shutdown", exc_info=True)


def build_runtime(
    settings: StationSettings,
    *,
    health: HealthWriter | None = None,
    store: ReadingStore | None = None,
) -> Runtime:
    """Assemble supervisor, monitors and simulators from settings."""
    profile = settings.calibration()
    sampler = build_sampler(settings, store)
    station = StationMonitor(sampler)
    fleet = FleetMonitor(capacity=settings.rover_buffer_size)

    def on_data(snapshot: StationSnapshot) -> None:
        station.ingest(snapshot)
        logger.debug(
            "Snapshot %s: %d/%d slots active",
            snapshot.station_id,
            snapshot.active_count(),
            len(snapshot.slots),
        )
        if health is not None:
            try:
                health.record_data()
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)

    supervisor: FeedSupervisor

    def on_error(error: Exception) -> None:
        if health is not None:
            try:
                health.update_feed(supervisor.state)
            except Exception:
                logger.warning("Failed to write health file", exc_info=True)

    def simulated_factory(callback: Callable[[Any], None]) -> SimulatedSource:
        return SimulatedSource(
            callback,
            tick_s=settings.simulated_tick_s,
            station_id=settings.station_id,
            profile=profile,
        )

    supervisor = FeedSupervisor(
        use_simulated=settings.use_mock_data,
        live_factory=build_live_factory(settings),
        simulated_factory=simulated_factory,
        on_data=on_data,
        on_error=on_error,
    )

    fleet_simulator = RoverFleetSimulator(
        fleet.ingest,
        count=settings.rover_count,
        tick_s=settings.rover_tick_s,
    )

    runtime: Runtime

    def on_series(points: list[HistoryPoint]) -> None:
        runtime.series = points
        logger.debug("History refreshed: %d points", len(points))

    refresher = HistoryRefresher(
        sampler,
        station.selected_slot,
        station.range_minutes,
        on_series,
    )
    runtime = Runtime(
        supervisor=supervisor,
        station=station,
        fleet=fleet,
        fleet_simulator=fleet_simulator,
        refresher=refresher,
    )
    return runtime


async def run(
    *,
    settings: StationSettings,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
    store: ReadingStore | None = None,
) -> Runtime:
    """Start every component, wait for shutdown, then cancel everything."""
    runtime = build_runtime(settings, health=health, store=store)
    runtime.start()
    logger.info("Feed active source: %s", runtime.supervisor.state.active_source)
    if health is not None:
        try:
            health.update_feed(runtime.supervisor.state)
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)

    await shutdown_event.wait()

    runtime.stop()
    logger.info("Shutdown complete")
    return runtime


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build components, run until signalled."""
    configure_logging()

    from station.src.config import StationSettings
    from station.src.health import HealthWriter
    from station.src.store import ReadingStore

    settings = StationSettings()
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    health = HealthWriter(settings.health_path)

    if settings.history_db_path:
        async with ReadingStore(settings.history_db_path) as store:
            await run(settings=settings, shutdown_event=shutdown_event, health=health, store=store)
    else:
        await run(settings=settings, shutdown_event=shutdown_event, health=health)


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event."""
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the station telemetry daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
