"""
Telemetry sources feeding the supervisor and the fleet monitor.

- HttpLiveSource: polls the latest reading of a collection over HTTP and
  emits a StationSnapshot whenever a new reading appears.  It reports the
  first failure through ``on_error`` exactly once and then stops.
- SimulatedSource: emits a synthetic StationSnapshot on a fixed tick.
- RoverFleetSimulator: emits a list of RoverStatus on a fixed tick with the
  battery levels performing a bounded random walk.

All sources run as asyncio tasks on the caller's loop.  Cancellation is
idempotent; a consumer callback that raises is logged and does not stop
the source.

CHANGELOG:
- 2026-10-19: Report unusable live readings through on_error
- 2026-10-12: Add RoverFleetSimulator
- 2026-10-09: Add HttpLiveSource
- 2026-10-06: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import httpx

from station.src.calibration import LEAD_ACID_12V, CalibrationProfile
from station.src.exceptions import (
    ConfigurationError,
    MalformedSampleError,
    SourceError,
    TelemetryError,
)
from station.src.models import RawSample, RoverStatus, StationSnapshot
from station.src.normalizer import build_snapshot, empty_slot, normalize, parse_reading

logger = logging.getLogger(__name__)

DataCallback = Callable[[Any], None]
ErrorCallback = Callable[[Exception], None]

SIMULATED_TICK_S: float = 1.0
"""Period of the simulated station source."""

ROVER_TICK_S: float = 5.0
"""Period of the rover fleet simulator."""

ROVER_STATUSES = ("active", "idle", "charging", "maintenance")
ROVER_LOCATIONS = ("Zone A", "Zone B", "Zone C", "Zone D", "Charging Bay")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _current_task() -> asyncio.Task[Any] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def _deliver(callback: DataCallback, payload: Any) -> None:
    """Invoke a consumer callback without letting it break the source."""
    try:
        callback(payload)
    except Exception:
        logger.error("Telemetry consumer raised", exc_info=True)


class LiveSource(Protocol):
    """A live telemetry subscription."""

    def subscribe(
        self,
        on_data: DataCallback,
        on_error: ErrorCallback,
    ) -> Callable[[], None]: ...


# ---------------------------------------------------------------------------
# Live source
# ---------------------------------------------------------------------------


class HttpLiveSource:
    """Poll ``GET {base_url}/collections/{collection}/latest`` for readings.

    The endpoint returns the newest reading document (``voltage``,
    ``current_mA``, ``temperatureC``, ``created_at``); 204 means the
    collection is still empty.  A snapshot is emitted only when
    ``created_at`` differs from the previously emitted reading.

    Args:
        base_url: Service base URL (http or https).
        collection: Collection (dataset) name.
        poll_interval_s: Seconds between polls.
        timeout_s: Per-request timeout.
        profile: Calibration used when normalizing.
        station_id: Station identifier stamped on snapshots.
        slot_count: Number of slots in emitted snapshots.

    Raises:
        ConfigurationError: If the URL or collection is unusable.
    """

    def __init__(
        self,
        base_url: str,
        collection: str,
        *,
        poll_interval_s: float = 5.0,
        timeout_s: float = 10.0,
        profile: CalibrationProfile = LEAD_ACID_12V,
        station_id: str = "STATION_001",
        slot_count: int = 3,
    ) -> None:
        if not base_url or not base_url.lower().startswith(("http://", "https://")):
            raise ConfigurationError(f"Live source URL is not configured or invalid: '{base_url}'")
        if not collection:
            raise ConfigurationError("Live source collection name is empty")
        self._url = f"{base_url.rstrip('/')}/collections/{collection}/latest"
        self._poll_interval_s = poll_interval_s
        self._timeout_s = timeout_s
        self._profile = profile
        self._station_id = station_id
        self._slot_count = slot_count

    @property
    def url(self) -> str:
        return self._url

    def subscribe(self, on_data: DataCallback, on_error: ErrorCallback) -> Callable[[], None]:
        """Start polling; returns an idempotent unsubscribe callable."""
        task = asyncio.get_running_loop().create_task(self._run(on_data, on_error))
        cancelled = False

        def unsubscribe() -> None:
            nonlocal cancelled
            if cancelled:
                return
            cancelled = True
            # Called from on_error inside the task: _run returns on its own
            # and the client closes normally.
            if _current_task() is not task:
                task.cancel()

        return unsubscribe

    async def fetch_latest(self, client: httpx.AsyncClient) -> Mapping[str, Any] | None:
        """Fetch the newest reading document, or ``None`` if there is none.

        Raises:
            SourceError: On transport failure or an unexpected status.
            MalformedSampleError: If the body is not a JSON object.
        """
        try:
            response = await client.get(self._url)
        except httpx.HTTPError as exc:
            raise SourceError(f"Live source request failed: {exc}") from exc

        if response.status_code == 204:
            return None
        if response.status_code != 200:
            raise SourceError(f"Live source returned HTTP {response.status_code}")
        try:
            document = response.json()
        except ValueError as exc:
            raise MalformedSampleError("Live source returned invalid JSON") from exc
        if not isinstance(document, Mapping):
            raise MalformedSampleError("Live source returned a non-object document")
        return document

    def to_snapshot(self, document: Mapping[str, Any]) -> StationSnapshot:
        raw = parse_reading(document)
        record = normalize(raw, slot_id=1, battery_id="BAT_001", profile=self._profile)
        return build_snapshot(
            record,
            station_id=self._station_id,
            slot_count=self._slot_count,
        )

    async def _run(self, on_data: DataCallback, on_error: ErrorCallback) -> None:
        last_key: Any = None
        async with httpx.AsyncClient(timeout=self._timeout_s) as client:
            while True:
                try:
                    document = await self.fetch_latest(client)
                except TelemetryError as exc:
                    logger.warning("Live source %s failed: %s", self._url, exc)
                    on_error(exc)
                    return
                except Exception as exc:
                    logger.warning("Unexpected error polling %s", self._url, exc_info=True)
                    error = SourceError(f"Live source poll failed: {exc}")
                    error.__cause__ = exc
                    on_error(error)
                    return

                if document is not None:
                    key = document.get("created_at")
                    if key is None or key != last_key:
                        last_key = key
                        try:
                            snapshot = self.to_snapshot(document)
                        except Exception as exc:
                            logger.warning(
                                "Live source %s sent an unusable reading",
                                self._url,
                                exc_info=True,
                            )
                            error = MalformedSampleError(
                                f"Live source reading could not be normalized: {exc}"
                            )
                            error.__cause__ = exc
                            on_error(error)
                            return
                        _deliver(on_data, snapshot)
                    else:
                        logger.debug("Live source: no new reading")

                await asyncio.sleep(self._poll_interval_s)


# ---------------------------------------------------------------------------
# Ticking sources
# ---------------------------------------------------------------------------


class _TickingSource:
    """Runs ``_tick()`` on a fixed period until stopped."""

    def __init__(self, tick_s: float) -> None:
        self._tick_s = tick_s
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Start ticking on the running loop; no-op if already started."""
        if self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Cancel the tick task; safe to call repeatedly."""
        if self._task is None:
            return
        self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._tick_s)
            try:
                self._tick()
            except Exception:
                logger.error("%s tick failed", type(self).__name__, exc_info=True)

    def _tick(self) -> None:
        raise NotImplementedError


def generate_mock_snapshot(
    *,
    station_id: str = "STATION_001",
    now: datetime | None = None,
    rng: random.Random | None = None,
    profile: CalibrationProfile = LEAD_ACID_12V,
) -> StationSnapshot:
    """Synthetic three-slot station: one charging, one full, one empty."""
    now = now if now is not None else _utcnow()
    rng = rng if rng is not None else random.Random()

    charging = RawSample(
        voltage_volts=rng.random() * 1.5 + 11.5,
        current_milliamps=(rng.random() * 8 + 1) * 1000,
        temperature_celsius=rng.random() * 15 + 25,
        captured_at=now,
    )
    full = RawSample(
        voltage_volts=profile.voltage_max + rng.random() * 0.05,
        current_milliamps=0.0,
        temperature_celsius=rng.random() * 5 + 23,
        captured_at=now,
    )
    return StationSnapshot(
        station_id=station_id,
        timestamp=now,
        slots=[
            normalize(charging, slot_id=1, battery_id="BAT_001", profile=profile),
            normalize(full, slot_id=2, battery_id="BAT_002", profile=profile),
            empty_slot(3, now),
        ],
    )


class SimulatedSource(_TickingSource):
    """Emit a synthetic StationSnapshot every *tick_s* seconds."""

    def __init__(
        self,
        on_data: DataCallback,
        *,
        tick_s: float = SIMULATED_TICK_S,
        station_id: str = "STATION_001",
        rng: random.Random | None = None,
        profile: CalibrationProfile = LEAD_ACID_12V,
    ) -> None:
        super().__init__(tick_s)
        self._on_data = on_data
        self._station_id = station_id
        self._rng = rng if rng is not None else random.Random()
        self._profile = profile

    def _tick(self) -> None:
        snapshot = generate_mock_snapshot(
            station_id=self._station_id,
            rng=self._rng,
            profile=self._profile,
        )
        _deliver(self._on_data, snapshot)


# ---------------------------------------------------------------------------
# Rover fleet
# ---------------------------------------------------------------------------


def generate_fleet(
    count: int = 12,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[RoverStatus]:
    """Create *count* rovers with random status, battery and position."""
    now = now if now is not None else _utcnow()
    rng = rng if rng is not None else random.Random()
    return [
        RoverStatus(
            rover_id=f"ROV-{idx + 1:03d}",
            name=f"Rover {idx + 1}",
            status=rng.choice(ROVER_STATUSES),
            battery_level=float(rng.randrange(100)),
            location=rng.choice(ROVER_LOCATIONS),
            speed_kmh=float(rng.randrange(50)),
            temperature_celsius=round(20 + rng.random() * 15, 1),
            distance_km=round(rng.random() * 500, 1),
            last_update=now - timedelta(seconds=rng.random() * 300),
            mission_status="Operational" if rng.random() > 0.3 else "Warning",
        )
        for idx in range(count)
    ]


def advance_fleet(
    fleet: list[RoverStatus],
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[RoverStatus]:
    """Step every rover: battery drifts by up to +/-2.5 %, clamped to 0..100."""
    now = now if now is not None else _utcnow()
    rng = rng if rng is not None else random.Random()
    return [
        rover.model_copy(
            update={
                "battery_level": max(
                    0.0, min(100.0, rover.battery_level + (rng.random() - 0.5) * 5)
                ),
                "speed_kmh": float(int(rng.random() * 50)),
                "temperature_celsius": round(20 + rng.random() * 15, 1),
                "last_update": now,
            }
        )
        for rover in fleet
    ]


class RoverFleetSimulator(_TickingSource):
    """Emit the simulated rover fleet on start and then every *tick_s* seconds."""

    def __init__(
        self,
        on_data: DataCallback,
        *,
        count: int = 12,
        tick_s: float = ROVER_TICK_S,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(tick_s)
        self._on_data = on_data
        self._count = count
        self._rng = rng if rng is not None else random.Random()
        self._fleet: list[RoverStatus] = []

    @property
    def fleet(self) -> list[RoverStatus]:
        return list(self._fleet)

    def start(self) -> None:
        if self.running:
            return
        if not self._fleet:
            self._fleet = generate_fleet(self._count, rng=self._rng)
        _deliver(self._on_data, self.fleet)
        super().start()

    def _tick(self) -> None:
        self._fleet = advance_fleet(self._fleet, rng=self._rng)
        _deliver(self._on_data, self.fleet)
