"""
Consumer-side state exposed to the presentation layer.

StationMonitor keeps the latest normalized record per slot, buffers the
selected slot into a window sized from the chart range, and serves
on-demand historical series.  FleetMonitor does the same for the rover
fleet with a fixed 24-point window and a derived drain rate.

CHANGELOG:
- 2026-10-12: Add FleetMonitor
- 2026-10-07: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from station.src.models import (
    HistoryPoint,
    NormalizedSlotRecord,
    RoverStatus,
    StationSnapshot,
)
from station.src.sampler import HistorySampler, point_count
from station.src.window import WindowBuffer, rover_point, slot_point

logger = logging.getLogger(__name__)

DEFAULT_RANGE_MINUTES: float = 30
ROVER_WINDOW_SIZE: int = 24


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class StationMonitor:
    """Latest slot records, the selected slot's window and history access.

    Args:
        sampler: Source of historical series.
        selected_slot: Slot buffered into the window.
        range_minutes: Chart range; the window holds point_count(range) + 1
            points.
    """

    def __init__(
        self,
        sampler: HistorySampler,
        *,
        selected_slot: int = 1,
        range_minutes: float = DEFAULT_RANGE_MINUTES,
    ) -> None:
        self._sampler = sampler
        self._range_minutes = range_minutes
        self._latest: dict[int, NormalizedSlotRecord] = {}
        self._snapshot: StationSnapshot | None = None
        self._window = WindowBuffer(point_count(range_minutes) + 1)
        self._window.select(selected_slot)

    @property
    def snapshot(self) -> StationSnapshot | None:
        return self._snapshot

    @property
    def selected_slot(self) -> int:
        return self._window.selected  # type: ignore[return-value]

    @property
    def range_minutes(self) -> float:
        return self._range_minutes

    def ingest(self, snapshot: StationSnapshot) -> None:
        """Consume one station snapshot from the feed."""
        self._snapshot = snapshot
        for record in snapshot.slots:
            self._latest[record.slot_id] = record
        selected = snapshot.slot(self.selected_slot)
        if selected is not None:
            self._window.append(selected.slot_id, slot_point(selected))

    def select_slot(self, slot_id: int) -> None:
        self._window.select(slot_id)

    def set_range(self, range_minutes: float) -> None:
        """Resize the window for a new chart range, starting it empty."""
        selected = self.selected_slot
        self._range_minutes = range_minutes
        self._window = WindowBuffer(point_count(range_minutes) + 1)
        self._window.select(selected)

    def latest(self, slot_id: int) -> NormalizedSlotRecord | None:
        return self._latest.get(slot_id)

    def slots(self) -> list[NormalizedSlotRecord]:
        return [self._latest[slot_id] for slot_id in sorted(self._latest)]

    def active_count(self) -> int:
        return self._snapshot.active_count() if self._snapshot is not None else 0

    def window(self) -> list[HistoryPoint]:
        return self._window.points

    async def sample(
        self,
        entity_ref: int | str | None = None,
        range_minutes: float | None = None,
    ) -> list[HistoryPoint]:
        """Historical series, defaulting to the selected slot and range."""
        entity = entity_ref if entity_ref is not None else self.selected_slot
        span = range_minutes if range_minutes is not None else self._range_minutes
        try:
            return await self._sampler.sample(entity, span)
        except Exception:
            logger.warning("History sample failed for %s", entity, exc_info=True)
            return []


class FleetMonitor:
    """Latest rover statuses and the selected rover's rolling window.

    The first fleet update selects the first active rover, or the first
    rover when none is active.
    """

    def __init__(
        self,
        *,
        capacity: int = ROVER_WINDOW_SIZE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._window = WindowBuffer(capacity)
        self._clock = clock
        self._rovers: dict[str, RoverStatus] = {}

    @property
    def selected(self) -> str | None:
        return self._window.selected  # type: ignore[return-value]

    def ingest(self, fleet: list[RoverStatus]) -> None:
        """Consume one fleet update."""
        if not fleet:
            return
        self._rovers = {rover.rover_id: rover for rover in fleet}
        if self.selected is None or self.selected not in self._rovers:
            default = next((r for r in fleet if r.status == "active"), fleet[0])
            self._window.select(default.rover_id)
        rover = self._rovers[self.selected]  # type: ignore[index]
        self._window.append(rover.rover_id, rover_point(rover, self._clock()))

    def select_rover(self, rover_id: str) -> None:
        self._window.select(rover_id)

    def latest(self, rover_id: str) -> RoverStatus | None:
        return self._rovers.get(rover_id)

    def rovers(self) -> list[RoverStatus]:
        return list(self._rovers.values())

    def window(self) -> list[HistoryPoint]:
        return self._window.points

    def drain_rate(self) -> float | None:
        """Drain rate of the most recent point, ``None`` before any data."""
        latest = self._window.latest()
        return None if latest is None else latest.metrics.get("drain_rate")
