"""
Bounded per-entity history windows for rolling charts.

A WindowBuffer follows the currently selected entity: it keeps the last
``capacity`` points, derives a drain rate (percent per minute) from the
previous sample of the same entity, and forgets everything when the
selection changes.  WindowArena keeps one independent buffer per entity
for side-by-side comparison.

CHANGELOG:
- 2026-10-12: Add rover_point and WindowArena
- 2026-10-07: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Hashable, Iterator
from dataclasses import dataclass
from datetime import datetime

from station.src.models import HistoryPoint, NormalizedSlotRecord, RoverStatus
from station.src.sampler import format_label

logger = logging.getLogger(__name__)

DEFAULT_RATE_METRIC = "battery"
DEFAULT_RATE_NAME = "drain_rate"


@dataclass(frozen=True)
class PreviousSample:
    """Last raw value seen for the selected entity, kept only for the rate."""

    entity_id: Hashable
    value: float | None
    observed_at: datetime


class WindowBuffer:
    """Fixed-capacity, oldest-evicting history for the selected entity.

    Args:
        capacity: Maximum number of points kept.
        rate_metric: Metric the drain rate is derived from.
        rate_name: Metric name under which the drain rate is stored.
    """

    def __init__(
        self,
        capacity: int,
        *,
        rate_metric: str = DEFAULT_RATE_METRIC,
        rate_name: str = DEFAULT_RATE_NAME,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._rate_metric = rate_metric
        self._rate_name = rate_name
        self._points: deque[HistoryPoint] = deque()
        self._previous: PreviousSample | None = None
        self._selected: Hashable | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def selected(self) -> Hashable | None:
        return self._selected

    @property
    def previous_sample(self) -> PreviousSample | None:
        return self._previous

    @property
    def points(self) -> list[HistoryPoint]:
        """Buffered points, oldest first."""
        return list(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[HistoryPoint]:
        return iter(list(self._points))

    def latest(self) -> HistoryPoint | None:
        return self._points[-1] if self._points else None

    def reset(self) -> None:
        """Drop every buffered point and the previous sample."""
        self._points.clear()
        self._previous = None

    def select(self, entity_id: Hashable) -> None:
        """Make *entity_id* the buffered entity, starting from an empty window."""
        if entity_id != self._selected:
            logger.debug("Window selection %r -> %r", self._selected, entity_id)
        self._selected = entity_id
        self.reset()

    def append(self, entity_id: Hashable, point: HistoryPoint) -> HistoryPoint | None:
        """Buffer *point* for *entity_id* with its derived drain rate.

        Samples for an entity other than the selected one are ignored, as
        are points older than the newest buffered point.

        Returns:
            The stored point (with the rate metric set), or ``None`` if the
            sample was not buffered.
        """
        if self._selected is None or entity_id != self._selected:
            return None
        newest = self.latest()
        if newest is not None and point.observed_at < newest.observed_at:
            logger.warning(
                "Dropping out-of-order point for %r: %s < %s",
                entity_id,
                point.observed_at.isoformat(),
                newest.observed_at.isoformat(),
            )
            return None

        value = point.metrics.get(self._rate_metric)
        rate = self._drain_rate(entity_id, value, point.observed_at)
        stored = HistoryPoint(
            observed_at=point.observed_at,
            label=point.label,
            metrics={**point.metrics, self._rate_name: rate},
        )

        self._points.append(stored)
        while len(self._points) > self._capacity:
            self._points.popleft()

        self._previous = PreviousSample(
            entity_id=entity_id,
            value=value,
            observed_at=point.observed_at,
        )
        return stored

    def _drain_rate(
        self,
        entity_id: Hashable,
        value: float | None,
        observed_at: datetime,
    ) -> float | None:
        """Percent lost per minute since the previous sample (negative = charging)."""
        previous = self._previous
        if previous is None or previous.entity_id != entity_id:
            return 0.0
        if previous.value is None or value is None:
            return None
        elapsed_min = (observed_at - previous.observed_at).total_seconds() / 60.0
        if elapsed_min <= 0:
            return 0.0
        return round((previous.value - value) / elapsed_min, 2)


class WindowArena:
    """One independent WindowBuffer per entity id.

    Unlike a single WindowBuffer, samples for every entity are retained
    concurrently, each window bounded by *capacity*.
    """

    def __init__(
        self,
        capacity: int,
        *,
        rate_metric: str = DEFAULT_RATE_METRIC,
        rate_name: str = DEFAULT_RATE_NAME,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._rate_metric = rate_metric
        self._rate_name = rate_name
        self._buffers: dict[Hashable, WindowBuffer] = {}

    def _buffer_for(self, entity_id: Hashable) -> WindowBuffer:
        buffer = self._buffers.get(entity_id)
        if buffer is None:
            buffer = WindowBuffer(
                self._capacity,
                rate_metric=self._rate_metric,
                rate_name=self._rate_name,
            )
            buffer.select(entity_id)
            self._buffers[entity_id] = buffer
        return buffer

    def append(self, entity_id: Hashable, point: HistoryPoint) -> HistoryPoint | None:
        return self._buffer_for(entity_id).append(entity_id, point)

    def points(self, entity_id: Hashable) -> list[HistoryPoint]:
        buffer = self._buffers.get(entity_id)
        return buffer.points if buffer is not None else []

    def discard(self, entity_id: Hashable) -> None:
        self._buffers.pop(entity_id, None)

    def entities(self) -> list[Hashable]:
        return list(self._buffers)


# ---------------------------------------------------------------------------
# Feed record -> HistoryPoint
# ---------------------------------------------------------------------------


def rover_point(rover: RoverStatus, observed_at: datetime | None = None) -> HistoryPoint:
    """Chart point for a rover: battery, temperature and speed."""
    ts = observed_at if observed_at is not None else rover.last_update
    return HistoryPoint(
        observed_at=ts,
        label=format_label(ts),
        metrics={
            "battery": round(rover.battery_level, 1),
            "temperature": rover.temperature_celsius,
            "speed": rover.speed_kmh,
        },
    )


def slot_point(record: NormalizedSlotRecord) -> HistoryPoint:
    """Chart point for a station slot; ``battery`` carries the SoC."""
    return HistoryPoint(
        observed_at=record.observed_at,
        label=format_label(record.observed_at),
        metrics={
            "voltage": record.voltage_volts,
            "current": record.current_amps,
            "battery": record.state_of_charge_percent,
            "temperature": record.temperature_celsius,
            "power": record.power_watts,
        },
    )
