"""
Historical sampler producing chart-ready series for a requested time range.

The sampling interval adapts to the requested range so that a series never
holds more than MAX_POINTS + 1 points, keeping chart rendering cost roughly
constant whatever span is asked for.  Points are always returned oldest
first, with the last point at "now".

Two samplers share the same policy:
- SimulatedHistorySampler: synthetic series (charging ramp, full battery,
  empty slot) for demos and when no store is configured.
- StoreHistorySampler: readings from a ReadingStore, fetched newest-first
  with the point count as page size, then reversed.

HistoryRefresher re-samples a series on a fixed period for live charts.

CHANGELOG:
- 2026-10-19: A zero range samples the single "now" point
- 2026-10-11: Add HistoryRefresher
- 2026-10-10: Add StoreHistorySampler backed by ReadingStore
- 2026-10-06: Widen the interval past 60 min so the point cap holds
- 2026-10-05: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Protocol

from station.src.calibration import LEAD_ACID_12V, CalibrationProfile
from station.src.models import HistoryPoint
from station.src.normalizer import calculate_soc

if TYPE_CHECKING:
    from station.src.store import ReadingStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_POINTS: int = 360
"""Upper bound on point_count(); a series holds at most MAX_POINTS + 1 points."""

REFRESH_PERIOD_S: float = 3.0
"""Default period between HistoryRefresher re-samples."""

_INTERVAL_STEPS_MS: tuple[tuple[float, int], ...] = (
    (10, 3_000),
    (30, 5_000),
)
_LONG_RANGE_INTERVAL_MS = 10_000

SERIES_METRICS = ("voltage", "current", "soc", "temperature")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def format_label(ts: datetime) -> str:
    """Display time for a chart axis (24 h ``HH:MM``)."""
    return ts.strftime("%H:%M")


# ---------------------------------------------------------------------------
# Interval policy
# ---------------------------------------------------------------------------


def select_interval_ms(range_minutes: float) -> int:
    """Sampling interval in milliseconds for a range.

    3 s up to 10 min, 5 s up to 30 min, 10 s beyond; ranges above an hour
    get a wider interval so point_count() stays within MAX_POINTS.
    """
    for limit, interval in _INTERVAL_STEPS_MS:
        if range_minutes <= limit:
            return interval
    span_ms = range_minutes * 60_000
    return max(_LONG_RANGE_INTERVAL_MS, math.ceil(span_ms / MAX_POINTS))


def point_count(range_minutes: float) -> int:
    """Number of intervals in the range; the series has one more point."""
    if range_minutes <= 0:
        return 0
    return math.floor(range_minutes * 60_000 / select_interval_ms(range_minutes))


def sample_times(range_minutes: float, now: datetime) -> list[datetime]:
    """Timestamps ``now - i*interval`` for ``i`` from point_count() down to 0.

    A range of 0 yields just ``[now]``; a negative range yields nothing.
    """
    if range_minutes < 0:
        return []
    step = timedelta(milliseconds=select_interval_ms(range_minutes))
    total = point_count(range_minutes)
    return [now - i * step for i in range(total, -1, -1)]


# ---------------------------------------------------------------------------
# Simulated series
# ---------------------------------------------------------------------------


def simulate_history(
    slot_id: int,
    range_minutes: float,
    *,
    now: datetime | None = None,
    rng: random.Random | None = None,
) -> list[HistoryPoint]:
    """Generate a synthetic series for *slot_id* over *range_minutes*.

    Slot 1 is charging (voltage and SoC rising, current tapering), slot 2
    holds a stable full battery, every other slot is empty and yields
    points whose metrics are all ``None``.
    """
    now = now if now is not None else _utcnow()
    rng = rng if rng is not None else random.Random()
    times = sample_times(range_minutes, now)
    total = len(times) - 1

    points: list[HistoryPoint] = []
    for idx, ts in enumerate(times):
        if slot_id == 1:
            progress = idx / total if total > 0 else 1.0
            metrics: dict[str, float | None] = {
                "voltage": round(11.5 + progress * 1.1, 2),
                "current": round(8 - progress * 3, 2),
                "soc": round(40 + progress * 50, 1),
                "temperature": round(25 + rng.random() * 10 + progress * 5, 1),
            }
        elif slot_id == 2:
            metrics = {
                "voltage": round(12.55 + rng.random() * 0.1, 2),
                "current": round(rng.random() * 0.1, 2),
                "soc": round(99 + rng.random(), 1),
                "temperature": round(24 + rng.random() * 2, 1),
            }
        else:
            metrics = dict.fromkeys(SERIES_METRICS)
        points.append(HistoryPoint(observed_at=ts, label=format_label(ts), metrics=metrics))
    return points


# ---------------------------------------------------------------------------
# Samplers
# ---------------------------------------------------------------------------


class HistorySampler(Protocol):
    """Anything that can produce an oldest-first series for an entity."""

    async def sample(self, entity_ref: int | str, range_minutes: float) -> list[HistoryPoint]: ...


class SimulatedHistorySampler:
    """HistorySampler backed by :func:`simulate_history`."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock
        self._rng = rng if rng is not None else random.Random()

    async def sample(self, entity_ref: int | str, range_minutes: float) -> list[HistoryPoint]:
        try:
            slot_id = int(entity_ref)
        except (TypeError, ValueError):
            logger.warning("Unknown slot reference %r, sampling as empty slot", entity_ref)
            slot_id = 0
        return simulate_history(slot_id, range_minutes, now=self._clock(), rng=self._rng)


class StoreHistorySampler:
    """HistorySampler backed by a :class:`~station.src.store.ReadingStore`.

    The page size is capped at ``point_count(range) + 1`` so a long range
    never pulls more rows than the chart can show.  Rows arrive newest
    first and are reversed before conversion.

    Args:
        store: An opened ReadingStore (or any object with the same
            ``recent`` coroutine).
        profile: Calibration used to derive the ``soc`` metric.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        store: ReadingStore,
        *,
        profile: CalibrationProfile = LEAD_ACID_12V,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._profile = profile
        self._clock = clock

    async def sample(self, entity_ref: int | str, range_minutes: float) -> list[HistoryPoint]:
        if range_minutes < 0:
            logger.warning("Negative history range %r requested", range_minutes)
            return []
        now = self._clock()
        since = now - timedelta(minutes=range_minutes)
        limit = point_count(range_minutes) + 1
        try:
            rows = await self._store.recent(str(entity_ref), since=since, limit=limit)
        except Exception:
            logger.warning(
                "History query failed for entity=%s range=%smin",
                entity_ref,
                range_minutes,
                exc_info=True,
            )
            return []

        rows.reverse()
        points: list[HistoryPoint] = []
        for row in rows:
            current = None if row.current_milliamps is None else row.current_milliamps / 1000.0
            soc = calculate_soc(row.voltage_volts, self._profile)
            points.append(
                HistoryPoint(
                    observed_at=row.captured_at,
                    label=format_label(row.captured_at),
                    metrics={
                        "voltage": row.voltage_volts,
                        "current": None if current is None else round(current, 2),
                        "soc": None if soc is None else round(soc, 1),
                        "temperature": row.temperature_celsius,
                    },
                )
            )
        logger.debug(
            "History sample: entity=%s range=%smin limit=%d rows=%d",
            entity_ref,
            range_minutes,
            limit,
            len(points),
        )
        return points


# ---------------------------------------------------------------------------
# Periodic refresh
# ---------------------------------------------------------------------------


class HistoryRefresher:
    """Re-sample one series on a fixed period and hand it to a callback.

    ``retarget()`` switches entity or range and triggers an immediate
    refresh; a series sampled for the previous target is dropped instead
    of being delivered.

    Args:
        sampler: The HistorySampler to query.
        entity_ref: Entity whose series is refreshed.
        range_minutes: Requested range.
        on_series: Called with each fresh series.
        period_s: Seconds between refreshes.
    """

    def __init__(
        self,
        sampler: HistorySampler,
        entity_ref: int | str,
        range_minutes: float,
        on_series: Callable[[list[HistoryPoint]], None],
        *,
        period_s: float = REFRESH_PERIOD_S,
    ) -> None:
        self._sampler = sampler
        self._entity_ref = entity_ref
        self._range_minutes = range_minutes
        self._on_series = on_series
        self._period_s = period_s
        self._generation = 0
        self._wake = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._stopped = False

    @property
    def target(self) -> tuple[int | str, float]:
        return self._entity_ref, self._range_minutes

    def start(self) -> Callable[[], None]:
        """Start refreshing; returns an idempotent cancel callable."""
        if self._task is None and not self._stopped:
            self._task = asyncio.get_running_loop().create_task(self._run())
        return self.stop

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._task is not None:
            self._task.cancel()

    def retarget(self, entity_ref: int | str, range_minutes: float) -> None:
        self._entity_ref = entity_ref
        self._range_minutes = range_minutes
        self._generation += 1
        self._wake.set()

    async def refresh_once(self) -> None:
        """Sample the current target once and deliver it if still current."""
        generation = self._generation
        try:
            points = await self._sampler.sample(self._entity_ref, self._range_minutes)
        except Exception:
            logger.warning("History refresh failed", exc_info=True)
            return
        if self._stopped or generation != self._generation:
            logger.debug("Dropping stale series for generation %d", generation)
            return
        try:
            self._on_series(points)
        except Exception:
            logger.error("History consumer raised", exc_info=True)

    async def _run(self) -> None:
        while not self._stopped:
            self._wake.clear()
            await self.refresh_once()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._wake.wait(), timeout=self._period_s)
