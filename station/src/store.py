"""
Async SQLite reading store backing the historical sampler.

Holds raw sensor readings per entity so chart ranges can be seeded from real
data.  Queries return rows newest-first; callers that plot them reverse the
order themselves.

Operations:
- record(entity_id, raw): INSERT one reading.
- recent(entity_id, since, limit): SELECT up to limit readings newer than
  since, newest first.
- count(entity_id): SELECT COUNT(*) for one entity.
- close(): Close the underlying database connection.

Supports async context manager protocol for clean resource management.

CHANGELOG:
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from station.src.models import RawSample

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS readings (
    rowid INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_id TEXT NOT NULL,
    captured_at TEXT NOT NULL,
    voltage_volts REAL,
    current_milliamps REAL,
    temperature_celsius REAL
);
"""

_CREATE_INDEX_SQL = """\
CREATE INDEX IF NOT EXISTS readings_entity_ts
ON readings (entity_id, captured_at);
"""

_INSERT_SQL = """\
INSERT INTO readings
    (entity_id, captured_at, voltage_volts, current_milliamps, temperature_celsius)
VALUES (?, ?, ?, ?, ?);
"""

_RECENT_SQL = """\
SELECT captured_at, voltage_volts, current_milliamps, temperature_celsius
FROM readings
WHERE entity_id = ? AND captured_at >= ?
ORDER BY captured_at DESC
LIMIT ?;
"""

_COUNT_SQL = "SELECT COUNT(*) FROM readings WHERE entity_id = ?;"


def _to_key(ts: datetime) -> str:
    """Serialise a timestamp so lexical order matches time order."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat(timespec="microseconds")


class ReadingStore:
    """Async store of raw readings keyed by entity, backed by SQLite.

    Args:
        path: Filesystem path for the SQLite database file.
              Accepts ``str`` or ``pathlib.Path``.

    Usage::

        async with ReadingStore("/data/readings.db") as store:
            await store.record("1", raw)
            rows = await store.recent("1", since=start, limit=200)
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        """Open the SQLite connection and initialize the schema."""
        self._db = await aiosqlite.connect(str(self._path))
        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute(_CREATE_TABLE_SQL)
        await self._db.execute(_CREATE_INDEX_SQL)
        await self._db.commit()

    async def close(self) -> None:
        """Close the underlying SQLite connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> ReadingStore:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def record(self, entity_id: str, raw: RawSample) -> None:
        """Insert one reading for *entity_id*."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        await self._db.execute(
            _INSERT_SQL,
            (
                entity_id,
                _to_key(raw.captured_at),
                raw.voltage_volts,
                raw.current_milliamps,
                raw.temperature_celsius,
            ),
        )
        await self._db.commit()

    async def recent(
        self,
        entity_id: str,
        *,
        since: datetime,
        limit: int,
    ) -> list[RawSample]:
        """Return up to *limit* readings captured at or after *since*.

        Results are ordered newest first.  An empty list is returned when
        *limit* < 1.
        """
        assert self._db is not None, "Store not opened. Call open() or use async with."
        if limit < 1:
            return []
        cursor = await self._db.execute(_RECENT_SQL, (entity_id, _to_key(since), limit))
        rows = await cursor.fetchall()
        return [
            RawSample(
                captured_at=datetime.fromisoformat(row[0]),
                voltage_volts=row[1],
                current_milliamps=row[2],
                temperature_celsius=row[3],
            )
            for row in rows
        ]

    async def count(self, entity_id: str) -> int:
        """Return the number of readings stored for *entity_id*."""
        assert self._db is not None, "Store not opened. Call open() or use async with."
        cursor = await self._db.execute(_COUNT_SQL, (entity_id,))
        row = await cursor.fetchone()
        return row[0]
