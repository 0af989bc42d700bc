"""
Tests for the SQLite reading store.

Verifies schema creation, WAL mode, per-entity isolation, newest-first
ordering, the since/limit filters and context manager behaviour.

CHANGELOG:
- 2026-10-10: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import aiosqlite
import pytest
from station.src.models import RawSample
from station.src.store import ReadingStore

_T0 = datetime(2026, 10, 14, 12, 0, 0, tzinfo=UTC)


def _raw(minutes: float, voltage: float | None = 12.5) -> RawSample:
    return RawSample(
        voltage_volts=voltage,
        current_milliamps=-250.0,
        temperature_celsius=22.5,
        captured_at=_T0 + timedelta(minutes=minutes),
    )


class TestReadingStore:
    @pytest.mark.asyncio
    async def test_wal_mode_enabled(self, tmp_path: Path) -> None:
        path = tmp_path / "wal.db"
        async with ReadingStore(path):
            pass
        async with aiosqlite.connect(str(path)) as db:
            cursor = await db.execute("PRAGMA journal_mode;")
            row = await cursor.fetchone()
        assert row[0] == "wal"

    @pytest.mark.asyncio
    async def test_record_and_count(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            assert await store.count("1") == 0
            await store.record("1", _raw(0))
            await store.record("1", _raw(1))
            await store.record("2", _raw(1))
            assert await store.count("1") == 2
            assert await store.count("2") == 1

    @pytest.mark.asyncio
    async def test_recent_newest_first(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            for minutes in (0, 2, 1):
                await store.record("1", _raw(minutes, voltage=12.0 + minutes))

            rows = await store.recent("1", since=_T0 - timedelta(hours=1), limit=10)

            assert [r.voltage_volts for r in rows] == [14.0, 13.0, 12.0]
            assert rows[0].captured_at == _T0 + timedelta(minutes=2)
            assert rows[0].current_milliamps == -250.0
            assert rows[0].temperature_celsius == 22.5

    @pytest.mark.asyncio
    async def test_recent_respects_since(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            for minutes in (0, 5, 10):
                await store.record("1", _raw(minutes))

            rows = await store.recent("1", since=_T0 + timedelta(minutes=5), limit=10)

            assert [r.captured_at for r in rows] == [
                _T0 + timedelta(minutes=10),
                _T0 + timedelta(minutes=5),
            ]

    @pytest.mark.asyncio
    async def test_recent_respects_limit(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            for minutes in range(10):
                await store.record("1", _raw(minutes))

            rows = await store.recent("1", since=_T0, limit=3)

            assert len(rows) == 3
            assert rows[0].captured_at == _T0 + timedelta(minutes=9)

    @pytest.mark.asyncio
    async def test_non_positive_limit(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            await store.record("1", _raw(0))
            assert await store.recent("1", since=_T0, limit=0) == []

    @pytest.mark.asyncio
    async def test_null_values_round_trip(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            await store.record("1", RawSample(captured_at=_T0))
            rows = await store.recent("1", since=_T0, limit=1)
            assert rows[0].voltage_volts is None
            assert rows[0].current_milliamps is None
            assert rows[0].temperature_celsius is None

    @pytest.mark.asyncio
    async def test_offset_timestamps_ordered_by_instant(self, tmp_path: Path) -> None:
        async with ReadingStore(tmp_path / "readings.db") as store:
            plus_two = timezone(timedelta(hours=2))
            # 13:30+02:00 is 11:30Z, earlier than 12:00Z.
            await store.record("1", RawSample(voltage_volts=1.0, captured_at=_T0))
            await store.record(
                "1",
                RawSample(
                    voltage_volts=2.0,
                    captured_at=datetime(2026, 10, 14, 13, 30, tzinfo=plus_two),
                ),
            )

            rows = await store.recent("1", since=_T0 - timedelta(hours=1), limit=10)

            assert [r.voltage_volts for r in rows] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_data_persists_across_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        async with ReadingStore(path) as s:
            await s.record("1", _raw(0))
        async with ReadingStore(path) as s:
            assert await s.count("1") == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, tmp_path: Path) -> None:
        s = ReadingStore(tmp_path / "x.db")
        await s.open()
        await s.close()
        await s.close()
