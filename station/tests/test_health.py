"""
Unit tests for the station health writer module.

Tests verify:
- record_data() writes health.json with last_data_ts.
- update_feed() copies the supervisor's feed state.
- The file always contains all four fields.

CHANGELOG:
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path

from station.src.health import HealthWriter
from station.src.models import FeedSource, FeedState

_FIELDS = {"last_data_ts", "active_source", "last_error", "fallback_count"}


class TestRecordData:
    def test_record_data_writes_health_file(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)

        writer.record_data()

        data = json.loads(health_path.read_text())
        assert set(data) == _FIELDS
        assert isinstance(data["last_data_ts"], str)
        assert "T" in data["last_data_ts"]
        assert data["active_source"] is None
        assert data["fallback_count"] == 0

    def test_accepts_str_path(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        HealthWriter(str(health_path)).record_data()
        assert health_path.exists()


class TestUpdateFeed:
    def test_live_state(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)

        writer.update_feed(FeedState(active_source=FeedSource.LIVE))

        data = json.loads(health_path.read_text())
        assert data == {
            "last_data_ts": None,
            "active_source": "live",
            "last_error": None,
            "fallback_count": 0,
        }

    def test_fallback_state_preserves_last_data(self, tmp_path: Path) -> None:
        health_path = tmp_path / "health.json"
        writer = HealthWriter(health_path)
        writer.record_data()
        ts = json.loads(health_path.read_text())["last_data_ts"]

        writer.update_feed(
            FeedState(
                active_source=FeedSource.SIMULATED,
                last_error="Live source returned HTTP 403",
                fallback_count=1,
            )
        )

        data = json.loads(health_path.read_text())
        assert data["last_data_ts"] == ts
        assert data["active_source"] == "simulated"
        assert data["last_error"] == "Live source returned HTTP 403"
        assert data["fallback_count"] == 1
