"""
Health file writer for the station telemetry daemon.

Writes a JSON health file at a configurable path with four fields:
- last_data_ts: ISO timestamp of the most recent record delivered.
- active_source: ``live`` or ``simulated``.
- last_error: Message of the error that triggered the fallback, if any.
- fallback_count: Number of live-to-simulated transitions.

The file is rewritten on every state change, providing a simple liveness
signal that a container HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-11: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from station.src.models import FeedState


class HealthWriter:
    """Writes feed health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_data_ts: str | None = None
        self._active_source: str | None = None
        self._last_error: str | None = None
        self._fallback_count: int = 0

    def record_data(self) -> None:
        """Record a delivered record and write health file."""
        self._last_data_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def update_feed(self, state: FeedState) -> None:
        """Copy the supervisor's feed state and write health file."""
        self._active_source = state.active_source.value
        self._last_error = state.last_error
        self._fallback_count = state.fallback_count
        self._write()

    def _write(self) -> None:
        data = {
            "last_data_ts": self._last_data_ts,
            "active_source": self._active_source,
            "last_error": self._last_error,
            "fallback_count": self._fallback_count,
        }
        self.path.write_text(json.dumps(data))
