"""
Live feed supervisor with one-way fallback to the simulated source.

Owns exactly one active source at a time and exposes a single ``on_data``
callback to consumers:

- Live: records come from a LiveSource subscription.  The first error
  reported by the subscription, or any failure constructing it, moves the
  supervisor to Simulated for the rest of its lifetime.
- Simulated: records come from a ticking SimulatedSource.
- Stopped: terminal; the subscription is released, the timer cancelled,
  and no further callbacks fire.

Every callback is gated on the current mode, so a late live notification
arriving after fallback or stop is dropped.  Nothing here raises to the
caller; failures become log records and an ``on_error`` notification.

CHANGELOG:
- 2026-10-09: Treat live source construction errors as source failures
- 2026-10-06: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Protocol

from station.src.exceptions import ConfigurationError, TelemetryError
from station.src.models import FeedMode, FeedSource, FeedState
from station.src.sources import DataCallback, ErrorCallback, LiveSource

logger = logging.getLogger(__name__)


class SimulatedFeed(Protocol):
    """A local generator with the one-record-per-tick contract."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class FeedSupervisor:
    """Run a live source or the simulated source behind one callback.

    Args:
        use_simulated: Start directly on the simulated source.
        live_factory: Builds the live source; may raise ConfigurationError.
        simulated_factory: Builds the simulated source given the data
            callback it must deliver to.
        on_data: Called with every record from the active source.
        on_error: Called once with the error that caused the fallback.

    Usage::

        supervisor = FeedSupervisor(
            use_simulated=settings.use_mock_data,
            live_factory=lambda: HttpLiveSource(url, "batteryReadings"),
            simulated_factory=lambda cb: SimulatedSource(cb),
            on_data=monitor.ingest,
        )
        cancel = supervisor.start()
        ...
        cancel()
    """

    def __init__(
        self,
        *,
        use_simulated: bool,
        live_factory: Callable[[], LiveSource],
        simulated_factory: Callable[[DataCallback], SimulatedFeed],
        on_data: DataCallback,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._use_simulated = use_simulated
        self._live_factory = live_factory
        self._simulated_factory = simulated_factory
        self._on_data = on_data
        self._on_error = on_error
        self._mode: FeedMode | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._simulated: SimulatedFeed | None = None
        self.state = FeedState(
            active_source=FeedSource.SIMULATED if use_simulated else FeedSource.LIVE,
        )

    @property
    def mode(self) -> FeedMode | None:
        """Current state; ``None`` until started."""
        return self._mode

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> Callable[[], None]:
        """Start the initial source; returns the idempotent stop callable.

        Calling start() again, or after stop(), has no effect.
        """
        if self._mode is not None:
            return self.stop
        if self._use_simulated:
            logger.info("Feed supervisor starting on simulated source")
            self._start_simulated()
        else:
            logger.info("Feed supervisor starting on live source")
            self._start_live()
        return self.stop

    def stop(self) -> None:
        """Release every source and enter the terminal Stopped state."""
        if self._mode is FeedMode.STOPPED:
            return
        previous = self._mode
        self._mode = FeedMode.STOPPED
        self._release_live()
        self._stop_simulated()
        logger.info("Feed supervisor stopped (was %s)", previous)

    # ------------------------------------------------------------------
    # Live
    # ------------------------------------------------------------------

    def _start_live(self) -> None:
        self._mode = FeedMode.LIVE
        self.state.active_source = FeedSource.LIVE
        try:
            source = self._live_factory()
            unsubscribe = source.subscribe(self._on_live_data, self._on_live_error)
        except Exception as exc:
            logger.warning("Live source could not be started", exc_info=True)
            if not isinstance(exc, TelemetryError):
                wrapped = ConfigurationError(f"Live source could not be started: {exc}")
                wrapped.__cause__ = exc
                exc = wrapped
            self._fall_back(exc)
            return

        if self._mode is FeedMode.LIVE:
            self._unsubscribe = unsubscribe
        else:
            # The subscription failed before subscribe() returned.
            self._safe_call(unsubscribe, "unsubscribe")

    def _on_live_data(self, record: Any) -> None:
        if self._mode is not FeedMode.LIVE:
            logger.debug("Dropping live record received in mode %s", self._mode)
            return
        self._emit(record)

    def _on_live_error(self, error: Exception) -> None:
        if self._mode is not FeedMode.LIVE:
            logger.debug("Ignoring live error in mode %s: %s", self._mode, error)
            return
        self._fall_back(error)

    def _release_live(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            self._safe_call(unsubscribe, "unsubscribe")

    def _fall_back(self, error: Exception) -> None:
        """Switch permanently from Live to Simulated."""
        self._release_live()
        self.state.active_source = FeedSource.SIMULATED
        self.state.last_error = str(error) or type(error).__name__
        self.state.fallback_count += 1
        logger.warning(
            "Live feed failed (%s: %s), falling back to simulated source",
            type(error).__name__,
            error,
        )
        if self._on_error is not None:
            self._safe_call(lambda: self._on_error(error), "on_error")
        self._start_simulated()

    # ------------------------------------------------------------------
    # Simulated
    # ------------------------------------------------------------------

    def _start_simulated(self) -> None:
        self._mode = FeedMode.SIMULATED
        self.state.active_source = FeedSource.SIMULATED
        try:
            self._simulated = self._simulated_factory(self._on_simulated_data)
            self._simulated.start()
        except Exception:
            logger.error("Simulated source could not be started", exc_info=True)

    def _on_simulated_data(self, record: Any) -> None:
        if self._mode is not FeedMode.SIMULATED:
            return
        self._emit(record)

    def _stop_simulated(self) -> None:
        simulated, self._simulated = self._simulated, None
        if simulated is not None:
            self._safe_call(simulated.stop, "simulated stop")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _emit(self, record: Any) -> None:
        try:
            self._on_data(record)
        except Exception:
            logger.error("Feed consumer raised", exc_info=True)

    @staticmethod
    def _safe_call(func: Callable[[], Any], what: str) -> None:
        try:
            func()
        except Exception:
            logger.warning("Feed supervisor %s failed", what, exc_info=True)
