"""Fixed-cadence driver for monitoring cycles with at-most-one cycle in flight."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0


class _Monitor(Protocol):
    def monitor_all_games(self) -> int:
        ...

    def get_active_game_count(self) -> int:
        ...


class GameScheduler:
    def __init__(self, monitor: _Monitor, interval: float = DEFAULT_INTERVAL) -> None:
        if interval <= 0:
            raise ValueError("Scheduler interval must be positive")
        self._monitor = monitor
        self.interval = interval
        self._guard = threading.Lock()
        self._busy = False
        self._stop_event = threading.Event()
        self._ticker: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._ticker is not None and self._ticker.is_alive()

    @property
    def busy(self) -> bool:
        return self._busy

    def start(self) -> None:
        if self.running:
            logger.info("Scheduler already running")
            return
        self._stop_event.clear()
        self._ticker = threading.Thread(target=self._tick_loop, name="oracle-ticker", daemon=True)
        self._ticker.start()
        logger.info("Game monitoring scheduler started, polling every %gs", self.interval)

    def stop(self) -> None:
        """Cancel future ticks. A cycle already running is left to finish."""
        ticker = self._ticker
        if ticker is None:
            return
        self._stop_event.set()
        if ticker is not threading.current_thread():
            ticker.join(timeout=self.interval + 1.0)
        self._ticker = None
        logger.info("Scheduler stopped")

    def tick(self) -> bool:
        """Dispatch a cycle on a worker thread unless one is still running."""
        if not self._claim():
            logger.warning("Previous monitoring cycle still running, skipping tick")
            return False
        self._worker = threading.Thread(target=self._run_cycle, name="oracle-cycle", daemon=True)
        self._worker.start()
        return True

    def run_once(self) -> bool:
        if not self._claim():
            logger.warning("Monitoring cycle already in flight; run_once skipped")
            return False
        logger.info("Running single monitoring cycle...")
        self._run_cycle()
        logger.info("Monitoring cycle complete")
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=timeout)

    def _claim(self) -> bool:
        with self._guard:
            if self._busy:
                return False
            self._busy = True
            return True

    def _tick_loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            self.tick()

    def _run_cycle(self) -> None:
        try:
            logger.info("=== Game Monitoring Cycle === %s", datetime.now(timezone.utc).isoformat())
            self._monitor.monitor_all_games()
            logger.info("Active games in cache: %d", self._monitor.get_active_game_count())
        except Exception:
            logger.exception("Monitoring cycle error")
        finally:
            with self._guard:
                self._busy = False
