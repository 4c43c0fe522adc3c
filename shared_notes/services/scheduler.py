"""
Scheduler — runs an ingestion job at a fixed period on a background thread.

Ticks are measured from start(): the first run is immediate and the next
ones land on start + n * period.  Ticks missed while a run overran are
dropped, never queued, so at most one run is ever in flight.  stop() only
prevents future runs; a run already in progress finishes.
"""

import logging
import threading
import time
from typing import Callable

from shared_notes import config

logger = logging.getLogger(__name__)


class Scheduler:
    """Owns the periodic job; one instance per process that runs it."""

    def __init__(self, job: Callable[[], int]):
        self.job = job
        self.period = config.SHARED_NOTES_PERIOD
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._busy = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, period_seconds: float | None = None) -> None:
        if self.running:
            logger.debug("Scheduler already running.")
            return
        if period_seconds is not None:
            self.period = period_seconds
        if self.period <= 0:
            raise ValueError(f"period must be positive, got {self.period}")

        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop, args=(self._stop,),
            name="shared-notes-scheduler", daemon=True,
        )
        self._thread.start()
        logger.info("Scheduler started — every %ss", self.period)

    def stop(self, wait: bool = False, timeout: float | None = None) -> None:
        """Cancel future runs; with *wait*, also wait for an in-flight run."""
        if self._thread is None:
            return
        self._stop.set()
        if wait and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        logger.info("Scheduler stopped.")
        self._thread = None

    def set_enabled(self, enabled: bool, period_seconds: float | None = None) -> None:
        """Start or stop the periodic job to match the enable toggle."""
        if enabled:
            self.start(period_seconds)
        else:
            self.stop()

    def run_now(self) -> int | None:
        """Run the job once; None when a run is already in flight."""
        if not self._busy.acquire(blocking=False):
            logger.info("Job already running; skipping tick.")
            return None
        try:
            return self.job()
        except Exception:
            logger.exception("Ingestion pass failed; retrying next tick.")
            return None
        finally:
            self._busy.release()

    def _loop(self, stop: threading.Event) -> None:
        next_run = time.monotonic()
        while not stop.is_set():
            self.run_now()
            next_run += self.period
            now = time.monotonic()
            if next_run <= now:
                skipped = int((now - next_run) // self.period) + 1
                logger.warning("Run overran; skipping %d tick(s).", skipped)
                next_run += skipped * self.period
            stop.wait(next_run - now)
