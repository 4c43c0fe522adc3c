"""
Orchestrator — wires configuration, logging, the ingestion runner and the
scheduler together.

Pipelines:
  1. ingest  — one pass: inbox → parse → format → journal → delete
  2. watch   — run ingest at the configured period until interrupted
"""

import logging
import threading
from pathlib import Path

from shared_notes import config
from shared_notes.services.ingestion import IngestionRunner
from shared_notes.services.scheduler import Scheduler

logger = logging.getLogger(__name__)


class SharedNotesAgent:
    """Top-level agent that owns the runner and its periodic schedule."""

    def __init__(
        self,
        note_dir: Path | None = None,
        target: Path | None = None,
        period: int | None = None,
        setup_logging: bool = True,
    ):
        self.runner = IngestionRunner(note_dir=note_dir, target=target)
        self.scheduler = Scheduler(self.runner.run)
        self.period = period or config.SHARED_NOTES_PERIOD
        if setup_logging:
            self._setup_logging()

    def _setup_logging(self) -> None:
        handlers = [logging.StreamHandler()]
        if config.LOG_FILE:
            handlers.append(logging.FileHandler(config.LOG_FILE))
        logging.basicConfig(
            level=getattr(logging, config.LOG_LEVEL, logging.INFO),
            format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            handlers=handlers,
        )

    # ── Pipeline 1: Ingest ────────────────────────────────────────────

    def ingest(self) -> int:
        """Single pass over the inbox.  Returns the number of notes filed."""
        logger.debug(
            "Ingesting %s → %s", self.runner.note_dir, self.runner.target
        )
        return self.runner.run()

    # ── Pipeline 2: Watch ─────────────────────────────────────────────

    def set_enabled(self, enabled: bool) -> None:
        self.scheduler.set_enabled(enabled, self.period)

    def watch(self, stop: threading.Event | None = None) -> None:
        """
        Run the periodic job until *stop* is set (or forever).  The
        in-flight pass, if any, is allowed to finish on the way out.
        """
        stop = stop or threading.Event()
        self.set_enabled(True)
        try:
            stop.wait()
        finally:
            self.scheduler.stop(wait=True)
