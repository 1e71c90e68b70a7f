"""Periodic sync runner.

Runs one pass immediately and then every ``interval_minutes``.  Passes never
overlap: a tick that arrives while a pass is still running is skipped (not
queued) and logged.  Passes are started through a caller-supplied callable so
each tick builds a fresh engine with a freshly loaded mapping store.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from taskbridge.core.errors import AuthError, TaskBridgeError
from taskbridge.sync.models import SyncReport

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Run sync passes on a fixed interval with skip-if-running semantics.

    Args:
        run_pass: Callable executing one pass and returning its report.
        interval_minutes: Delay between pass starts.
        stop_event: Event that ends ``run_forever`` (created if omitted).
    """

    def __init__(
        self,
        run_pass: Callable[[], SyncReport],
        interval_minutes: float = 15,
        stop_event: threading.Event | None = None,
    ) -> None:
        if interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.run_pass = run_pass
        self.interval_seconds = interval_minutes * 60
        self.stop_event = stop_event or threading.Event()
        self._running = threading.Lock()
        self.last_report: SyncReport | None = None
        self.skipped_ticks = 0

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run_once(self) -> SyncReport | None:
        """Run a pass unless one is already running.

        Returns:
            The pass report, or ``None`` when the tick was skipped.

        Raises:
            AuthError: Credentials were rejected; retrying cannot help.
        """
        if not self._running.acquire(blocking=False):
            self.skipped_ticks += 1
            logger.warning("Previous sync still running; skipping this run")
            return None
        try:
            logger.info("Starting scheduled sync")
            report = self.run_pass()
            self.last_report = report
            counts = report.counts()
            logger.info(
                "Sync complete: created=%d updated=%d deleted=%d "
                "skipped=%d errors=%d",
                counts["created"],
                counts["updated"],
                counts["deleted"],
                counts["skipped"],
                counts["errors"],
            )
            for warning in report.warnings:
                logger.warning(warning)
            return report
        finally:
            self._running.release()

    def run_forever(self) -> None:
        """Run passes until ``stop()`` is called or credentials fail.

        Any other failure is logged and the next tick still runs.
        """
        logger.info(
            "Scheduler started: every %.0f minutes", self.interval_seconds / 60
        )
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except AuthError:
                logger.error("Authentication failed; stopping scheduler")
                raise
            except TaskBridgeError as exc:
                logger.error("Sync pass failed: %s", exc.message)
            except Exception:
                logger.exception("Sync pass crashed; retrying next interval")
            self.stop_event.wait(self.interval_seconds)
        logger.info("Scheduler stopped")

    def stop(self) -> None:
        self.stop_event.set()
