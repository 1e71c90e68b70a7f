"""Request pacing for provider clients.

Both providers publish request ceilings (Notion averages three requests per
second; Todoist caps the sync endpoint per 15-minute window).  Rather than
firing requests back-to-back and relying on 429 retries, every client owns a
``RateLimiter`` that spaces calls at least ``1 / requests_per_second``
seconds apart.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval limiter shared by all threads using one client.

    Args:
        requests_per_second: Sustained ceiling.  ``0`` or less disables
            pacing entirely.
        clock: Monotonic clock (injectable for tests).
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        requests_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = (
            1.0 / requests_per_second if requests_per_second > 0 else 0.0
        )
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0

    def wait(self) -> float:
        """Block until the next request slot is available.

        Returns:
            Seconds spent waiting (``0.0`` when no wait was needed).
        """
        if self.interval == 0.0:
            return 0.0

        with self._lock:
            now = self._clock()
            delay = max(0.0, self._next_slot - now)
            self._next_slot = max(now, self._next_slot) + self.interval

        if delay > 0:
            logger.debug("Rate limiter pausing %.3fs", delay)
            self._sleep(delay)
        return delay
