"""
Process-wide narration throttle and error budget.

One instance per process, handed to the narrator. Two independent duties:

- spacing: ``acquire()`` delays the caller until ``min_interval`` has passed
  since the previous request started
- error budget: errors are counted per key (provider name); a key with
  ``max_errors`` errors inside the cooldown window is advised against.
  Advisory only: it never blocks or raises.
"""

import asyncio
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from heatatlas.config import settings
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)


class RequestGovernor:

    def __init__(
        self,
        min_interval: Optional[float] = None,
        max_errors: Optional[int] = None,
        cooldown_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval = settings.NARRATION_MIN_INTERVAL_SECONDS if min_interval is None else min_interval
        self.max_errors = max_errors or settings.NARRATION_MAX_ERRORS_PER_TYPE
        self.cooldown_seconds = (
            settings.NARRATION_ERROR_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        )
        self._clock = clock

        self._lock = asyncio.Lock()
        self._last_request: Optional[float] = None

        self._error_counts: Dict[str, int] = defaultdict(int)
        self._last_error: Dict[str, float] = {}
        self._last_error_wall: Dict[str, str] = {}
        self._successes: Dict[str, int] = defaultdict(int)

    # ========================================================================
    # SPACING
    # ========================================================================

    async def acquire(self):
        """Wait for the shared request slot. Callers are served one at a time."""
        async with self._lock:
            if self._last_request is not None:
                wait = self._last_request + self.min_interval - self._clock()
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_request = self._clock()

    # ========================================================================
    # ERROR BUDGET
    # ========================================================================

    def should_proceed(self, key: str) -> bool:
        last = self._last_error.get(key)
        if last is None:
            return True
        if self._clock() - last > self.cooldown_seconds:
            self._error_counts[key] = 0
            return True
        return self._error_counts[key] < self.max_errors

    def record_outcome(self, key: str, error: Optional[BaseException] = None):
        if error is None:
            self._successes[key] += 1
            return

        self._error_counts[key] += 1
        self._last_error[key] = self._clock()
        self._last_error_wall[key] = datetime.now(timezone.utc).isoformat()
        logger.warning(
            "Narration error recorded",
            key=key,
            count=self._error_counts[key],
            error=str(error),
        )

    def error_summary(self) -> Dict[str, Dict]:
        return {
            key: {
                "count": count,
                "last_occurred": self._last_error_wall.get(key),
                "within_budget": self.should_proceed(key),
            }
            for key, count in list(self._error_counts.items())
        }

    def reset(self):
        self._error_counts.clear()
        self._last_error.clear()
        self._last_error_wall.clear()
        self._successes.clear()
