from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 5
DEFAULT_RESET_AFTER = 30.0


class CircuitBreaker:
    """Failure counter that blocks requests to an unhealthy upstream.

    The breaker is open once ``threshold`` failures have been recorded and
    the most recent one is no older than ``reset_after`` seconds. There is no
    half-open state: the first ``is_open()`` call after the cooldown resets
    the count and reports closed.
    """

    def __init__(
        self,
        threshold: int = DEFAULT_THRESHOLD,
        reset_after: float = DEFAULT_RESET_AFTER,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.reset_after = reset_after
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._last_failure = 0.0

    @property
    def failures(self) -> int:
        with self._lock:
            return self._failures

    def is_open(self) -> bool:
        with self._lock:
            if self._failures < self.threshold:
                return False
            if self._clock() - self._last_failure > self.reset_after:
                logger.debug("circuit breaker cooldown elapsed, closing")
                self._failures = 0
                return False
            return True

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            self._last_failure = self._clock()
            if self._failures == self.threshold:
                logger.warning("circuit breaker open after %d consecutive failures", self._failures)
