"""Three-state circuit breaker guarding the ingredient extraction model call."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Literal

logger = logging.getLogger(__name__)

BreakerState = Literal["closed", "open", "half_open"]


class CircuitBreaker:
    """closed -> open after N consecutive failures -> half_open after cooldown.

    In half_open exactly one trial call is let through; its outcome decides
    between closed and a fresh open window. Transitions never await, so each
    one is atomic on the event loop; the lock covers thread-pool callers.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        cooldown_sec: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "ingredient_extract",
    ):
        self.failure_threshold = failure_threshold
        self.cooldown_sec = cooldown_sec
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()
        self._state: BreakerState = "closed"
        self._consecutive_failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def _maybe_half_open(self) -> None:
        if self._state == "open" and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.cooldown_sec:
                self._state = "half_open"
                self._trial_in_flight = False
                logger.info("breaker %s cooldown elapsed, half-open", self.name)

    def allow_request(self) -> bool:
        """Whether a model call may be made now. Claims the half-open trial."""
        with self._lock:
            self._maybe_half_open()
            if self._state == "closed":
                return True
            if self._state == "half_open" and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def release_trial(self) -> None:
        """Give back a claimed half-open trial whose call ended without an outcome (cancelled)."""
        with self._lock:
            if self._state == "half_open" and self._trial_in_flight:
                self._trial_in_flight = False
                logger.info("breaker %s trial released without outcome", self.name)

    def record_success(self) -> None:
        with self._lock:
            if self._state != "closed":
                logger.info("breaker %s closed after successful trial", self.name)
            self._state = "closed"
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state == "half_open" or self._consecutive_failures >= self.failure_threshold:
                if self._state != "open":
                    logger.warning(
                        "breaker %s opened after %s consecutive failures (cooldown=%ss)",
                        self.name,
                        self._consecutive_failures,
                        self.cooldown_sec,
                    )
                self._state = "open"
                self._opened_at = self._clock()
                self._trial_in_flight = False
