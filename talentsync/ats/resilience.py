"""Backoff and circuit breaking for outbound ATS calls."""

import random
import time
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


def backoff_delay(
    attempt: int,
    base: float,
    cap: float,
    rng: Optional[random.Random] = None,
) -> float:
    """Full-jitter exponential backoff: uniform(0, min(base * 2**attempt, cap))."""
    ceiling = min(base * (2 ** attempt), cap)
    return (rng or random).uniform(0, ceiling)


def parse_retry_after(value: Optional[str], cap: float) -> Optional[float]:
    """Seconds from a Retry-After header (delta-seconds form only), capped."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return max(0.0, min(seconds, cap))


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    closed: calls flow. After ``threshold`` consecutive failures it opens and
    rejects calls until ``cooldown`` seconds pass; then one trial call is let
    through (half-open). Success closes it, failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        threshold: int = 5,
        cooldown: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.cooldown = cooldown
        self.clock = clock
        self.failures = 0
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        if self.opened_at is None:
            return "closed"
        if self.clock() - self.opened_at >= self.cooldown:
            return "half_open"
        return "open"

    def allow(self) -> bool:
        """Whether a call may proceed now."""
        state = self.state
        if state == "closed":
            return True
        if state == "half_open" and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self) -> None:
        if self.opened_at is not None:
            logger.info("Circuit closed", circuit=self.name)
        self.failures = 0
        self.opened_at = None
        self._trial_in_flight = False

    def release_trial(self) -> None:
        """End a trial call that finished without an outcome (token error, cancellation).

        The circuit stays half-open so the next call may try again.
        """
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self.failures += 1
        if self._trial_in_flight or self.failures >= self.threshold:
            if self.opened_at is None or self._trial_in_flight:
                logger.warning("Circuit opened", circuit=self.name, failures=self.failures)
            self.opened_at = self.clock()
        self._trial_in_flight = False
