"""Restart policy for the supervised worker."""

from __future__ import annotations

import time
from typing import Callable, Optional


class RestartPolicy:
    """
    Decide when a terminated worker may be relaunched.

    A worker that ran for at least ``stable_after`` seconds counts as a
    success and is relaunched at once. Each consecutive short-lived run
    after the first doubles the delay, starting at ``initial`` and capped
    at ``maximum``, so a single crash is always relaunched on the next tick.
    The default ``initial`` of 0 disables the delay altogether. With ``max_restarts`` set, the policy gives up after that many
    consecutive short-lived runs.
    """

    def __init__(
        self,
        *,
        initial: float = 0.0,
        maximum: float = 60.0,
        stable_after: float = 30.0,
        max_restarts: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if initial < 0 or maximum < 0:
            raise ValueError("backoff delays must be non-negative")
        if max_restarts is not None and max_restarts < 0:
            raise ValueError("max_restarts must be non-negative")
        self.initial = initial
        self.maximum = max(maximum, initial)
        self.stable_after = stable_after
        self.max_restarts = max_restarts
        self._clock = clock
        self.failures = 0
        self._not_before = 0.0

    @property
    def exhausted(self) -> bool:
        return self.max_restarts is not None and self.failures > self.max_restarts

    def current_delay(self) -> float:
        if self.failures <= 1:
            return 0.0
        return min(self.initial * (2 ** (self.failures - 2)), self.maximum)

    def record_exit(self, runtime: float) -> float:
        """Register a worker exit after ``runtime`` seconds. Returns the delay imposed."""
        if runtime >= self.stable_after:
            self.failures = 0
        else:
            self.failures += 1
        delay = self.current_delay()
        self._not_before = self._clock() + delay
        return delay

    def ready(self) -> bool:
        """True when a relaunch is allowed now."""
        return not self.exhausted and self._clock() >= self._not_before

    def remaining(self) -> float:
        return max(0.0, self._not_before - self._clock())

    def reset(self) -> None:
        self.failures = 0
        self._not_before = 0.0
