from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Final

from .types import ProviderId, RateLimitState

MINUTE_SECONDS: Final[float] = 60.0
DAY_SECONDS: Final[float] = 86_400.0


class ProviderRateLimiter:
    """Per-provider minute/day request counters.

    Windows start at the first check after a reset and roll over once their
    length has elapsed. All reads and writes go through one lock so that a
    check and the following increment cannot interleave with another caller.
    """

    def __init__(
        self,
        provider_id: ProviderId,
        *,
        requests_per_minute: int,
        requests_per_day: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if requests_per_minute <= 0 or requests_per_day <= 0:
            raise ValueError("Rate limits must be positive.")
        self.provider_id = provider_id
        self.requests_per_minute = requests_per_minute
        self.requests_per_day = requests_per_day
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self._minute_count = 0
        self._day_count = 0
        self._minute_start = now
        self._day_start = now
        self._last_request_at: float | None = None

    def can_make_request(self) -> bool:
        with self._lock:
            self._roll_windows(self._clock())
            return self._has_capacity()

    def record_request(self) -> None:
        with self._lock:
            now = self._clock()
            self._roll_windows(now)
            self._increment(now)

    def try_acquire(self) -> bool:
        """Atomically check capacity and record one request."""

        with self._lock:
            now = self._clock()
            self._roll_windows(now)
            if not self._has_capacity():
                return False
            self._increment(now)
            return True

    def snapshot(self) -> RateLimitState:
        with self._lock:
            self._roll_windows(self._clock())
            return RateLimitState(
                provider_id=self.provider_id,
                requests_this_minute=self._minute_count,
                requests_today=self._day_count,
                minute_window_start=self._minute_start,
                day_window_start=self._day_start,
                last_request_at=self._last_request_at,
            )

    def reset(self) -> None:
        with self._lock:
            now = self._clock()
            self._minute_count = 0
            self._day_count = 0
            self._minute_start = now
            self._day_start = now
            self._last_request_at = None

    def _has_capacity(self) -> bool:
        return (
            self._minute_count < self.requests_per_minute
            and self._day_count < self.requests_per_day
        )

    def _increment(self, now: float) -> None:
        self._minute_count += 1
        self._day_count += 1
        self._last_request_at = now

    def _roll_windows(self, now: float) -> None:
        if now - self._minute_start >= MINUTE_SECONDS:
            self._minute_count = 0
            self._minute_start = now
        if now - self._day_start >= DAY_SECONDS:
            self._day_count = 0
            self._day_start = now
