from __future__ import annotations

import random
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Callable, Literal

from .config_schema import RateLimitConfig
from .run_log import EventLogger, NullLogger

LimiterState = Literal["steady", "throttled"]

_SUCCESS_STEP = 0.05
_FAILURE_STEP = 0.1
_BLOCKED_STEP = 0.3
_MIN_SUCCESS_RATE = 0.1
_RELAX_FACTOR = 0.95
_ESCALATE_FACTOR = 1.5

# (request_count threshold, multiplier); checked highest first.
_LOAD_STEPS: tuple[tuple[int, float], ...] = ((100, 2.0), (50, 1.5))


@dataclass(frozen=True)
class RateLimiterStats:
    base_delay: float
    current_delay: float
    success_rate: float
    request_count: int
    window_start: float
    requests_in_window: int
    window_time_remaining: float
    state: LimiterState

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_delay": self.base_delay,
            "current_delay": self.current_delay,
            "success_rate": round(self.success_rate, 4),
            "request_count": self.request_count,
            "requests_in_window": self.requests_in_window,
            "window_time_remaining": round(self.window_time_remaining, 3),
            "state": self.state,
        }


class RateLimiter:
    """
    Adaptive inter-request delay plus a hard per-window request ceiling.

    Call wait() before every remote interaction and report the outcome with
    record_success() / record_failure(). Failures escalate the delay faster
    than successes relax it.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
        sleep_fn: Callable[[float], None] | None = None,
        rng: random.Random | None = None,
        logger: EventLogger | None = None,
    ) -> None:
        cfg = config or RateLimitConfig()
        self.base_delay = float(cfg.base_delay_seconds)
        self.max_delay = float(cfg.max_delay_seconds)
        self.max_requests_per_window = int(cfg.max_requests_per_window)
        self.window_seconds = float(cfg.window_seconds)
        self.jitter_seconds = float(cfg.jitter_seconds)

        self._clock = clock or time.monotonic
        self._sleep = sleep_fn or time.sleep
        self._rng = rng or random.Random()
        self._logger = logger or NullLogger()
        self._lock = Lock()

        self.current_delay = self.base_delay
        self.success_rate = 1.0
        self.request_count = 0
        self.requests_in_window = 0
        self.window_start = self._clock()
        self._last_request_at: float | None = None
        self._state: LimiterState = "steady"

    @property
    def state(self) -> LimiterState:
        return self._state

    def load_factor(self) -> float:
        for threshold, factor in _LOAD_STEPS:
            if self.request_count > threshold:
                return factor
        return 1.0

    def compute_delay(self) -> float:
        delay = self.current_delay * (2.0 - self.success_rate) * self.load_factor()
        if self.jitter_seconds > 0:
            delay += self._rng.uniform(0.0, self.jitter_seconds)
        return min(max(delay, self.base_delay), self.max_delay)

    def wait(self) -> float:
        """Block until the next request may go out. Returns seconds slept."""
        with self._lock:
            slept = 0.0
            now = self._clock()

            if now - self.window_start > self.window_seconds:
                self.window_start = now
                self.requests_in_window = 0

            if self.requests_in_window >= self.max_requests_per_window:
                remaining = max(0.0, self.window_seconds - (now - self.window_start))
                self._state = "throttled"
                self._logger.warning(
                    "rate_limit_throttled",
                    wait_seconds=round(remaining, 3),
                    requests_in_window=self.requests_in_window,
                )
                if remaining > 0:
                    self._sleep(remaining)
                    slept += remaining
                now = self._clock()
                self.window_start = now
                self.requests_in_window = 0
                self._state = "steady"

            delay = self.compute_delay()
            if self._last_request_at is None:
                elapsed = delay
            else:
                elapsed = now - self._last_request_at
            if elapsed < delay:
                pause = delay - elapsed
                self._sleep(pause)
                slept += pause

            self._last_request_at = self._clock()
            self.request_count += 1
            self.requests_in_window += 1
            self._logger.debug(
                "rate_limit_wait",
                request=self.request_count,
                delay_seconds=round(delay, 3),
                slept_seconds=round(slept, 3),
            )
            return slept

    def record_success(self) -> None:
        with self._lock:
            self.success_rate = min(1.0, self.success_rate + _SUCCESS_STEP)
            self.current_delay = max(self.base_delay, self.current_delay * _RELAX_FACTOR)

    def record_failure(self, was_blocked: bool = False) -> None:
        with self._lock:
            step = _BLOCKED_STEP if was_blocked else _FAILURE_STEP
            self.success_rate = max(_MIN_SUCCESS_RATE, self.success_rate - step)
            self.current_delay = min(self.max_delay, self.current_delay * _ESCALATE_FACTOR)
            self._logger.warning(
                "rate_limit_failure",
                blocked=bool(was_blocked),
                success_rate=round(self.success_rate, 4),
                current_delay=round(self.current_delay, 3),
            )

    def stats(self) -> RateLimiterStats:
        with self._lock:
            now = self._clock()
            return RateLimiterStats(
                base_delay=self.base_delay,
                current_delay=self.current_delay,
                success_rate=self.success_rate,
                request_count=self.request_count,
                window_start=self.window_start,
                requests_in_window=self.requests_in_window,
                window_time_remaining=max(0.0, self.window_seconds - (now - self.window_start)),
                state=self._state,
            )

    def reset(self) -> None:
        with self._lock:
            self.current_delay = self.base_delay
            self.success_rate = 1.0
            self.request_count = 0
            self.requests_in_window = 0
            self.window_start = self._clock()
            self._last_request_at = None
            self._state = "steady"
