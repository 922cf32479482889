# domain/ratelimit/window.py
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .policy import RateLimitPolicy


@dataclass
class WindowState:
    started_at: float
    count: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after_s: float

    def headers(self) -> Dict[str, str]:
        out = {
            "RateLimit-Limit": str(self.limit),
            "RateLimit-Remaining": str(self.remaining),
            "RateLimit-Reset": str(int(math.ceil(self.reset_after_s))),
        }
        if not self.allowed:
            out["Retry-After"] = out["RateLimit-Reset"]
        return out


class FixedWindowLimiter:
    """
    Per-client fixed window counter.

    - In-memory, process-scoped. No cross-process sharing.
    - hit() is atomic per call (one lock for the whole table), so concurrent
      requests from the same client cannot undercount.
    - The clock is injectable so tests can move time by hand.
    """

    def __init__(
        self,
        policy: Optional[RateLimitPolicy] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy or RateLimitPolicy()
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, WindowState] = {}

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and decide whether it may proceed."""
        window = float(self.policy.window_seconds)
        limit = int(self.policy.max_requests)

        with self._lock:
            now = self._clock()

            st = self._windows.get(key)
            if st is None or now - st.started_at >= window:
                st = WindowState(started_at=now)
                self._windows[key] = st

            st.count += 1
            reset_after = max(0.0, st.started_at + window - now)

            if len(self._windows) > self.policy.prune_threshold:
                self._prune(now, window)

        return RateLimitDecision(
            allowed=st.count <= limit,
            limit=limit,
            remaining=max(0, limit - st.count),
            reset_after_s=reset_after,
        )

    def _prune(self, now: float, window: float) -> None:
        # Must be called with _lock held.
        expired = [k for k, st in self._windows.items() if now - st.started_at >= window]
        for k in expired:
            del self._windows[k]

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
