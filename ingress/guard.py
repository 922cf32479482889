# ingress/guard.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, Sequence, TypeVar

from domain.errors import ingress_rate_limited, ingress_timeout, origin_not_allowed
from domain.ratelimit.window import FixedWindowLimiter, RateLimitDecision

T = TypeVar("T")


class IngressGuard:
    """
    Everything that happens to a request before and around the optimizer:

      - origin allow-list (production only)
      - per-client rate limiting
      - request-level deadline

    Body size is enforced by connectors.ingress_http.read_json_body since it
    has to happen while reading.
    """

    def __init__(
        self,
        *,
        limiter: FixedWindowLimiter,
        request_timeout_s: float = 30.0,
        enforce_origin: bool = False,
        allowed_origins: Sequence[str] = (),
    ) -> None:
        self.limiter = limiter
        self.request_timeout_s = float(request_timeout_s)
        self.enforce_origin = bool(enforce_origin)
        self.allowed_origins = frozenset(allowed_origins)

    def check_origin(self, origin: Optional[str]) -> None:
        if not self.enforce_origin:
            return
        if origin not in self.allowed_origins:
            raise origin_not_allowed()

    def check_rate(self, client_id: str) -> RateLimitDecision:
        decision = self.limiter.hit(client_id)
        if not decision.allowed:
            raise ingress_rate_limited(decision.headers())
        return decision

    async def run_with_deadline(self, aw: Awaitable[T]) -> T:
        """
        Await `aw` for at most request_timeout_s.
        On expiry the work is cancelled (including any in-flight upstream call)
        and a 408 RelayError is raised.
        """
        try:
            return await asyncio.wait_for(aw, timeout=self.request_timeout_s)
        except asyncio.TimeoutError:
            raise ingress_timeout()
