from __future__ import annotations
from dataclasses import dataclass

@dataclass(frozen=True)
class RateLimitPolicy:
    window_seconds: float = 60.0
    max_requests: int = 10
    # prune expired windows once the table grows past this many keys
    prune_threshold: int = 1024
