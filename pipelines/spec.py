from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Union


VERSION_KEYS = ("structured", "detailed", "concise")


class ErrorCategory(str, Enum):
    """Closed set of failure classes. Each maps to exactly one HTTP status."""
    VALIDATION_ERROR = "ValidationError"
    CONFIG_ERROR = "ConfigError"
    RATE_LIMITED = "RateLimited"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    TIMEOUT = "Timeout"
    INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True)
class PromptRequest:
    """
    Inbound optimisation request.
    `text` is the prompt exactly as received; bounds are checked on its trimmed form.
    """
    text: str


@dataclass(frozen=True)
class VersionSet:
    """
    The three-variant output contract handed back to the caller.

    `degraded` is telemetry only: True when the upstream answer could not be
    parsed and the raw text was replicated across all three keys. It never
    goes on the wire.
    """
    structured: str
    detailed: str
    concise: str
    degraded: bool = False

    def to_dict(self) -> Dict[str, str]:
        return {
            "structured": self.structured,
            "detailed": self.detailed,
            "concise": self.concise,
        }


@dataclass(frozen=True)
class UpstreamOk:
    raw_text: str


@dataclass(frozen=True)
class UpstreamFailure:
    """
    Classified upstream failure.
    `http_status` and `detail` are for logs only and never reach the caller.
    """
    kind: ErrorCategory
    http_status: Optional[int] = None
    detail: Optional[str] = None


UpstreamOutcome = Union[UpstreamOk, UpstreamFailure]
