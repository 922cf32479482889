# domain/errors.py
from __future__ import annotations

from typing import Dict, Optional, Tuple

from pipelines.spec import ErrorCategory

# category -> (status, public message)
ERROR_RESPONSES: Dict[ErrorCategory, Tuple[int, str]] = {
    ErrorCategory.VALIDATION_ERROR: (400, "Valid prompt is required"),
    ErrorCategory.RATE_LIMITED: (429, "Service temporarily unavailable, please try again later"),
    ErrorCategory.CONFIG_ERROR: (500, "Service configuration error"),
    ErrorCategory.UPSTREAM_UNAVAILABLE: (503, "Optimization service unavailable"),
    ErrorCategory.TIMEOUT: (504, "Request timed out, please try again"),
    ErrorCategory.INTERNAL_ERROR: (500, "Internal server error"),
}


class RelayError(Exception):
    """
    A classified failure travelling from its origin to the HTTP edge.

    `message` is safe to show the caller. `detail` is for logs only.
    `status` overrides the category default where the edge needs a more
    specific code (ingress timeout -> 408, payload too large -> 413, ...).
    """

    def __init__(
        self,
        category: ErrorCategory,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        detail: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        default_status, default_message = ERROR_RESPONSES[category]
        self.category = category
        self.message = message or default_message
        self.status = status or default_status
        self.detail = detail
        self.headers = headers or {}
        super().__init__(self.message)

    def to_body(self) -> Dict[str, str]:
        return {"error": self.message}


def ingress_timeout() -> RelayError:
    return RelayError(ErrorCategory.TIMEOUT, "Request timeout", status=408)


def ingress_rate_limited(headers: Optional[Dict[str, str]] = None) -> RelayError:
    return RelayError(ErrorCategory.RATE_LIMITED, "Too many requests, please try again later.", headers=headers)


def payload_too_large() -> RelayError:
    return RelayError(ErrorCategory.VALIDATION_ERROR, "Payload too large", status=413)


def origin_not_allowed() -> RelayError:
    return RelayError(ErrorCategory.VALIDATION_ERROR, "Origin not allowed", status=403)
