from __future__ import annotations

from typing import Optional

from connectors.upstream import DEFAULT_DEADLINE_MS, UpstreamClient
from domain.errors import RelayError
from pipelines.normalize import normalize
from pipelines.spec import ErrorCategory, PromptRequest, UpstreamFailure, VersionSet


class PromptOptimizer:
    """
    validate -> one upstream call -> normalize.

    Raises RelayError for every failure; returns a VersionSet otherwise
    (possibly degraded, which still counts as success).
    """

    def __init__(
        self,
        upstream: Optional[UpstreamClient],
        *,
        min_chars: int = 3,
        max_chars: int = 2000,
        deadline_ms: int = DEFAULT_DEADLINE_MS,
    ) -> None:
        self.upstream = upstream
        self.min_chars = int(min_chars)
        self.max_chars = int(max_chars)
        self.deadline_ms = int(deadline_ms)

    def validate(self, request: PromptRequest) -> str:
        """Return the trimmed prompt or raise RelayError(ValidationError)."""
        text = request.text
        if not text or not isinstance(text, str):
            raise RelayError(ErrorCategory.VALIDATION_ERROR, "Valid prompt is required")

        trimmed = text.strip()
        if len(trimmed) > self.max_chars:
            raise RelayError(
                ErrorCategory.VALIDATION_ERROR,
                f"Prompt too long (max {self.max_chars} characters)",
            )
        if len(trimmed) < self.min_chars:
            raise RelayError(ErrorCategory.VALIDATION_ERROR, "Prompt too short")
        return trimmed

    async def optimize(self, request: PromptRequest) -> VersionSet:
        trimmed = self.validate(request)

        if self.upstream is None:
            raise RelayError(ErrorCategory.CONFIG_ERROR, detail="provider credential not configured")

        outcome = await self.upstream.call(trimmed, self.deadline_ms)
        if isinstance(outcome, UpstreamFailure):
            raise RelayError(
                outcome.kind,
                detail=outcome.detail,
            )

        return normalize(outcome.raw_text)
