from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from connectors.providers import ProviderAdapter
from pipelines.prompts import SYSTEM_INSTRUCTION, render_user_prompt
from pipelines.spec import ErrorCategory, UpstreamFailure, UpstreamOutcome

log = logging.getLogger(__name__)

DEFAULT_DEADLINE_MS = 25000


class UpstreamClient:
    """
    One bounded call to the generative-text provider.

    Guarantees:
      - at most one outbound request per call(), no retries
      - the request is cancelled (connection released) when the deadline passes
      - every failure comes back as an UpstreamFailure, never as an exception
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        *,
        client: Optional[httpx.AsyncClient] = None,
        default_deadline_ms: int = DEFAULT_DEADLINE_MS,
    ) -> None:
        self.adapter = adapter
        self.default_deadline_ms = int(default_deadline_ms)
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def call(self, prompt_text: str, deadline_ms: Optional[int] = None) -> UpstreamOutcome:
        if deadline_ms is None:
            deadline_ms = self.default_deadline_ms
        deadline_s = max(0.001, deadline_ms / 1000.0)

        try:
            outcome = await asyncio.wait_for(
                self.adapter.complete(
                    render_user_prompt(prompt_text),
                    SYSTEM_INSTRUCTION,
                    client=self._http(),
                    timeout_s=deadline_s,
                ),
                timeout=deadline_s,
            )
        except asyncio.TimeoutError:
            # wait_for cancels the in-flight request before raising
            outcome = UpstreamFailure(kind=ErrorCategory.TIMEOUT, detail=f"no response within {deadline_ms}ms")

        if isinstance(outcome, UpstreamFailure):
            log.error(
                "upstream call failed",
                extra={
                    "provider": self.adapter.name,
                    "kind": outcome.kind.value,
                    "upstream_status": outcome.http_status,
                    "detail": outcome.detail,
                },
            )
        return outcome

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
