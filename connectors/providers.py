"""
Provider adapters.

An adapter knows how to talk to one generative-text API: how to shape the
request, where the answer text lives in the response envelope, and which
statuses mean "your credential is bad". Everything else (transport errors,
rate limiting, 5xx) is classified the same way for every provider.

Switching providers is a configuration choice (LLM_PROVIDER), see build_adapter().
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from config import RelaySettings
from connectors.egress_http import body_excerpt, post_json
from pipelines.spec import ErrorCategory, UpstreamFailure, UpstreamOk, UpstreamOutcome

log = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class ProviderAdapter:
    """Base adapter: one operation, send prompt + system instruction, get raw text or a classified failure."""

    name = "base"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        temperature: float = 0.3,
        max_output_tokens: int = 2048,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.temperature = float(temperature)
        self.max_output_tokens = int(max_output_tokens)

    # -------------------------------------------------------------------------
    # Provider-specific hooks
    # -------------------------------------------------------------------------

    def build_request(self, prompt: str, system_instruction: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        """Return (url, headers, json payload)."""
        raise NotImplementedError

    def extract_text(self, envelope: Any) -> Optional[str]:
        raise NotImplementedError

    def is_credential_error(self, status: int, envelope: Any) -> bool:
        return status in (401, 403)

    # -------------------------------------------------------------------------
    # Shared call + classification
    # -------------------------------------------------------------------------

    def classify_status(self, resp: httpx.Response) -> UpstreamFailure:
        status = resp.status_code
        try:
            envelope = resp.json()
        except ValueError:
            envelope = None

        if status == 429:
            kind = ErrorCategory.RATE_LIMITED
        elif status >= 500:
            kind = ErrorCategory.UPSTREAM_UNAVAILABLE
        elif self.is_credential_error(status, envelope):
            kind = ErrorCategory.CONFIG_ERROR
        else:
            kind = ErrorCategory.INTERNAL_ERROR

        return UpstreamFailure(kind=kind, http_status=status, detail=body_excerpt(resp))

    async def complete(
        self,
        prompt: str,
        system_instruction: str,
        *,
        client: httpx.AsyncClient,
        timeout_s: float,
    ) -> UpstreamOutcome:
        url, headers, payload = self.build_request(prompt, system_instruction)

        try:
            resp = await post_json(client, url, payload, headers=headers, timeout_s=timeout_s)
        except httpx.TimeoutException as e:
            return UpstreamFailure(kind=ErrorCategory.TIMEOUT, detail=type(e).__name__)
        except httpx.TransportError as e:
            # DNS failure, connection refused/reset, protocol errors
            return UpstreamFailure(kind=ErrorCategory.UPSTREAM_UNAVAILABLE, detail=f"{type(e).__name__}: {e}")

        if not resp.is_success:
            return self.classify_status(resp)

        try:
            envelope = resp.json()
        except ValueError:
            return UpstreamFailure(
                kind=ErrorCategory.INTERNAL_ERROR,
                http_status=resp.status_code,
                detail="non-json upstream payload",
            )

        text = self.extract_text(envelope)
        if not isinstance(text, str) or not text.strip():
            return UpstreamFailure(
                kind=ErrorCategory.INTERNAL_ERROR,
                http_status=resp.status_code,
                detail="empty upstream payload",
            )

        return UpstreamOk(raw_text=text)


class GeminiAdapter(ProviderAdapter):
    name = "gemini"

    def __init__(self, *, base_url: str = GEMINI_BASE_URL, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    def build_request(self, prompt: str, system_instruction: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        # Key goes in a header so it never shows up in logged URLs.
        headers = {"x-goog-api-key": self.api_key}
        payload = {
            "systemInstruction": {"parts": [{"text": system_instruction}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_output_tokens,
            },
        }
        return url, headers, payload

    def extract_text(self, envelope: Any) -> Optional[str]:
        try:
            return envelope["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None

    def is_credential_error(self, status: int, envelope: Any) -> bool:
        if status in (401, 403):
            return True
        if status != 400 or not isinstance(envelope, dict):
            return False

        # {"error": {"status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID", ...}]}}
        err = envelope.get("error") or {}
        if not isinstance(err, dict):
            return False
        for d in err.get("details") or []:
            if isinstance(d, dict) and d.get("reason") == "API_KEY_INVALID":
                return True
        return False


class OpenAIChatAdapter(ProviderAdapter):
    name = "openai"

    def __init__(self, *, base_url: str = "https://api.openai.com/v1", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    def build_request(self, prompt: str, system_instruction: str) -> Tuple[str, Dict[str, str], Dict[str, Any]]:
        url = f"{self.base_url}/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
        }
        return url, headers, payload

    def extract_text(self, envelope: Any) -> Optional[str]:
        try:
            return envelope["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


def build_adapter(settings: RelaySettings) -> Optional[ProviderAdapter]:
    """
    Adapter for the configured provider, or None when no credential is set.
    A missing credential is reported per request, not at startup.
    """
    if not settings.api_key:
        log.warning("provider credential not configured", extra={"provider": settings.provider})
        return None

    common = dict(
        api_key=settings.api_key,
        model=settings.model,
        temperature=settings.temperature,
        max_output_tokens=settings.max_output_tokens,
    )
    if settings.provider == "openai":
        return OpenAIChatAdapter(base_url=settings.openai_base_url, **common)
    return GeminiAdapter(**common)
