"""
Relay configuration.

Loads environment variables (optionally from a .env file) once at startup and
freezes them into a RelaySettings object. Nothing reads os.environ after that.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

from relay_policy import CREDENTIAL_ENV, RELAY_POLICY, SUPPORTED_PROVIDERS


@dataclass(frozen=True)
class RelaySettings:
    """Immutable runtime settings for the relay."""
    env: str = "development"
    port: int = RELAY_POLICY["server"]["port"]
    extension_id: str = RELAY_POLICY["ingress"]["extension_id"]

    provider: str = RELAY_POLICY["upstream"]["provider"]
    api_key: Optional[str] = None
    model: str = RELAY_POLICY["upstream"]["models"]["gemini"]
    openai_base_url: str = RELAY_POLICY["upstream"]["openai_base_url"]
    temperature: float = RELAY_POLICY["upstream"]["temperature"]
    max_output_tokens: int = RELAY_POLICY["upstream"]["max_output_tokens"]

    min_prompt_chars: int = RELAY_POLICY["prompt"]["min_chars"]
    max_prompt_chars: int = RELAY_POLICY["prompt"]["max_chars"]
    max_body_bytes: int = RELAY_POLICY["ingress"]["max_body_bytes"]

    rate_limit_window_s: float = RELAY_POLICY["rate_limit"]["window_s"]
    rate_limit_max: int = RELAY_POLICY["rate_limit"]["max_requests"]

    request_timeout_s: float = RELAY_POLICY["ingress"]["request_timeout_s"]
    upstream_timeout_s: float = RELAY_POLICY["upstream"]["timeout_s"]
    shutdown_grace_s: float = RELAY_POLICY["server"]["shutdown_grace_s"]

    def __post_init__(self):
        """Reject settings that would make the relay misbehave silently."""
        if self.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"provider must be one of: {list(SUPPORTED_PROVIDERS)}")
        if self.min_prompt_chars < 1:
            raise ValueError("min_prompt_chars must be >= 1")
        if self.max_prompt_chars < self.min_prompt_chars:
            raise ValueError("max_prompt_chars must be >= min_prompt_chars")
        if self.max_body_bytes <= 0:
            raise ValueError("max_body_bytes must be > 0")
        if self.rate_limit_window_s <= 0:
            raise ValueError("rate_limit_window_s must be > 0")
        if self.rate_limit_max <= 0:
            raise ValueError("rate_limit_max must be > 0")
        if self.upstream_timeout_s <= 0 or self.request_timeout_s <= 0:
            raise ValueError("timeouts must be > 0")
        if self.upstream_timeout_s >= self.request_timeout_s:
            raise ValueError("upstream_timeout_s must be shorter than request_timeout_s")
        if not 0 <= self.port <= 65535:
            raise ValueError("port must be within 0..65535")

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def allowed_origin(self) -> str:
        return f"chrome-extension://{self.extension_id}"


def _get(env: Mapping[str, str], key: str, default):
    raw = env.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return type(default)(raw.strip())
    except ValueError:
        raise ValueError(f"Invalid value for {key}: {raw!r}")


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv_path: Optional[str] = None) -> RelaySettings:
    """Build RelaySettings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ after loading .env)
        dotenv_path: Optional .env file; only consulted when env is None

    Raises:
        ValueError: If any value is malformed or inconsistent
    """
    if env is None:
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        env = os.environ

    provider = _get(env, "LLM_PROVIDER", RELAY_POLICY["upstream"]["provider"]).lower()
    models = RELAY_POLICY["upstream"]["models"]

    api_key = None
    model = models.get(provider, "")
    if provider in CREDENTIAL_ENV:
        api_key = (env.get(CREDENTIAL_ENV[provider]) or "").strip() or None
        model = _get(env, f"{provider.upper()}_MODEL", models[provider])

    return RelaySettings(
        env=_get(env, "ENV", "development").lower(),
        port=_get(env, "PORT", RELAY_POLICY["server"]["port"]),
        extension_id=_get(env, "EXTENSION_ID", RELAY_POLICY["ingress"]["extension_id"]),
        provider=provider,
        api_key=api_key,
        model=model,
        openai_base_url=_get(env, "OPENAI_BASE_URL", RELAY_POLICY["upstream"]["openai_base_url"]),
        temperature=_get(env, "LLM_TEMPERATURE", float(RELAY_POLICY["upstream"]["temperature"])),
        max_output_tokens=_get(env, "LLM_MAX_OUTPUT_TOKENS", RELAY_POLICY["upstream"]["max_output_tokens"]),
        min_prompt_chars=_get(env, "PROMPT_MIN_CHARS", RELAY_POLICY["prompt"]["min_chars"]),
        max_prompt_chars=_get(env, "PROMPT_MAX_CHARS", RELAY_POLICY["prompt"]["max_chars"]),
        max_body_bytes=_get(env, "MAX_BODY_BYTES", RELAY_POLICY["ingress"]["max_body_bytes"]),
        rate_limit_window_s=_get(env, "RATE_LIMIT_WINDOW_S", float(RELAY_POLICY["rate_limit"]["window_s"])),
        rate_limit_max=_get(env, "RATE_LIMIT_MAX", RELAY_POLICY["rate_limit"]["max_requests"]),
        request_timeout_s=_get(env, "REQUEST_TIMEOUT_S", float(RELAY_POLICY["ingress"]["request_timeout_s"])),
        upstream_timeout_s=_get(env, "UPSTREAM_TIMEOUT_S", float(RELAY_POLICY["upstream"]["timeout_s"])),
        shutdown_grace_s=_get(env, "SHUTDOWN_GRACE_S", float(RELAY_POLICY["server"]["shutdown_grace_s"])),
    )
