# relay_policy.py
from typing import Any, Dict

# Central defaults for every relay decision. Environment overrides are applied
# by config.load_settings().
RELAY_POLICY: Dict[str, Any] = {
    "prompt": {
        "min_chars": 3,
        "max_chars": 2000,
    },
    "ingress": {
        "max_body_bytes": 10 * 1024,     # 10kb
        "request_timeout_s": 30.0,
        "extension_id": "lmpjbngkepccmecmcfokcggaedkpljdh",
    },
    "rate_limit": {
        "window_s": 60.0,
        "max_requests": 10,
    },
    "upstream": {
        "provider": "gemini",
        "timeout_s": 25.0,               # must stay below ingress.request_timeout_s
        "temperature": 0.3,
        "max_output_tokens": 2048,       # three variants, not one
        "models": {
            "gemini": "gemini-1.5-flash",
            "openai": "gpt-4o-mini",
        },
        "openai_base_url": "https://api.openai.com/v1",
    },
    "server": {
        "port": 3000,
        "shutdown_grace_s": 10.0,
    },
}

SUPPORTED_PROVIDERS = ("gemini", "openai")

# Credential env var per provider.
CREDENTIAL_ENV = {
    "gemini": "GEMINI_API_KEY",
    "openai": "OPENAI_API_KEY",
}
