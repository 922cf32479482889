"""Pytest configuration and fixtures."""

import sys
from pathlib import Path
from typing import Any, Callable, Dict

import httpx
import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from connectors.providers import GeminiAdapter  # noqa: E402
from connectors.upstream import UpstreamClient  # noqa: E402


def gemini_envelope(text: str) -> Dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def make_gemini_upstream(handler: Callable[[httpx.Request], Any], deadline_ms: int = 25000) -> UpstreamClient:
    adapter = GeminiAdapter(api_key="test-key", model="gemini-1.5-flash")
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return UpstreamClient(adapter, client=client, default_deadline_ms=deadline_ms)


class RecordingHandler:
    """MockTransport handler that returns a canned response and counts calls."""

    def __init__(self, status: int = 200, json_body: Any = None, text: str = None):
        self.status = status
        self.json_body = json_body
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.json_body)


@pytest.fixture
def structured_answer() -> str:
    return '{"structured": " 1. Fix\\n2. Polish ", "detailed": "As a recruiter, fix my resume", "concise": "Fix my resume"}'
