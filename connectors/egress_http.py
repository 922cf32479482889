from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: Dict[str, Any],
    *,
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = 10.0,
) -> httpx.Response:
    """
    Minimal HTTP egress connector.

    behavior:
      - single POST, JSON payload
      - no retries
      - transport errors raise (httpx.TransportError); HTTP statuses do not
    """
    merged = {"Content-Type": "application/json"}
    merged.update(headers or {})

    return await client.post(url, json=payload, headers=merged, timeout=timeout_s)


def body_excerpt(resp: httpx.Response, limit: int = 300) -> str:
    # For logs only. Never returned to callers.
    return resp.text[:limit]
