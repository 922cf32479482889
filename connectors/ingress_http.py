from __future__ import annotations

import json
from typing import Any

from fastapi import Request

from domain.errors import RelayError, payload_too_large
from pipelines.spec import ErrorCategory, PromptRequest


def _declared_length(request: Request) -> int:
    raw = request.headers.get("content-length")
    try:
        return int(raw) if raw is not None else -1
    except ValueError:
        return -1


async def read_json_body(request: Request, max_bytes: int) -> Any:
    """
    Read and decode a JSON body, refusing anything above max_bytes.

    Content-Length is checked before reading; the actual body length is
    checked again since the header may be absent or wrong.
    """
    if _declared_length(request) > max_bytes:
        raise payload_too_large()

    raw = await request.body()
    if len(raw) > max_bytes:
        raise payload_too_large()

    try:
        return json.loads(raw or b"null")
    except ValueError:
        raise RelayError(ErrorCategory.VALIDATION_ERROR, "Valid prompt is required", detail="malformed json body")


def parse_optimize_body(body: Any) -> PromptRequest:
    """
    Shape the external {"prompt": ...} body into a PromptRequest.

    No bounds checks here: the optimizer validates, so a non-string or
    missing prompt is passed through and rejected there.
    """
    if not isinstance(body, dict):
        return PromptRequest(text=None)  # type: ignore[arg-type]
    return PromptRequest(text=body.get("prompt"))
