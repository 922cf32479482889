from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional

from pipelines.spec import VERSION_KEYS, VersionSet

log = logging.getLogger(__name__)

# ```json\n ... \n```  (language tag optional, whole payload only)
_FENCE_RE = re.compile(r"^```[\w+-]*[ \t]*\n?(.*?)\n?[ \t]*```$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """
    Remove one enclosing ``` fence pair (with optional language tag).
    Text without an enclosing fence is returned trimmed and otherwise untouched.
    """
    text = (text or "").strip()
    m = _FENCE_RE.match(text)
    if m:
        return m.group(1).strip()
    return text


def _parse_versions(text: str) -> Optional[Dict[str, str]]:
    try:
        doc: Any = json.loads(text)
    except ValueError:
        return None

    if not isinstance(doc, dict):
        return None

    out: Dict[str, str] = {}
    for key in VERSION_KEYS:
        value = doc.get(key)
        if not isinstance(value, str) or not value.strip():
            return None
        out[key] = value.strip()
    return out


def normalize(raw_text: str) -> VersionSet:
    """
    Coerce the provider's raw answer into a VersionSet.

    A well-formed {"structured", "detailed", "concise"} document (optionally
    wrapped in a code fence) yields its trimmed fields. Anything else degrades:
    the trimmed raw text is replicated across all three keys. Degrading is not
    an error; the caller still gets a usable answer.
    """
    parsed = _parse_versions(strip_code_fences(raw_text))
    if parsed is not None:
        return VersionSet(**parsed)

    fallback = (raw_text or "").strip()
    log.warning("upstream answer not structured, degrading", extra={"raw_length": len(fallback)})
    return VersionSet(structured=fallback, detailed=fallback, concise=fallback, degraded=True)
