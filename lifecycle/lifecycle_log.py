import logging
from typing import Any, Dict

log = logging.getLogger("lifecycle")

# Request states: received -> validating -> calling_upstream -> normalizing -> succeeded
# Terminal: rejected (ingress), failed (category), succeeded (clean or degraded)
REJECTED = "request_rejected"
FAILED = "optimize_failed"
SUCCEEDED = "optimize_succeeded"
DEGRADED = "optimize_degraded"


def lifecycle(event: str, **fields: Any) -> None:
    payload: Dict[str, Any] = {"event": event}
    payload.update(fields)
    level = logging.WARNING if event in (REJECTED, FAILED, DEGRADED) else logging.INFO
    log.log(level, event, extra=payload)
