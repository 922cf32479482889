import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

DEFAULT_SERVICE = "prompt-relay"
DEFAULT_ENV = "development"

# LogRecord attributes that are plumbing, not payload
_RESERVED = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
    "message",
))

REDACTED = "[redacted]"


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonFormatter(logging.Formatter):
    """One JSON object per line: core keys, then every `extra=` field."""

    def __init__(self, service: str = DEFAULT_SERVICE, env: str = DEFAULT_ENV) -> None:
        super().__init__()
        self.service = service
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "ts": _utc_iso(),
            "level": record.levelname,
            "service": self.service,
            "env": self.env,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for k, v in record.__dict__.items():
            if k.startswith("_") or k in _RESERVED:
                continue
            # extras never override core keys
            if k not in base:
                base[k] = v

        if record.exc_info:
            base["exception"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False, default=str)


class SecretRedactingFilter(logging.Filter):
    """
    Masks known secret values (provider credentials) wherever they appear
    in the message or in string extras.
    """

    def __init__(self, secrets: Iterable[Optional[str]] = ()) -> None:
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def _scrub(self, value: str) -> str:
        for s in self.secrets:
            value = value.replace(s, REDACTED)
        return value

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True

        record.msg = self._scrub(record.getMessage())
        record.args = None
        for k, v in list(record.__dict__.items()):
            if k in _RESERVED or k.startswith("_"):
                continue
            if isinstance(v, str):
                setattr(record, k, self._scrub(v))
        return True


def configure_logging(
    level: Optional[str] = None,
    secrets: Iterable[Optional[str]] = (),
    env: Optional[str] = None,
) -> None:
    """
    Install the JSON handler on the root logger.

    Service name and env are resolved here, not at import, so values loaded
    from .env (or passed from settings) reach every log line.
    """
    lvl = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    root = logging.getLogger()
    root.setLevel(lvl)

    # Clear default handlers (uvicorn can double-log otherwise)
    root.handlers.clear()

    h = logging.StreamHandler(sys.stdout)
    h.setLevel(lvl)
    h.setFormatter(JsonFormatter(
        service=os.getenv("SERVICE_NAME") or DEFAULT_SERVICE,
        env=env or os.getenv("ENV") or DEFAULT_ENV,
    ))
    h.addFilter(SecretRedactingFilter(secrets))
    root.addHandler(h)

    # httpx logs every outbound request at INFO
    logging.getLogger("httpx").setLevel(os.getenv("HTTPX_LOG_LEVEL", "WARNING"))
    logging.getLogger("httpcore").setLevel("WARNING")
    logging.getLogger("uvicorn.access").setLevel(os.getenv("UVICORN_ACCESS_LEVEL", "WARNING"))
    logging.getLogger("uvicorn.error").setLevel(lvl)
