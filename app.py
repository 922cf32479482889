import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import RelaySettings, load_settings
from connectors.ingress_http import parse_optimize_body, read_json_body
from connectors.providers import build_adapter
from connectors.upstream import UpstreamClient
from domain.errors import RelayError
from domain.ratelimit.policy import RateLimitPolicy
from domain.ratelimit.window import FixedWindowLimiter
from ingress.guard import IngressGuard
from lifecycle.lifecycle_log import DEGRADED, FAILED, REJECTED, SUCCEEDED, lifecycle
from observability.logging_config import configure_logging
from pipelines.engine import PromptOptimizer

log = logging.getLogger("relay")

# -----------------------------------------------------------------------------
# Wire shapes
# -----------------------------------------------------------------------------

class VersionsPayload(BaseModel):
    structured: str
    detailed: str
    concise: str


class OptimizeResponse(BaseModel):
    success: bool = True
    versions: VersionsPayload
    originalLength: int


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float


SECURITY_HEADERS: Dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _duration_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(
    settings: Optional[RelaySettings] = None,
    *,
    limiter: Optional[FixedWindowLimiter] = None,
    upstream: Optional[UpstreamClient] = None,
) -> FastAPI:
    """
    Build the relay. Every collaborator can be injected; anything not passed
    in is built from settings (which default to the environment).
    """
    if settings is None:
        settings = load_settings()

    if limiter is None:
        limiter = FixedWindowLimiter(
            RateLimitPolicy(
                window_seconds=settings.rate_limit_window_s,
                max_requests=settings.rate_limit_max,
            )
        )

    if upstream is None:
        adapter = build_adapter(settings)
        if adapter is not None:
            upstream = UpstreamClient(adapter, default_deadline_ms=int(settings.upstream_timeout_s * 1000))

    optimizer = PromptOptimizer(
        upstream,
        min_chars=settings.min_prompt_chars,
        max_chars=settings.max_prompt_chars,
        deadline_ms=int(settings.upstream_timeout_s * 1000),
    )
    guard = IngressGuard(
        limiter=limiter,
        request_timeout_s=settings.request_timeout_s,
        enforce_origin=settings.is_production,
        allowed_origins=[settings.allowed_origin],
    )

    app = FastAPI(title="Prompt Relay")
    app.state.settings = settings
    app.state.limiter = limiter
    app.state.started_at = time.monotonic()

    # -------------------------------------------------------------------------
    # Middleware
    # -------------------------------------------------------------------------

    # Browser-facing half of the origin restriction; IngressGuard enforces it server-side.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin] if settings.is_production else ["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type"],
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for k, v in SECURITY_HEADERS.items():
            response.headers.setdefault(k, v)
        return response

    # -------------------------------------------------------------------------
    # Error handling
    # -------------------------------------------------------------------------

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(exc.to_body(), status_code=exc.status, headers=exc.headers or None)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown route and wrong method on a known route look the same to callers.
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Endpoint not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "Unhandled error",
            exc_info=exc,
            extra={"path": request.url.path, "method": request.method},
        )
        # Rendered by the outermost error middleware, so the header middleware never sees it.
        return JSONResponse({"error": "Internal server error"}, status_code=500, headers=SECURITY_HEADERS)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @app.on_event("startup")
    async def relay_startup() -> None:
        log.info(
            "Server started",
            extra={
                "port": settings.port,
                "environment": settings.env,
                "provider": settings.provider,
                "model": settings.model,
                "credential_configured": bool(settings.api_key),
            },
        )

    @app.on_event("shutdown")
    async def relay_shutdown() -> None:
        # uvicorn has already drained in-flight requests (or hit the grace timeout).
        if upstream is not None:
            await upstream.aclose()
        log.info("Server closed successfully")

    # -------------------------------------------------------------------------
    # Routes
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - app.state.started_at, 3),
        }

    @app.post("/api/optimize", response_model=OptimizeResponse)
    async def optimize_prompt(request: Request, response: Response) -> Dict[str, Any]:
        """
        {"prompt": "..."} -> {"success": true, "versions": {...}, "originalLength": N}
        """
        start = time.monotonic()
        client = _client_id(request)

        try:
            body = await read_json_body(request, settings.max_body_bytes)
            guard.check_origin(request.headers.get("origin"))
            decision = guard.check_rate(client)
        except RelayError as e:
            lifecycle(REJECTED, reason=e.message, status=e.status, client=client)
            raise

        rate_headers = decision.headers()
        prompt_req = parse_optimize_body(body)

        try:
            versions = await guard.run_with_deadline(optimizer.optimize(prompt_req))
        except RelayError as e:
            lifecycle(
                FAILED,
                category=e.category.value,
                status=e.status,
                detail=e.detail,
                client=client,
                durationMs=_duration_ms(start),
            )
            e.headers = {**rate_headers, **e.headers}
            raise

        original_length = len(prompt_req.text)
        duration = _duration_ms(start)
        lifecycle(
            DEGRADED if versions.degraded else SUCCEEDED,
            client=client,
            originalLength=original_length,
            durationMs=duration,
        )
        log.info(
            "Prompt optimized",
            extra={
                "originalLength": original_length,
                "structuredLength": len(versions.structured),
                "detailedLength": len(versions.detailed),
                "conciseLength": len(versions.concise),
                "degraded": versions.degraded,
                "durationMs": duration,
            },
        )

        for k, v in rate_headers.items():
            response.headers[k] = v

        return {
            "success": True,
            "versions": versions.to_dict(),
            "originalLength": original_length,
        }

    return app


# -----------------------------------------------------------------------------
# Entrypoint
# -----------------------------------------------------------------------------

def load_settings_or_exit() -> RelaySettings:
    """
    Load settings for a real process: invalid configuration is logged as JSON
    and ends the process with status 1.
    """
    configure_logging()
    try:
        settings = load_settings()
    except ValueError as e:
        log.critical("Invalid configuration", extra={"error": str(e)})
        sys.exit(1)

    configure_logging(secrets=[settings.api_key], env=settings.env)
    return settings


def __getattr__(name: str) -> Any:
    # `uvicorn app:app` builds the app on first access, not at import.
    if name == "app":
        built = create_app(load_settings_or_exit())
        globals()["app"] = built
        return built
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def main() -> None:
    settings = load_settings_or_exit()

    # uvicorn logs and exits non-zero if the port cannot be bound.
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        timeout_graceful_shutdown=int(settings.shutdown_grace_s),
        log_config=None,
    )


if __name__ == "__main__":
    main()
