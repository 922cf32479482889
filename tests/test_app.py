"""
HTTP integration tests: request in -> status + body out.

The upstream provider is an httpx.MockTransport, so everything between the
route and the socket is real.
"""

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from app import create_app
from config import RelaySettings
from conftest import RecordingHandler, gemini_envelope, make_gemini_upstream

EXTENSION_ORIGIN = "chrome-extension://lmpjbngkepccmecmcfokcggaedkpljdh"


def make_client(handler=None, upstream=None, **settings_kwargs) -> TestClient:
    settings = RelaySettings(**{"api_key": "test-key", **settings_kwargs})
    if upstream is None and handler is not None:
        upstream = make_gemini_upstream(handler, deadline_ms=int(settings.upstream_timeout_s * 1000))
    app = create_app(settings, upstream=upstream)
    return TestClient(app, raise_server_exceptions=False)


class HangingUpstream:
    """Ignores its deadline, so only the ingress deadline can stop it."""

    async def call(self, prompt_text, deadline_ms=None):
        await asyncio.sleep(5)

    async def aclose(self):
        pass


class ExplodingUpstream:
    async def call(self, prompt_text, deadline_ms=None):
        raise RuntimeError("boom: internal detail")

    async def aclose(self):
        pass


# ─────────────────────────────────────────────────────
# Health + routing
# ─────────────────────────────────────────────────────


class TestHealthAndRouting:
    def test_health(self):
        resp = make_client(RecordingHandler()).get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "OK"
        assert "T" in data["timestamp"]
        assert data["uptime"] >= 0

    def test_health_exempt_from_origin_check(self):
        client = make_client(RecordingHandler(), env="production")
        resp = client.get("/health", headers={"Origin": "https://evil.example.com"})
        assert resp.status_code == 200

    def test_unknown_route(self):
        resp = make_client(RecordingHandler()).get("/nope")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Endpoint not found"}

    def test_wrong_method_on_known_route(self):
        resp = make_client(RecordingHandler()).get("/api/optimize")

        assert resp.status_code == 404
        assert resp.json() == {"error": "Endpoint not found"}

    def test_security_headers(self):
        resp = make_client(RecordingHandler()).get("/health")

        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "SAMEORIGIN"


# ─────────────────────────────────────────────────────
# Success
# ─────────────────────────────────────────────────────


class TestOptimizeSuccess:
    def test_structured_answer(self, structured_answer):
        handler = RecordingHandler(json_body=gemini_envelope(structured_answer))
        client = make_client(handler)

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "versions": {
                "structured": "1. Fix\n2. Polish",
                "detailed": "As a recruiter, fix my resume",
                "concise": "Fix my resume",
            },
            "originalLength": 13,
        }
        assert len(handler.requests) == 1
        assert resp.headers["ratelimit-limit"] == "10"
        assert resp.headers["ratelimit-remaining"] == "9"

    def test_structured_answer_logs_success_event(self, caplog, structured_answer):
        caplog.set_level(logging.INFO)
        handler = RecordingHandler(json_body=gemini_envelope(structured_answer))

        make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        events = [getattr(r, "event", None) for r in caplog.records if r.name == "lifecycle"]
        assert "optimize_succeeded" in events
        assert "optimize_degraded" not in events

    def test_original_length_counts_untrimmed_prompt(self):
        handler = RecordingHandler(json_body=gemini_envelope("plain"))
        resp = make_client(handler).post("/api/optimize", json={"prompt": "  fix my resume  "})

        assert resp.json()["originalLength"] == 17

    def test_degraded_answer_is_still_success(self, caplog):
        caplog.set_level(logging.INFO)
        handler = RecordingHandler(json_body=gemini_envelope("  Please improve my resume.  "))
        resp = make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 200
        versions = resp.json()["versions"]
        assert versions["structured"] == versions["detailed"] == versions["concise"] == "Please improve my resume."

        events = [getattr(r, "event", None) for r in caplog.records if r.name == "lifecycle"]
        assert "optimize_degraded" in events
        assert "optimize_succeeded" not in events

    def test_production_accepts_extension_origin(self):
        handler = RecordingHandler(json_body=gemini_envelope("plain"))
        client = make_client(handler, env="production")

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"}, headers={"Origin": EXTENSION_ORIGIN})

        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == EXTENSION_ORIGIN


# ─────────────────────────────────────────────────────
# Validation + ingress rejections
# ─────────────────────────────────────────────────────


class TestOptimizeRejections:
    @pytest.mark.parametrize(
        "body,message",
        [
            ({"prompt": "a"}, "Prompt too short"),
            ({"prompt": "x" * 2500}, "Prompt too long (max 2000 characters)"),
            ({}, "Valid prompt is required"),
            ({"prompt": 123}, "Valid prompt is required"),
            (["fix my resume"], "Valid prompt is required"),
        ],
    )
    def test_validation_errors(self, body, message):
        handler = RecordingHandler()
        resp = make_client(handler).post("/api/optimize", json=body)

        assert resp.status_code == 400
        assert resp.json() == {"error": message}
        assert handler.requests == []

    def test_malformed_json(self):
        resp = make_client(RecordingHandler()).post(
            "/api/optimize", content=b"{not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status_code == 400
        assert resp.json() == {"error": "Valid prompt is required"}

    def test_payload_too_large(self):
        handler = RecordingHandler()
        resp = make_client(handler).post("/api/optimize", json={"prompt": "x" * 20000})

        assert resp.status_code == 413
        assert resp.json() == {"error": "Payload too large"}
        assert handler.requests == []

    def test_production_rejects_foreign_origin(self):
        handler = RecordingHandler()
        client = make_client(handler, env="production")

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"}, headers={"Origin": "https://evil.example.com"})

        assert resp.status_code == 403
        assert resp.json() == {"error": "Origin not allowed"}
        assert handler.requests == []

    def test_development_accepts_any_origin(self):
        handler = RecordingHandler(json_body=gemini_envelope("plain"))
        resp = make_client(handler).post(
            "/api/optimize", json={"prompt": "fix my resume"}, headers={"Origin": "https://anything.example.com"}
        )
        assert resp.status_code == 200

    def test_rate_limit_eleventh_request(self):
        handler = RecordingHandler(json_body=gemini_envelope("plain"))
        client = make_client(handler)

        statuses = [client.post("/api/optimize", json={"prompt": "fix my resume"}).status_code for _ in range(11)]

        assert statuses[:10] == [200] * 10
        assert statuses[10] == 429
        assert len(handler.requests) == 10

    def test_rate_limited_response(self):
        client = make_client(RecordingHandler(json_body=gemini_envelope("plain")), rate_limit_max=1)
        client.post("/api/optimize", json={"prompt": "fix my resume"})

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 429
        assert resp.json() == {"error": "Too many requests, please try again later."}
        assert "retry-after" in resp.headers

    def test_invalid_requests_count_toward_quota(self):
        client = make_client(RecordingHandler(json_body=gemini_envelope("plain")), rate_limit_max=2)
        client.post("/api/optimize", json={"prompt": "a"})
        client.post("/api/optimize", json={"prompt": "a"})

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 429

    def test_health_not_rate_limited(self):
        client = make_client(RecordingHandler(), rate_limit_max=1)
        assert all(client.get("/health").status_code == 200 for _ in range(5))


# ─────────────────────────────────────────────────────
# Upstream + internal failures
# ─────────────────────────────────────────────────────


class TestOptimizeFailures:
    def test_missing_credential(self):
        handler = RecordingHandler()
        client = TestClient(create_app(RelaySettings(api_key=None)), raise_server_exceptions=False)

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Service configuration error"}
        assert handler.requests == []

    def test_upstream_503(self, caplog):
        caplog.set_level(logging.INFO)
        handler = RecordingHandler(status=503, json_body={"error": {"message": "overloaded internals"}})
        resp = make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 503
        assert resp.json() == {"error": "Optimization service unavailable"}
        assert "overloaded" not in resp.text

        failures = [r for r in caplog.records if r.getMessage() == "upstream call failed"]
        assert len(failures) == 1
        assert failures[0].upstream_status == 503
        assert failures[0].kind == "UpstreamUnavailable"

    def test_upstream_429(self):
        handler = RecordingHandler(status=429, json_body={})
        resp = make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 429
        assert resp.json() == {"error": "Service temporarily unavailable, please try again later"}

    def test_upstream_bad_key(self):
        handler = RecordingHandler(status=403, json_body={})
        resp = make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Service configuration error"}

    def test_upstream_empty_payload(self):
        handler = RecordingHandler(json_body={"candidates": []})
        resp = make_client(handler).post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}

    def test_upstream_deadline_is_504(self):
        async def hang(request):
            await asyncio.sleep(5)

        client = make_client(hang, upstream_timeout_s=0.05, request_timeout_s=2.0)
        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 504
        assert resp.json() == {"error": "Request timed out, please try again"}

    def test_ingress_deadline_is_408(self):
        client = make_client(upstream=HangingUpstream(), upstream_timeout_s=0.05, request_timeout_s=0.1)

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 408
        assert resp.json() == {"error": "Request timeout"}

    def test_unhandled_exception_is_500_without_internals(self):
        client = make_client(upstream=ExplodingUpstream())

        resp = client.post("/api/optimize", json={"prompt": "fix my resume"})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
        assert "boom" not in resp.text
        assert resp.headers["x-content-type-options"] == "nosniff"
        assert resp.headers["x-frame-options"] == "SAMEORIGIN"
