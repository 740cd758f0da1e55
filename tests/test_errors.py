"""Tests de l'enveloppe d'erreur `{"error", "code", "trace_id"}`."""

from __future__ import annotations

import httpx
import openai
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.api.errors import GENERIC_MESSAGE, register_error_handlers
from backend.core.errors import InvariantViolation, NotFoundError
from backend.middlewares.request_id import RequestIDMiddleware


def _provider_response(status: int) -> httpx.Response:
    return httpx.Response(
        status, request=httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    )


@pytest.fixture
def app():
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    @app.get("/missing")
    def missing():
        raise NotFoundError("Chatbot not found")

    @app.get("/broken")
    def broken():
        raise InvariantViolation("Chatbot abc has no version")

    @app.get("/rate-limited")
    def rate_limited():
        raise openai.RateLimitError("slow down", response=_provider_response(429), body=None)

    @app.get("/provider-down")
    def provider_down():
        raise openai.InternalServerError("upstream", response=_provider_response(500), body=None)

    @app.get("/crash")
    def crash():
        raise RuntimeError("kaboom")

    @app.get("/typed")
    def typed(limit: int):
        return {"limit": limit}

    return app


def test_domain_error_envelope(app):
    r = TestClient(app).get("/missing", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 404
    assert r.json() == {"error": "Chatbot not found", "code": "NOT_FOUND", "trace_id": "req-42"}


def test_server_errors_visible_outside_production(app):
    r = TestClient(app).get("/broken")
    assert r.status_code == 500
    assert r.json()["error"] == "Chatbot abc has no version"
    assert r.json()["code"] == "INVARIANT_VIOLATION"


def test_server_errors_hidden_in_production(app, monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    r = TestClient(app).get("/broken")
    assert r.status_code == 500
    assert r.json()["error"] == GENERIC_MESSAGE
    client_error = TestClient(app).get("/missing")
    assert client_error.json()["error"] == "Chatbot not found"


def test_provider_rate_limit_is_429(app):
    r = TestClient(app).get("/rate-limited")
    assert r.status_code == 429
    assert r.json()["code"] == "RATE_LIMITED"


def test_provider_failure_is_502(app):
    r = TestClient(app).get("/provider-down")
    assert r.status_code == 502
    assert r.json()["code"] == "BAD_GATEWAY"


def test_unexpected_exception_is_500(app):
    r = TestClient(app, raise_server_exceptions=False).get("/crash")
    assert r.status_code == 500
    assert r.json()["code"] == "INTERNAL_ERROR"


def test_request_validation_is_400(app):
    r = TestClient(app).get("/typed", params={"limit": "many"})
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert body["error"].startswith("limit:")


def test_unknown_route_uses_envelope(app):
    r = TestClient(app).get("/nowhere")
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"
