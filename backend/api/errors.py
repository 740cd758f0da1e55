"""Gestion standardisée des erreurs API avec enveloppes d'erreur.

Toutes les erreurs sont rendues sous la forme `{"error": ..., "code": ..., "trace_id": ...}`. En
production, le message des erreurs 5xx est remplacé par un message générique.
"""

from __future__ import annotations

from dataclasses import dataclass

import openai
import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.core.constants import (
    HTTP_BAD_GATEWAY,
    HTTP_BAD_REQUEST,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_SERVER_ERROR_MIN,
    HTTP_TOO_MANY_REQUESTS,
)
from backend.core.errors import DomainError
from backend.core.settings import get_settings

log = structlog.get_logger(__name__)

GENERIC_MESSAGE = "An unexpected error occurred"

# Correspondance des statuts HTTP courants vers un code stable
ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    502: "BAD_GATEWAY",
    503: "SERVICE_UNAVAILABLE",
}


@dataclass
class ErrorEnvelope:
    """Standard error envelope for API responses."""

    error: str
    code: str
    trace_id: str | None = None


def extract_trace_id(request: Request) -> str | None:
    """Identifiant de trace posé par `RequestIDMiddleware`, sinon en-tête X-Trace-ID."""
    trace_id = getattr(request.state, "trace_id", None)
    return trace_id or request.headers.get("X-Trace-ID")


def _public_message(status_code: int, message: str) -> str:
    if status_code >= HTTP_STATUS_SERVER_ERROR_MIN and get_settings().is_production:
        return GENERIC_MESSAGE
    return message


def create_error_response(
    request: Request, status_code: int, code: str, message: str
) -> JSONResponse:
    """Create a standardized error response."""
    envelope = ErrorEnvelope(
        error=_public_message(status_code, message),
        code=code,
        trace_id=extract_trace_id(request),
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": envelope.error, "code": envelope.code, "trace_id": envelope.trace_id},
    )


def handle_domain_error(request: Request, exc: DomainError) -> JSONResponse:
    """Erreurs métier: statut et code portés par l'exception."""
    if exc.status_code >= HTTP_STATUS_SERVER_ERROR_MIN:
        log.error("domain_error", code=exc.code, error_message=exc.message)
    else:
        log.info("domain_error", code=exc.code, error_message=exc.message)
    return create_error_response(request, exc.status_code, exc.code, exc.message)


def handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPException with standard envelope."""
    code = ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return create_error_response(request, exc.status_code, code, str(exc.detail))


def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Corps ou paramètres invalides: 400 avec le premier message de validation."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg"))
    else:
        message = "Invalid request"
    return create_error_response(request, HTTP_BAD_REQUEST, "VALIDATION_ERROR", message)


def handle_provider_error(request: Request, exc: openai.APIError) -> JSONResponse:
    """Erreurs du fournisseur d'embeddings: 429 si limitation de débit, sinon 502."""
    if isinstance(exc, openai.RateLimitError):
        log.warning("embedding_provider_rate_limited")
        return create_error_response(
            request, HTTP_TOO_MANY_REQUESTS, "RATE_LIMITED", "Embedding provider rate limit"
        )
    log.error("embedding_provider_error", exception_type=type(exc).__name__)
    return create_error_response(request, HTTP_BAD_GATEWAY, "BAD_GATEWAY", str(exc))


def handle_generic_exception(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions with standard envelope."""
    log.error(
        "unexpected_error",
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        exc_info=True,
    )
    return create_error_response(
        request, HTTP_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", str(exc) or GENERIC_MESSAGE
    )


def register_error_handlers(app: FastAPI) -> None:
    """Enregistre les handlers d'erreurs sur l'application."""
    app.add_exception_handler(DomainError, handle_domain_error)
    app.add_exception_handler(HTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(openai.APIError, handle_provider_error)
    app.add_exception_handler(Exception, handle_generic_exception)
