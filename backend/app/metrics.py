"""
Métriques Prometheus pour l'application.

Ce module définit les métriques Prometheus du backend de chat: HTTP, versions de chatbot, gate
d'intake, conversations, embeddings et récupération RAG.
"""

import time

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

metrics_router = APIRouter()

REQUEST_COUNT = Counter(
    "http_requests_total", "Total HTTP requests", ["method", "route", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds", "Latency of HTTP requests", ["route"]
)

# Versioning
VERSION_CREATIONS = Counter(
    "chatbot_version_creations_total",
    "Chatbot versions created, by creation path",
    ["path"],  # edit | initial | auto_migrate | backfill
)
VERSION_RESOLUTION_REPAIRS = Counter(
    "chatbot_version_pointer_repairs_total",
    "Active version resolved through the lowest-number fallback",
)

# Conversations / intake
CONVERSATIONS_CREATED = Counter(
    "conversations_created_total",
    "Total conversations created",
    ["chatbot"],
)
GATE_DECISIONS = Counter(
    "intake_gate_decisions_total",
    "Intake gate decisions",
    ["result"],
)

# Embeddings
EMBEDDING_CALLS = Counter(
    "embedding_calls_total",
    "Total embedding provider calls",
    ["model", "outcome"],
)
EMBEDDING_LATENCY = Histogram(
    "embedding_latency_seconds",
    "Latency of embedding provider calls",
    ["model"],
)

# Retrieval
RETRIEVAL_QUERIES_TOTAL = Counter(
    "retrieval_queries_total",
    "Total retrieval queries",
    ["backend"],
)
RETRIEVAL_HITS_TOTAL = Counter(
    "retrieval_hits_total",
    "Total retrieval queries that returned at least one hit",
    ["backend"],
)
RETRIEVAL_ERRORS = Counter(
    "retrieval_errors_total",
    "Total retrieval errors",
    ["backend", "stage"],  # stage: embed | index
)
RETRIEVAL_LATENCY = Histogram(
    "retrieval_latency_seconds",
    "Latency of retrieval operations",
    ["backend"],
)

# Vector index ops
VECTOR_INDEX_OPS = Counter(
    "vector_index_ops_total",
    "Total vector index operations",
    ["op", "backend", "outcome"],
)
VECTOR_INDEX_LATENCY = Histogram(
    "vector_index_op_latency_seconds",
    "Latency of vector index operations",
    ["op", "backend"],
)


def _normalize_allowed(allowed: list[str] | str | None) -> list[str]:
    """Normalize allowed values from settings (list or CSV string)."""
    if not allowed:
        return []
    if isinstance(allowed, list):
        if len(allowed) == 1 and "," in (allowed[0] or ""):
            return [s.strip() for s in allowed[0].split(",") if s.strip()]
        return [str(x).strip() for x in allowed if str(x).strip()]
    return [s.strip() for s in str(allowed).split(",") if s.strip()]


def labelize_chatbot(chatbot_id: str | None, allowed: list[str] | str | None) -> str:
    """Project chatbot label through a whitelist; otherwise 'other'."""
    vals = set(_normalize_allowed(allowed))
    if not vals:
        return "all"
    cid = (chatbot_id or "").strip()
    return cid if cid in vals else "other"


@metrics_router.get("/metrics")
def metrics():
    """
    Expose les métriques Prometheus au format texte.

    Returns:
        Response: Réponse HTTP contenant les métriques au format Prometheus.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Middleware Prometheus: comptage et latence des requêtes par route."""

    async def dispatch(self, request: Request, call_next):
        """Traite une requête HTTP et collecte les métriques."""
        start = time.perf_counter()
        response: Response = await call_next(request)
        route_obj = request.scope.get("route")
        route = getattr(route_obj, "path", None) or request.scope.get("path", "unknown")
        REQUEST_COUNT.labels(request.method, route, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(route).observe(time.perf_counter() - start)
        return response
