# ============================================================
# Module : backend/infra/vecstores/pinecone_index.py
# Objet  : Client HTTP de l'index Pinecone (data plane).
# Notes  : retries sur erreurs réseau/5xx uniquement; jamais de log de vecteurs.
# ============================================================
"""Client de l'index vectoriel Pinecone via son API HTTP.

Variables utilisées (via settings):
  - `PINECONE_INDEX_HOST`: hôte data-plane de l'index (ex: https://idx-xxxx.svc.pinecone.io)
  - `PINECONE_API_KEY`: clé API

Le namespace demandé n'est transmis que si le flag `ff_pinecone_use_namespaces` est actif; sinon la
partition par défaut de l'index est utilisée (offres sans namespaces).
"""

from __future__ import annotations

import random as _rand
import time as _t
from typing import Any

import httpx
import structlog

from backend.app.metrics import VECTOR_INDEX_LATENCY, VECTOR_INDEX_OPS
from backend.config.flags import ff_pinecone_use_namespaces
from backend.core.constants import (
    HTTP_STATUS_CLIENT_ERROR_MAX,
    HTTP_STATUS_CLIENT_ERROR_MIN,
    HTTP_STATUS_SERVER_ERROR_MAX,
    HTTP_STATUS_SERVER_ERROR_MIN,
    MAX_RETRY_ATTEMPTS,
    RETRY_BASE_DELAY,
    RETRY_RANDOM_FACTOR,
)
from backend.domain.retrieval_types import VectorMatch, VectorRecord
from backend.infra.vecstores.base import VectorIndex, VectorIndexError


class PineconeIndex(VectorIndex):
    """Index Pinecone (requêtes `query` et `vectors/upsert`)."""

    backend = "pinecone"

    def __init__(
        self,
        host: str,
        api_key: str,
        timeout_s: float = 10.0,
        max_attempts: int = MAX_RETRY_ATTEMPTS,
        transport: httpx.BaseTransport | None = None,
        sleep=_t.sleep,
    ) -> None:
        """Initialise un client HTTP réutilisable (timeouts/pool)."""
        if not host:
            raise ValueError("PINECONE_INDEX_HOST est requis")
        base = host.rstrip("/")
        self.base_url = base if base.startswith("http") else f"https://{base}"
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep
        self._log = structlog.get_logger(__name__).bind(component="pinecone_index")
        headers = {
            "Api-Key": api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": "2024-07",
        }
        timeout = httpx.Timeout(timeout_s)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=transport,
        )

    def _namespace(self, namespace: str) -> str | None:
        if not ff_pinecone_use_namespaces():
            return None
        return namespace or None

    def _backoff(self, attempt: int) -> None:
        delay = (2 ** (attempt - 1)) * RETRY_BASE_DELAY + _rand.random() * RETRY_RANDOM_FACTOR
        self._log.warning("pinecone_retry", attempt=attempt, delay_s=round(delay, 3))
        self._sleep(delay)

    def _post(self, op: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST avec retry exponentiel sur erreurs réseau et 5xx."""
        attempts = 0
        start = _t.perf_counter()
        try:
            while True:
                attempts += 1
                try:
                    resp = self._client.post(path, json=body)
                except httpx.HTTPError as exc:
                    if attempts < self.max_attempts:
                        self._backoff(attempts)
                        continue
                    raise VectorIndexError(f"pinecone {op} failed: {exc}") from exc
                code = resp.status_code
                if HTTP_STATUS_SERVER_ERROR_MIN <= code < HTTP_STATUS_SERVER_ERROR_MAX:
                    if attempts < self.max_attempts:
                        self._backoff(attempts)
                        continue
                    raise VectorIndexError(f"pinecone {op} failed: http {code}", code)
                if HTTP_STATUS_CLIENT_ERROR_MIN <= code < HTTP_STATUS_CLIENT_ERROR_MAX:
                    raise VectorIndexError(f"pinecone {op} rejected: http {code}", code)
                return resp.json()
        except VectorIndexError:
            VECTOR_INDEX_OPS.labels(op=op, backend=self.backend, outcome="error").inc()
            raise
        finally:
            VECTOR_INDEX_LATENCY.labels(op=op, backend=self.backend).observe(
                _t.perf_counter() - start
            )

    def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Upsert des vecteurs dans le namespace (ou la partition par défaut)."""
        if not records:
            raise ValueError("records ne doit pas être vide")
        body: dict[str, Any] = {"vectors": [r.model_dump() for r in records]}
        ns = self._namespace(namespace)
        if ns is not None:
            body["namespace"] = ns
        data = self._post("upsert", "/vectors/upsert", body)
        VECTOR_INDEX_OPS.labels(op="upsert", backend=self.backend, outcome="ok").inc()
        return int(data.get("upsertedCount", len(records)))

    def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Requête de plus proches voisins; l'ordre renvoyé par Pinecone est conservé."""
        body: dict[str, Any] = {
            "vector": vector,
            "topK": top_k,
            "includeMetadata": include_metadata,
        }
        ns = self._namespace(namespace)
        if ns is not None:
            body["namespace"] = ns
        if filter:
            body["filter"] = filter
        data = self._post("query", "/query", body)
        VECTOR_INDEX_OPS.labels(op="query", backend=self.backend, outcome="ok").inc()
        return [
            VectorMatch(
                id=str(m.get("id", "")),
                score=m.get("score"),
                metadata=m.get("metadata") or {},
            )
            for m in data.get("matches") or []
        ]

    def close(self) -> None:
        self._client.close()
