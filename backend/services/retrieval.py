# ============================================================
# Module : backend/services/retrieval.py
# Objet  : Pipeline RAG: texte -> embedding -> index vectoriel -> passages.
# Invariants :
#  - Aucune ré-ordonnance ni normalisation des scores.
#  - Erreurs fournisseur d'embeddings propagées telles quelles.
#  - Erreurs de l'index enveloppées dans RetrievalError.
# ============================================================
"""Pipeline de récupération (RAG).

Deux appels réseau séquentiels par requête (embedding puis requête d'index); aucun état partagé
entre appels, le pipeline peut donc servir des conversations concurrentes.
"""

from __future__ import annotations

import time as _t
from typing import Any

import structlog

from backend.app.metrics import (
    RETRIEVAL_ERRORS,
    RETRIEVAL_HITS_TOTAL,
    RETRIEVAL_LATENCY,
    RETRIEVAL_QUERIES_TOTAL,
)
from backend.core.constants import DEFAULT_TOP_K, MAX_TOP_K, MIN_TOP_K
from backend.core.errors import RetrievalError, ValidationError
from backend.domain.retrieval_types import RetrievedPassage, VectorMatch
from backend.infra.embeddings.base import Embeddings
from backend.infra.vecstores.base import VectorIndex

log = structlog.get_logger(__name__)


def _as_int(value: Any) -> int | None:
    """Page de métadonnée en entier (les index JSON renvoient souvent des flottants)."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def to_passage(match: VectorMatch) -> RetrievedPassage:
    """Convertit une correspondance brute en passage; métadonnées absentes -> None."""
    meta = match.metadata or {}
    section = meta.get("section")
    source_id = meta.get("sourceId")
    return RetrievedPassage(
        id=match.id,
        source_id=str(source_id) if source_id is not None else None,
        text=str(meta.get("text") or ""),
        page=_as_int(meta.get("page")),
        section=section if isinstance(section, str) else None,
        relevance_score=match.score or 0.0,
    )


class RetrievalPipeline:
    """Compose un client d'embeddings et un index vectoriel."""

    def __init__(
        self,
        embedder: Embeddings,
        index: VectorIndex,
        default_top_k: int = DEFAULT_TOP_K,
        max_top_k: int = MAX_TOP_K,
    ) -> None:
        """Initialise le pipeline.

        Args:
            embedder: Client d'embeddings (texte -> vecteur).
            index: Client de l'index vectoriel.
            default_top_k: Nombre de passages demandés si `top_k` est omis.
            max_top_k: Borne supérieure acceptée pour `top_k`.
        """
        self.embedder = embedder
        self.index = index
        self.default_top_k = default_top_k
        self.max_top_k = max_top_k

    def query(
        self,
        text: str,
        namespace: str,
        top_k: int | None = None,
        filter: dict[str, Any] | None = None,
    ) -> list[RetrievedPassage]:
        """Retourne les passages les plus pertinents, dans l'ordre de l'index.

        Args:
            text: Requête utilisateur (non vide).
            namespace: Namespace de l'index (ex: `chatbot-{id}`).
            top_k: Nombre de passages (défaut: `default_top_k`).
            filter: Filtre de métadonnées transmis à l'index.

        Returns:
            list[RetrievedPassage]: Passages par score décroissant.

        Raises:
            ValidationError: texte vide, namespace vide ou `top_k` hors bornes (avant tout appel
                réseau).
            RetrievalError: échec de la requête sur l'index.
        """
        if not text or not text.strip():
            raise ValidationError("Query cannot be empty")
        if not namespace:
            raise ValidationError("namespace is required")
        k = self.default_top_k if top_k is None else top_k
        if isinstance(k, bool) or not isinstance(k, int) or not MIN_TOP_K <= k <= self.max_top_k:
            raise ValidationError(
                f"topK must be an integer between {MIN_TOP_K} and {self.max_top_k}"
            )

        backend = getattr(self.index, "backend", "unknown")
        RETRIEVAL_QUERIES_TOTAL.labels(backend=backend).inc()
        start = _t.perf_counter()
        try:
            try:
                vector = self.embedder.embed(text)
            except Exception:
                RETRIEVAL_ERRORS.labels(backend=backend, stage="embed").inc()
                raise
            try:
                matches = self.index.query(
                    namespace=namespace,
                    vector=vector,
                    top_k=k,
                    include_metadata=True,
                    filter=filter,
                )
            except Exception as exc:
                RETRIEVAL_ERRORS.labels(backend=backend, stage="index").inc()
                log.warning("retrieval_index_failed", namespace=namespace, error=str(exc))
                raise RetrievalError(f"RAG query failed: {exc}") from exc
        finally:
            RETRIEVAL_LATENCY.labels(backend=backend).observe(_t.perf_counter() - start)

        passages = [to_passage(m) for m in matches]
        if passages:
            RETRIEVAL_HITS_TOTAL.labels(backend=backend).inc()
        log.debug("retrieval_done", namespace=namespace, top_k=k, hits=len(passages))
        return passages
