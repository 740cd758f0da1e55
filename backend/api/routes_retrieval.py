# ============================================================
# Module : backend/api/routes_retrieval.py
# Objet  : Endpoint interne /internal/retrieval/search.
# Notes  : ne journalise jamais le texte de la requête.
# ============================================================
"""Route interne de recherche sémantique sur un namespace de l'index vectoriel."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends

from backend.api.deps import get_retrieval
from backend.api.schemas import SearchRequest
from backend.services.retrieval import RetrievalPipeline

router = APIRouter(prefix="/internal/retrieval", tags=["retrieval"])

log = structlog.get_logger(__name__)


@router.post("/search")
def search(req: SearchRequest, pipeline: RetrievalPipeline = Depends(get_retrieval)) -> dict:
    """Recherche sémantique sur le corpus indexé.

    Les erreurs de validation sont rendues en 400, les échecs de l'index en 500 et les erreurs du
    fournisseur d'embeddings en 429/502 (voir `backend.api.errors`).

    Returns:
        dict: {"results": [{"id", "sourceId", "text", "relevanceScore", ...}, ...]}
    """
    log.info("retrieval_search", namespace=req.namespace, top_k=req.top_k)
    passages = pipeline.query(req.query, req.namespace, top_k=req.top_k, filter=req.filter)
    return {"results": [p.to_payload() for p in passages]}
