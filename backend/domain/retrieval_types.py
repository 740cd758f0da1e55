"""
Types de données pour le pipeline de récupération (RAG).

Ce module définit les modèles Pydantic des correspondances renvoyées par l'index vectoriel et des
passages assemblés pour l'étape de génération.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class VectorRecord(BaseModel):
    """Vecteur à indexer avec ses métadonnées (text, sourceId, page, section...)."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorMatch(BaseModel):
    """
    Correspondance brute renvoyée par l'index.

    L'ordre des correspondances est celui de l'index (score décroissant).
    """

    id: str
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievedPassage(BaseModel):
    """
    Passage récupéré, transmis à l'étape de génération.

    `page` et `section` valent None quand la métadonnée est absente; la sérialisation API les omet
    (`exclude_none`). `relevance_score` est le score brut de l'index, sans normalisation.
    """

    id: str
    source_id: str | None = None
    text: str = ""
    page: int | None = None
    section: str | None = None
    relevance_score: float

    def to_payload(self) -> dict[str, Any]:
        """Sérialisation camelCase sans les champs optionnels absents."""
        payload: dict[str, Any] = {
            "id": self.id,
            "sourceId": self.source_id,
            "text": self.text,
            "relevanceScore": self.relevance_score,
        }
        if self.page is not None:
            payload["page"] = self.page
        if self.section is not None:
            payload["section"] = self.section
        return payload
