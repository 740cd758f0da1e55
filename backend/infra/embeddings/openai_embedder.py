"""
Embedder OpenAI pour la génération d'embeddings.

Ce module implémente un embedder utilisant l'API OpenAI. Les erreurs du SDK (`openai.APIError` et
dérivées, dont `RateLimitError`) sont propagées telles quelles afin que l'appelant puisse inspecter
le statut renvoyé par le fournisseur.
"""

from __future__ import annotations

import time

import structlog
from openai import OpenAI

from backend.app.metrics import EMBEDDING_CALLS, EMBEDDING_LATENCY
from backend.infra.embeddings.base import Embeddings


class OpenAIEmbedder(Embeddings):
    """
    Embedder OpenAI pour la génération d'embeddings.

    La dimension des vecteurs est fixée par le modèle configuré (1536 pour
    `text-embedding-3-small`).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "text-embedding-3-small",
        client: OpenAI | None = None,
    ):
        """
        Initialise l'embedder OpenAI.

        Args:
            api_key: Clé API (résolue par le conteneur).
            model: Modèle d'embedding.
            client: Client OpenAI injecté (tests).
        """
        self.model = model
        self.client = client or OpenAI(api_key=api_key)
        self._log = structlog.get_logger(__name__).bind(component="openai_embedder")

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Génère des embeddings vectoriels via l'API OpenAI.

        Le i-ème vecteur correspond au i-ème texte; une liste vide renvoie une liste vide.

        Args:
            texts: Liste des textes à convertir en embeddings.

        Returns:
            list[list[float]]: Liste des vecteurs d'embedding.

        Raises:
            ValueError: si un des textes est vide (avant tout appel réseau).
        """
        if not texts:
            return []
        blank = [i for i, t in enumerate(texts) if not t or not t.strip()]
        if blank:
            raise ValueError(f"textes vides aux positions {blank}")
        start = time.perf_counter()
        outcome = "ok"
        try:
            resp = self.client.embeddings.create(model=self.model, input=texts)
        except Exception:
            outcome = "error"
            raise
        finally:
            EMBEDDING_CALLS.labels(model=self.model, outcome=outcome).inc()
            EMBEDDING_LATENCY.labels(model=self.model).observe(time.perf_counter() - start)
        self._log.debug("embeddings_created", count=len(texts), model=self.model)
        return [d.embedding for d in resp.data]
