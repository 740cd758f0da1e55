"""Interface de base pour les index vectoriels.

Ce module définit l'interface abstraite des clients d'index vectoriels (Pinecone, mémoire): un
upsert et une requête de plus proches voisins, tous deux limités à un namespace.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from backend.domain.retrieval_types import VectorMatch, VectorRecord


class VectorIndexError(RuntimeError):
    """Erreur renvoyée par l'index vectoriel (réseau ou HTTP)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Conserve le code HTTP éventuel du backend."""
        super().__init__(message)
        self.status_code = status_code


class VectorIndex(ABC):
    """Interface abstraite pour les index vectoriels."""

    backend = "abstract"

    @abstractmethod
    def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Insère ou remplace des vecteurs et retourne le nombre écrit."""
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int,
        include_metadata: bool = True,
        filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Retourne les `top_k` plus proches voisins, par score décroissant."""
        raise NotImplementedError
