"""
Interface de base pour les générateurs d'embeddings.

Ce module définit l'interface abstraite que doivent implémenter tous les générateurs d'embeddings
vectoriels.
"""

from abc import ABC, abstractmethod


class Embeddings(ABC):
    """Interface abstraite pour les générateurs d'embeddings."""

    @abstractmethod
    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Génère des embeddings vectoriels pour une liste de textes (un appel fournisseur)."""
        ...

    def embed(self, text: str) -> list[float]:
        """Génère l'embedding d'un texte unique."""
        if not text or not text.strip():
            raise ValueError("text ne doit pas être vide")
        return self.embed_batch([text])[0]
