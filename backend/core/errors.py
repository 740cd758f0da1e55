"""Taxonomie des erreurs métier.

Chaque erreur porte un `code` stable et le statut HTTP correspondant; la couche API se charge de la
traduction en réponse (voir `backend.api.errors`). Les erreurs des fournisseurs d'embeddings ne
sont volontairement pas enveloppées ici.
"""

from __future__ import annotations

from backend.core.constants import (
    HTTP_BAD_REQUEST,
    HTTP_CONFLICT,
    HTTP_FORBIDDEN,
    HTTP_INTERNAL_SERVER_ERROR,
    HTTP_NOT_FOUND,
)


class DomainError(Exception):
    """Erreur de base du domaine."""

    code = "DOMAIN_ERROR"
    status_code = HTTP_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        """Conserve le message d'origine (exposé hors production seulement si 5xx)."""
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Entrée invalide ou manquante, corrigeable par le client."""

    code = "VALIDATION_ERROR"
    status_code = HTTP_BAD_REQUEST


class NotFoundError(DomainError):
    """Entité référencée absente."""

    code = "NOT_FOUND"
    status_code = HTTP_NOT_FOUND


class AuthorizationError(DomainError):
    """Utilisateur authentifié mais non autorisé."""

    code = "FORBIDDEN"
    status_code = HTTP_FORBIDDEN


class ConflictError(DomainError):
    """Violation d'unicité (course sur une version, association en double...)."""

    code = "CONFLICT"
    status_code = HTTP_CONFLICT


class InvariantViolation(DomainError):
    """Invariant de données rompu (ex: chatbot sans aucune version)."""

    code = "INVARIANT_VIOLATION"


class RetrievalError(DomainError):
    """Échec opaque de la requête sur l'index vectoriel."""

    code = "RETRIEVAL_ERROR"
