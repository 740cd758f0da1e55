"""
Modèles de domaine du versioning des chatbots (POPO).

Une `ChatbotVersion` est un instantané complet et immuable de la configuration de comportement d'un
chatbot. Une modification produit toujours une nouvelle version; les conversations restent liées à
la version active au moment de leur création.
"""

# ============================================================
# Module : backend/domain/chatbot_version.py
# Objet  : Instantanés de configuration + surcharges partielles.
# ============================================================

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any

# Champs copiés d'une version à la suivante lorsqu'ils ne sont pas surchargés.
VERSIONED_FIELDS = (
    "system_prompt",
    "model_provider",
    "model_name",
    "vector_namespace",
    "config_json",
    "rag_settings_json",
)

# Champs du chatbot modifiables sans créer de version.
NON_VERSIONED_FIELDS = ("title", "description", "short_description", "is_public", "is_active")


@dataclass(frozen=True)
class ChatbotVersion:
    """
    Instantané de configuration (objet domaine, immuable).

    Attributs
    - id: identifiant de la version.
    - chatbot_id: chatbot propriétaire.
    - version_number: numéro monotone par chatbot, à partir de 1.
    - system_prompt, model_provider, model_name: configuration du modèle.
    - vector_namespace: partition de l'index vectoriel interrogée.
    - config_json, rag_settings_json: configuration libre et réglages RAG (topK, filter).
    - notes, changelog: texte libre saisi par le créateur.
    - created_by_user_id: auteur de la version.
    - activated_at / deactivated_at / created_at: horodatages.
    """

    id: str
    chatbot_id: str
    version_number: int
    title: str
    system_prompt: str
    model_provider: str
    model_name: str
    vector_namespace: str
    created_by_user_id: str
    description: str | None = None
    config_json: dict[str, Any] | None = None
    rag_settings_json: dict[str, Any] | None = None
    notes: str | None = None
    changelog: str | None = None
    activated_at: datetime | None = None
    deactivated_at: datetime | None = None
    created_at: datetime | None = None

    def rag_top_k(self, default: int) -> int:
        """Retourne le topK configuré (clé `topK` ou `top_k`), sinon `default`."""
        settings = self.rag_settings_json or {}
        raw = settings.get("topK", settings.get("top_k"))
        if isinstance(raw, int) and not isinstance(raw, bool) and raw > 0:
            return raw
        return default

    def rag_filter(self) -> dict[str, Any] | None:
        """Retourne le filtre de métadonnées configuré, s'il existe."""
        flt = (self.rag_settings_json or {}).get("filter")
        return flt if isinstance(flt, dict) and flt else None


@dataclass
class VersionOverrides:
    """Surcharges partielles pour la version suivante (None = copier la version précédente)."""

    system_prompt: str | None = None
    model_provider: str | None = None
    model_name: str | None = None
    vector_namespace: str | None = None
    config_json: dict[str, Any] | None = None
    rag_settings_json: dict[str, Any] | None = None
    notes: str | None = None
    changelog: str | None = None

    def has_versioned_changes(self) -> bool:
        """Indique si au moins un champ de comportement est surchargé."""
        return any(getattr(self, name) is not None for name in VERSIONED_FIELDS)

    def as_dict(self) -> dict[str, Any]:
        """Retourne uniquement les champs renseignés."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }
