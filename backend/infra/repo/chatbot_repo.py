# ============================================================
# Module : backend/infra/repo/chatbot_repo.py
# Objet  : Accès SQL pour Chatbot et ChatbotVersion.
# Notes  : les versions ne sont jamais mises à jour, sauf `deactivated_at`.
# ============================================================

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...domain.chatbot_version import ChatbotVersion
from .models import ChatbotORM, ChatbotVersionORM


def to_domain(row: ChatbotVersionORM) -> ChatbotVersion:
    """Convertit une ligne `chatbot_versions` en objet domaine immuable."""
    return ChatbotVersion(
        id=row.id,
        chatbot_id=row.chatbot_id,
        version_number=row.version_number,
        title=row.title,
        description=row.description,
        system_prompt=row.system_prompt,
        model_provider=row.model_provider,
        model_name=row.model_name,
        vector_namespace=row.vector_namespace,
        config_json=row.config_json,
        rag_settings_json=row.rag_settings_json,
        notes=row.notes,
        changelog=row.changelog,
        created_by_user_id=row.created_by_user_id,
        activated_at=row.activated_at,
        deactivated_at=row.deactivated_at,
        created_at=row.created_at,
    )


class ChatbotRepo:
    """CRUD pour les chatbots et leurs versions."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    # -- chatbots ---------------------------------------------------------
    def get(self, chatbot_id: str) -> ChatbotORM | None:
        return self._session.get(ChatbotORM, chatbot_id)

    def add(self, row: ChatbotORM) -> ChatbotORM:
        """Insère un chatbot et flush pour obtenir son id."""
        self._session.add(row)
        self._session.flush()
        return row

    def update_fields(self, row: ChatbotORM, values: dict[str, Any]) -> ChatbotORM:
        for key, value in values.items():
            setattr(row, key, value)
        self._session.flush()
        return row

    def set_current_version(self, row: ChatbotORM, version_id: str) -> None:
        row.current_version_id = version_id
        self._session.flush()

    def list_without_versions(self) -> list[ChatbotORM]:
        """Chatbots n'ayant aucune ligne `chatbot_versions` (héritage pré-versioning)."""
        has_version = select(ChatbotVersionORM.id).where(
            ChatbotVersionORM.chatbot_id == ChatbotORM.id
        )
        stmt = select(ChatbotORM).where(~has_version.exists()).order_by(ChatbotORM.created_at)
        return list(self._session.execute(stmt).scalars().all())

    # -- versions ---------------------------------------------------------
    def get_version_row(self, version_id: str) -> ChatbotVersionORM | None:
        return self._session.get(ChatbotVersionORM, version_id)

    def get_version(self, version_id: str) -> ChatbotVersion | None:
        row = self.get_version_row(version_id)
        return to_domain(row) if row else None

    def max_version_number(self, chatbot_id: str) -> int:
        """Plus grand numéro de version du chatbot (0 si aucune)."""
        stmt = select(func.max(ChatbotVersionORM.version_number)).where(
            ChatbotVersionORM.chatbot_id == chatbot_id
        )
        return int(self._session.execute(stmt).scalar() or 0)

    def lowest_version(self, chatbot_id: str) -> ChatbotVersionORM | None:
        stmt = (
            select(ChatbotVersionORM)
            .where(ChatbotVersionORM.chatbot_id == chatbot_id)
            .order_by(ChatbotVersionORM.version_number.asc())
            .limit(1)
        )
        return self._session.execute(stmt).scalars().first()

    def list_versions(self, chatbot_id: str) -> list[ChatbotVersion]:
        """Versions du chatbot, par numéro croissant."""
        stmt = (
            select(ChatbotVersionORM)
            .where(ChatbotVersionORM.chatbot_id == chatbot_id)
            .order_by(ChatbotVersionORM.version_number.asc())
        )
        return [to_domain(r) for r in self._session.execute(stmt).scalars().all()]

    def insert_version(self, row: ChatbotVersionORM) -> ChatbotVersionORM:
        """Insère une version. Lève IntegrityError sur doublon unique.

        Contrainte d'unicité: (chatbot_id, version_number). La transaction est annulée avant de
        propager l'erreur.
        """
        self._session.add(row)
        try:
            self._session.flush()
        except IntegrityError:
            self._session.rollback()
            raise
        return row

    def deactivate(self, version_id: str, when: datetime | None = None) -> None:
        row = self.get_version_row(version_id)
        if row is not None and row.deactivated_at is None:
            row.deactivated_at = when or datetime.now(UTC)
            self._session.flush()
